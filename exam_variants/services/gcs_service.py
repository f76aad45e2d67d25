"""
Google Cloud Storage service for printable PDFs.
Uploads rendered variants and hands out signed download links.
"""
import os
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, List, Optional, Sequence

from google.cloud import storage
from google.auth import impersonated_credentials

from ..config import settings
from ..models.generated_test import GeneratedTest, GeneratedTestVariant
from .variant_pdf_renderer import render_variants_pdf

logger = logging.getLogger(__name__)


class GCSService:
    """Service for Google Cloud Storage operations."""

    def __init__(self):
        self.bucket_name = settings.gcs_bucket_name
        self.service_account_email = None

        # Initialize client with credentials file if provided, else ADC
        if settings.gcs_credentials_file and os.path.exists(settings.gcs_credentials_file):
            self.client = storage.Client.from_service_account_json(settings.gcs_credentials_file)
            self.service_account_email = self.client.get_service_account_email()
            logger.info(f"GCS Service initialized with credentials file: {settings.gcs_credentials_file}")
        else:
            # Application Default Credentials; V4 signing then goes through
            # IAM and needs the service account email from the metadata server.
            self.client = storage.Client()
            try:
                import httpx
                with httpx.Client() as client:
                    response = client.get(
                        "http://metadata.google.internal/computeMetadata/v1/instance/service-accounts/default/email",
                        headers={"Metadata-Flavor": "Google"},
                        timeout=2.0
                    )
                    if response.status_code == 200:
                        self.service_account_email = response.text
                        logger.info(f"Detected service account email from metadata: {self.service_account_email}")
            except Exception:
                if hasattr(self.client._credentials, 'service_account_email'):
                    self.service_account_email = self.client._credentials.service_account_email
                    logger.info(f"Detected service account email from credentials: {self.service_account_email}")

        self.bucket = self.client.bucket(self.bucket_name)
        logger.info(f"GCS Service initialized with bucket: {self.bucket_name}")

    def upload_bytes(
        self,
        data: bytes,
        object_path: str,
        content_type: str = "application/pdf"
    ) -> str:
        """
        Upload bytes to GCS.

        Returns:
            The GCS object path
        """
        blob = self.bucket.blob(object_path)
        blob.upload_from_string(data, content_type=content_type)
        logger.debug(f"Uploaded to gs://{self.bucket_name}/{object_path}")
        return object_path

    def generate_signed_url(
        self,
        object_path: str,
        expiration_minutes: int = 60
    ) -> str:
        """
        Generate a V4 signed URL for temporary read access.

        Args:
            object_path: Path to the object in GCS
            expiration_minutes: URL validity period

        Returns:
            Signed URL string
        """
        blob = self.bucket.blob(object_path)

        # Without a local key, signing goes through impersonated credentials
        signing_credentials = None
        has_local_key = settings.gcs_credentials_file and os.path.exists(settings.gcs_credentials_file)

        if self.service_account_email and not has_local_key:
            try:
                signing_credentials = impersonated_credentials.Credentials(
                    source_credentials=self.client._credentials,
                    target_principal=self.service_account_email,
                    target_scopes=["https://www.googleapis.com/auth/devstorage.read_write"],
                    lifetime=min(expiration_minutes * 60, 3600)
                )
            except Exception as e:
                logger.warning(f"Failed to create impersonated credentials: {e}")

        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(minutes=expiration_minutes),
            method="GET",
            service_account_email=self.service_account_email,
            credentials=signing_credentials
        )


# Singleton instance
_gcs_service: Optional[GCSService] = None


def get_gcs_service() -> GCSService:
    """Get or create the GCS service singleton."""
    global _gcs_service
    if _gcs_service is None:
        _gcs_service = GCSService()
    return _gcs_service


def get_storage_factory() -> Callable[[], GCSService]:
    """
    Dependency for routes that only sometimes need storage. Building the
    client needs cloud credentials, so it is deferred until called.
    """
    return get_gcs_service


# =============================================================================
# Printable links
# =============================================================================

@dataclass
class PrintableLink:
    """A signed download link for one rendered PDF."""
    kind: str  # "variant" or "answer_key"
    object_path: str
    url: str
    variant_number: Optional[int] = None
    unique_number: Optional[str] = None


def printable_object_path(generated_test: GeneratedTest, variant: Optional[GeneratedTestVariant] = None) -> str:
    folder = f"printables/{generated_test.id}"
    if variant is None:
        return f"{folder}/answer-key.pdf"
    return f"{folder}/variant-{variant.variant_number}-{variant.unique_number}.pdf"


async def publish_printables(
    generated_test: GeneratedTest,
    variants: Sequence[GeneratedTestVariant],
    storage_service=None,
    expiration_minutes: Optional[int] = None,
) -> List[PrintableLink]:
    """
    Render each variant (and the answer key when the test has one), upload
    them and return signed links instead of raw bytes.

    Args:
        generated_test: Test being printed
        variants: Its variants
        storage_service: Object with upload_bytes/generate_signed_url
            (defaults to the GCS singleton)
        expiration_minutes: Link validity (defaults to settings)

    Returns:
        One PrintableLink per uploaded PDF
    """
    storage_service = storage_service or get_gcs_service()
    expiration_minutes = expiration_minutes or settings.signed_url_expiration_minutes
    links = []

    for variant in variants:
        pdf_bytes = await render_variants_pdf(generated_test, [variant])
        object_path = storage_service.upload_bytes(pdf_bytes, printable_object_path(generated_test, variant))
        links.append(PrintableLink(
            kind="variant",
            object_path=object_path,
            url=storage_service.generate_signed_url(object_path, expiration_minutes),
            variant_number=variant.variant_number,
            unique_number=variant.unique_number,
        ))

    if generated_test.include_answers and variants:
        pdf_bytes = await render_variants_pdf(generated_test, variants, answer_key=True)
        object_path = storage_service.upload_bytes(pdf_bytes, printable_object_path(generated_test))
        links.append(PrintableLink(
            kind="answer_key",
            object_path=object_path,
            url=storage_service.generate_signed_url(object_path, expiration_minutes),
        ))

    logger.info(f"Published {len(links)} printable(s) for test {generated_test.id}")
    return links
