"""
Pydantic schemas for test generation request/response validation.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from .snapshot import QuestionSnapshot


# =============================================================================
# Generation
# =============================================================================

class GenerateTestRequest(BaseModel):
    """Parameters of a generation request. Counts are range-checked by the generator."""
    subject_id: int = Field(..., description="Subject whose question bank is used")
    question_count: int = Field(..., description="Questions per variant")
    variant_count: int = Field(..., description="Number of variants to generate")
    title: Optional[str] = Field(None, max_length=255, description="Defaults to '<subject> test'")
    description: Optional[str] = None
    time_limit: Optional[int] = Field(None, description="Minutes; defaults to the configured limit")
    difficulty: str = Field("mixed", max_length=32, description="Stored tag, not used for selection")
    include_answers: bool = Field(False, description="Allow printing an answer key")
    show_title_sheet: bool = Field(True, description="Print header blocks on a separate first page")


class VariantSummary(BaseModel):
    id: int
    variant_number: int
    unique_number: str
    generated_at: datetime

    class Config:
        from_attributes = True


class VariantDetail(VariantSummary):
    """A variant with its printed question snapshot."""
    generated_test_id: int
    questions: List[QuestionSnapshot]


class GeneratedTestResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    teacher_id: int
    subject_id: int
    subject_name: str
    variant_count: int
    question_count: int
    time_limit: int
    difficulty: str
    include_answers: bool
    show_title_sheet: bool
    created_at: datetime

    class Config:
        from_attributes = True


class GenerateTestResponse(BaseModel):
    generated_test: GeneratedTestResponse
    variants: List[VariantDetail]


# =============================================================================
# Printables & distribution
# =============================================================================

class PrintableLinkResponse(BaseModel):
    kind: str
    url: str
    object_path: str
    variant_number: Optional[int] = None
    unique_number: Optional[str] = None

    class Config:
        from_attributes = True


class PrintableLinksResponse(BaseModel):
    generated_test_id: int
    links: List[PrintableLinkResponse]


class DistributeRequest(BaseModel):
    recipients: List[EmailStr] = Field(..., min_length=1, description="Email addresses to send to")
    as_links: bool = Field(True, description="Send signed links instead of a PDF attachment")
    message: Optional[str] = Field(None, max_length=2000)


class RecipientResultResponse(BaseModel):
    recipient: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    class Config:
        from_attributes = True


class DistributionReportResponse(BaseModel):
    sent: int
    failed: int
    results: List[RecipientResultResponse]

    class Config:
        from_attributes = True
