"""
Authorization with JWT bearer tokens.

Tokens are issued by the platform's identity service; this service only
decodes them into a Principal and decides who may manage a generated test.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum as PyEnum
from typing import Optional

from jose import jwt, JWTError

from ..config import settings
from ..errors import ForbiddenError
from ..models.generated_test import GeneratedTest


class Role(str, PyEnum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


STAFF_ROLES = {Role.TEACHER, Role.ADMIN, Role.SUPERADMIN}
ADMIN_ROLES = {Role.ADMIN, Role.SUPERADMIN}


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""
    user_id: int
    role: Role
    center_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


class AuthService:
    """Service for token operations."""

    @staticmethod
    def create_access_token(
        user_id: int,
        role: Role,
        center_id: Optional[int] = None,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Create a JWT access token."""
        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(hours=settings.access_token_expire_hours)

        to_encode = {
            "sub": str(user_id),
            "role": Role(role).value,
            "exp": expire,
            "iat": datetime.utcnow(),
        }
        if center_id is not None:
            to_encode["center_id"] = center_id
        return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    @staticmethod
    def decode_token(token: str) -> Optional[dict]:
        """Decode and validate a JWT token."""
        try:
            return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        except JWTError:
            return None

    @staticmethod
    def principal_from_token(token: str) -> Optional[Principal]:
        """Build a Principal from a token, None if the token is unusable."""
        payload = AuthService.decode_token(token)
        if not payload:
            return None
        try:
            return Principal(
                user_id=int(payload["sub"]),
                role=Role(payload.get("role", Role.STUDENT.value)),
                center_id=payload.get("center_id"),
            )
        except (KeyError, ValueError, TypeError):
            return None

    @staticmethod
    def ensure_staff(principal: Principal) -> None:
        if principal.role not in STAFF_ROLES:
            raise ForbiddenError("Only teachers and admins may do this")

    @staticmethod
    def ensure_can_manage(principal: Principal, generated_test: GeneratedTest) -> None:
        """Teachers manage their own tests; admins manage all of them."""
        if principal.is_admin:
            return
        if principal.role == Role.TEACHER and generated_test.teacher_id == principal.user_id:
            return
        raise ForbiddenError(f"Not allowed to manage generated test {generated_test.id}")


auth_service = AuthService()
