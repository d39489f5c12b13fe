"""
API request and response models for the School Records REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in accounts/models.py,
which own the internal domain representation. Route handlers map between the two.

No response model has a password or credential hash field. Plaintext
passwords only ever appear in request bodies.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from accounts.models import Gender, Identity, Principal, StudentProfile

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
    PARENT = "PARENT"


class GenderEnum(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=72)


class IdentityCreate(BaseModel):
    """Request body for POST /api/v1/identities."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=72)
    role: RoleEnum
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)


class StudentFields(BaseModel):
    """Profile fields shared by student create and update requests."""

    model_config = ConfigDict(str_strip_whitespace=True)

    student_number: str = Field(min_length=1, max_length=30)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[EmailStr] = None
    date_of_birth: Optional[date] = None
    gender: Optional[GenderEnum] = None
    address: Optional[str] = Field(default=None, max_length=500)
    phone_number: Optional[str] = Field(default=None, max_length=30)
    parent_contact: Optional[str] = Field(default=None, max_length=255)
    graduation_date: Optional[date] = None

    def to_profile(self, profile_id: Optional[int] = None) -> StudentProfile:
        return StudentProfile(
            id=profile_id,
            student_number=self.student_number,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            date_of_birth=self.date_of_birth,
            gender=Gender(self.gender.value) if self.gender else None,
            address=self.address,
            phone_number=self.phone_number,
            parent_contact=self.parent_contact,
            graduation_date=self.graduation_date,
        )


class StudentCreate(StudentFields):
    """Request body for POST /api/v1/students.

    When password is omitted, generate_password must be true and the server
    returns a one-time temporary password in the response.
    """

    username: str = Field(min_length=1, max_length=50)
    password: Optional[str] = Field(default=None, min_length=1, max_length=72)
    enrollment_date: Optional[date] = None
    generate_password: bool = False

    def to_profile(self, profile_id: Optional[int] = None) -> StudentProfile:
        profile = super().to_profile(profile_id)
        profile.enrollment_date = self.enrollment_date
        return profile


class StudentUpdate(StudentFields):
    """Request body for PUT /api/v1/students/{profile_id}."""


class PasswordUpdate(BaseModel):
    """Request body for PUT /api/v1/identities/{identity_id}/password."""

    new_password: str = Field(min_length=1, max_length=72)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PrincipalResponse(BaseModel):
    """Authenticated identity returned by POST /auth/login."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    role: RoleEnum
    first_name: Optional[str]
    last_name: Optional[str]
    email: Optional[str]
    is_active: bool

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        return cls(
            id=principal.id,
            username=principal.username,
            role=RoleEnum(principal.role.value),
            first_name=principal.first_name,
            last_name=principal.last_name,
            email=principal.email,
            is_active=principal.is_active,
        )


class IdentityResponse(PrincipalResponse):
    """Identity record without its credential hash."""

    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(
            id=identity.id,  # type: ignore[arg-type]
            username=identity.username,
            role=RoleEnum(identity.role.value),
            first_name=identity.first_name,
            last_name=identity.last_name,
            email=identity.email,
            is_active=identity.is_active,
            created_at=identity.created_at,
            updated_at=identity.updated_at,
        )


class StudentResponse(BaseModel):
    """Student profile with joined identity fields."""

    model_config = ConfigDict(frozen=True)

    id: int
    identity_id: int
    username: Optional[str]
    student_number: str
    first_name: Optional[str]
    last_name: Optional[str]
    full_name: str
    email: Optional[str]
    date_of_birth: Optional[date]
    gender: Optional[GenderEnum]
    address: Optional[str]
    phone_number: Optional[str]
    parent_contact: Optional[str]
    enrollment_date: Optional[date]
    graduation_date: Optional[date]
    is_active: bool
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_profile(cls, profile: StudentProfile) -> "StudentResponse":
        return cls(
            id=profile.id,  # type: ignore[arg-type]
            identity_id=profile.identity_id,  # type: ignore[arg-type]
            username=profile.username,
            student_number=profile.student_number,
            first_name=profile.first_name,
            last_name=profile.last_name,
            full_name=profile.full_name,
            email=profile.email,
            date_of_birth=profile.date_of_birth,
            gender=GenderEnum(profile.gender.value) if profile.gender else None,
            address=profile.address,
            phone_number=profile.phone_number,
            parent_contact=profile.parent_contact,
            enrollment_date=profile.enrollment_date,
            graduation_date=profile.graduation_date,
            is_active=profile.is_active,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


class StudentCreatedResponse(BaseModel):
    """Response for POST /students. temporary_password is set only when generated."""

    model_config = ConfigDict(frozen=True)

    student: StudentResponse
    temporary_password: Optional[str] = None


class StudentCountResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    enrolled_since: Optional[date] = None


class ExistsResponse(BaseModel):
    """Response for GET /api/v1/identities/exists. Fields are null when not queried."""

    model_config = ConfigDict(frozen=True)

    username_exists: Optional[bool] = None
    email_exists: Optional[bool] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
