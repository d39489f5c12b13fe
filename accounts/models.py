"""
accounts/models.py -- Domain dataclasses for identities and role profiles.

Pattern: Data class (pure data container, near-zero logic). The store and the
service do the work; these types only own the domain shape plus a couple of
display helpers (full_name, age).

Role and Gender are closed enums. Free-form strings coming from the API or the
CLI are parsed with Role.parse()/Gender.parse() at the service boundary so an
unknown value never reaches the store.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from accounts.results import InvalidInputError


class Role(str, Enum):
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
    PARENT = "PARENT"

    @classmethod
    def parse(cls, value: str | Role) -> Role:
        """Return the Role for a case-insensitive name. Raises InvalidInputError otherwise."""
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidInputError(f"Unknown role {value!r}") from None


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: str | Gender | None) -> Gender | None:
        if value is None or isinstance(value, Gender):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidInputError(f"Unknown gender {value!r}") from None


def _join_name(first: Optional[str], last: Optional[str], fallback: str) -> str:
    parts = [p for p in (first, last) if p]
    return " ".join(parts) if parts else fallback


@dataclass
class Identity:
    """The authentication-bearing account row.

    credential_hash is populated only on records read by the store for
    internal use (authentication). Objects handed back to callers through
    AccountService have it set to None.

    role is fixed at creation. id, created_at and updated_at are assigned by
    the store on insert.
    """

    username: str
    role: Role
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    id: Optional[int] = None
    credential_hash: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def full_name(self) -> str:
        return _join_name(self.first_name, self.last_name, self.username)


@dataclass
class StudentProfile:
    """Student-specific extension of an Identity (one-to-one).

    username, email, first_name and last_name live on the owning identity row;
    they are carried here because every read joins them in, and create/update
    write them through to the identity.
    """

    student_number: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    address: Optional[str] = None
    phone_number: Optional[str] = None
    parent_contact: Optional[str] = None
    enrollment_date: Optional[date] = None  # store defaults this to today
    graduation_date: Optional[date] = None
    id: Optional[int] = None
    identity_id: Optional[int] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    # Joined from identities
    username: Optional[str] = None
    email: Optional[str] = None

    ROLE = Role.STUDENT

    @property
    def full_name(self) -> str:
        return _join_name(self.first_name, self.last_name, "Unknown Student")

    def age(self, today: Optional[date] = None) -> int:
        """Age in whole years, or 0 when date_of_birth is unknown."""
        if self.date_of_birth is None:
            return 0
        today = today or date.today()
        dob = self.date_of_birth
        return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))


@dataclass(frozen=True)
class Principal:
    """Public fields of a successfully authenticated identity. Never carries the hash."""

    id: int
    username: str
    role: Role
    first_name: Optional[str]
    last_name: Optional[str]
    email: Optional[str]
    is_active: bool

    @classmethod
    def from_identity(cls, identity: Identity) -> Principal:
        return cls(
            id=identity.id,  # type: ignore[arg-type]
            username=identity.username,
            role=identity.role,
            first_name=identity.first_name,
            last_name=identity.last_name,
            email=identity.email,
            is_active=identity.is_active,
        )

    @property
    def full_name(self) -> str:
        return _join_name(self.first_name, self.last_name, self.username)
