"""
accounts/service.py -- Account provisioning and authentication service.

AccountService is the only entry point the API and CLI use. It owns:
  - credential handling: hashing on create/update, verification on login
  - policy checks on caller-supplied passwords
  - error mapping: every sqlalchemy exception raised by AccountStore is
    caught at the operation boundary, logged with the operation name and
    subject (username or id -- never a password or hash), and converted to
    an Outcome carrying an ErrorKind. Nothing is retried.

Authentication [timing]:
  authenticate() always runs bcrypt, even for an unknown username, by
  verifying against credentials.DUMMY_HASH. Unknown user, inactive user and
  wrong password all return the same AUTH_FAILED outcome; only the log line
  says which one it was.

Existence checks:
  username_exists()/email_exists() raise IndeterminateError when the store
  fails instead of answering False. Provisioning does not depend on them --
  the UNIQUE constraints decide, and a duplicate surfaces as
  CONSTRAINT_VIOLATION from the same transaction.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from accounts.credentials import (
    DUMMY_HASH,
    MIN_PASSWORD_LENGTH,
    hash_password,
    meets_policy,
    random_password,
    verify_password,
)
from accounts.models import Gender, Identity, Principal, Role, StudentProfile
from accounts.results import ErrorKind, IndeterminateError, InvalidInputError, Outcome
from accounts.store import AccountStore, RowMissingError

logger = logging.getLogger("schoolrecords.accounts")

T = TypeVar("T")


def _public(identity: Identity | None) -> Identity | None:
    """Return the identity with its credential hash removed."""
    if identity is not None:
        identity.credential_hash = None
    return identity


class AccountService:
    """Provisioning, authentication and account maintenance over an AccountStore.

    The store is injected and owned by the caller:

        store = AccountStore(settings.database_url)
        service = AccountService(store)
        ...
        store.close()
    """

    def __init__(
        self,
        store: AccountStore,
        enforce_policy: bool = True,
        temp_password_length: int = 12,
    ) -> None:
        # Shorter draws can never satisfy meets_policy().
        if temp_password_length < MIN_PASSWORD_LENGTH:
            raise InvalidInputError(
                f"temp_password_length must be at least {MIN_PASSWORD_LENGTH}, got {temp_password_length}"
            )
        self.store = store
        self.enforce_policy = enforce_policy
        self.temp_password_length = temp_password_length

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _hash_checked(self, password: Optional[str]) -> str:
        """Hash a caller-supplied password, applying the password policy when enabled."""
        if self.enforce_policy and not meets_policy(password):
            raise InvalidInputError(
                "Password must be at least 6 characters and contain a letter and a digit"
            )
        return hash_password(password)

    def _guarded(self, operation: str, subject: object, func: Callable[[], Outcome[T]]) -> Outcome[T]:
        """Run one store-backed operation and map failures to an Outcome.

        This is the single place where store exceptions stop propagating.
        """
        try:
            return func()
        except InvalidInputError as exc:
            logger.info("%s rejected for %s: %s", operation, subject, exc)
            return Outcome.failure(ErrorKind.INVALID_INPUT, str(exc))
        except IntegrityError:
            logger.warning("%s failed for %s: constraint violation", operation, subject, exc_info=True)
            return Outcome.failure(ErrorKind.CONSTRAINT_VIOLATION, "Duplicate or invalid record")
        except RowMissingError as exc:
            logger.warning("%s failed for %s: %s not found", operation, subject, exc)
            return Outcome.failure(ErrorKind.NOT_FOUND, "Record not found")
        except SQLAlchemyError:
            logger.exception("%s failed for %s: store error", operation, subject)
            return Outcome.failure(ErrorKind.STORE_UNAVAILABLE, "Account store unavailable")

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def create_identity(self, identity: Identity, password: str) -> Outcome[Identity]:
        """Create a standalone identity (any role) with a hashed password.

        Returns the stored identity (id and timestamps set, no hash) on success.
        """

        def run() -> Outcome[Identity]:
            if not identity.username or not identity.username.strip():
                raise InvalidInputError("Username cannot be empty")
            parsed = replace(identity, role=Role.parse(identity.role))
            credential_hash = self._hash_checked(password)
            created = self.store.insert_identity(parsed, credential_hash)
            logger.info("Identity created: %s (%s)", created.username, created.role.value)
            return Outcome.success(created)

        return self._guarded("create_identity", identity.username, run)

    def create_profile(
        self,
        profile: StudentProfile,
        username: str,
        password: str,
        email: Optional[str],
    ) -> Outcome[StudentProfile]:
        """Create a STUDENT identity and its profile as one atomic unit.

        Either both rows are committed or neither is. A duplicate username,
        email or student number comes back as CONSTRAINT_VIOLATION with the
        store left exactly as it was before the call.
        """

        def run() -> Outcome[StudentProfile]:
            if not username or not username.strip():
                raise InvalidInputError("Username cannot be empty")
            if not profile.student_number or not profile.student_number.strip():
                raise InvalidInputError("Student number cannot be empty")
            parsed = replace(profile, gender=Gender.parse(profile.gender))
            credential_hash = self._hash_checked(password)
            created = self.store.insert_student_with_identity(parsed, username, credential_hash, email)
            logger.info("Student created: %s (identity %s)", created.student_number, username)
            return Outcome.success(created)

        return self._guarded("create_profile", username, run)

    def provision_student(
        self,
        profile: StudentProfile,
        username: str,
        email: Optional[str],
    ) -> Outcome[tuple[StudentProfile, str]]:
        """Create a student account with a system-generated temporary password.

        The plaintext temporary password is returned exactly once, alongside
        the created profile, for the caller to hand over.
        """
        temp_password = random_password(self.temp_password_length)
        # Regenerate until the password satisfies the policy; with a 12+ char
        # draw from 70 symbols this almost never loops.
        while not meets_policy(temp_password):
            temp_password = random_password(self.temp_password_length)
        outcome = self.create_profile(profile, username, temp_password, email)
        if not outcome:
            return Outcome.failure(outcome.error, outcome.message)  # type: ignore[arg-type]
        return Outcome.success((outcome.value, temp_password))  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Authentication and credentials
    # ------------------------------------------------------------------

    def authenticate(self, username: str, password: str) -> Outcome[Principal]:
        """Verify a username/password pair against the active identities.

        Returns the Principal on success. Unknown username and wrong password
        produce the same AUTH_FAILED outcome.
        """

        def run() -> Outcome[Principal]:
            identity = self.store.get_identity_by_username(username, active_only=True) if username else None
            if identity is None:
                verify_password(password, DUMMY_HASH)
                logger.warning("Login failed for %s: unknown or inactive user", username)
                return Outcome.failure(ErrorKind.AUTH_FAILED, "Invalid username or password")
            if not verify_password(password, identity.credential_hash):
                logger.warning("Login failed for %s: invalid password", username)
                return Outcome.failure(ErrorKind.AUTH_FAILED, "Invalid username or password")
            logger.info("User %s authenticated successfully", username)
            return Outcome.success(Principal.from_identity(identity))

        return self._guarded("authenticate", username, run)

    def update_password(self, identity_id: int, new_password: str) -> Outcome[None]:
        """Re-hash and overwrite the stored credential for identity_id."""

        def run() -> Outcome[None]:
            credential_hash = self._hash_checked(new_password)
            if not self.store.update_credential_hash(identity_id, credential_hash):
                logger.warning("Password update failed: identity %s not found", identity_id)
                return Outcome.failure(ErrorKind.NOT_FOUND, "Identity not found")
            logger.info("Password updated for identity %s", identity_id)
            return Outcome.success()

        return self._guarded("update_password", identity_id, run)

    # ------------------------------------------------------------------
    # Existence checks
    # ------------------------------------------------------------------

    def username_exists(self, username: str) -> bool:
        """True if any identity (active or not) has this exact username.

        Raises IndeterminateError if the store cannot be queried.
        """
        try:
            return self.store.count_by_username(username) > 0
        except SQLAlchemyError as exc:
            logger.exception("username_exists failed for %s", username)
            raise IndeterminateError(f"Could not check username {username!r}") from exc

    def email_exists(self, email: str) -> bool:
        """True if any identity has this email. Raises IndeterminateError on store failure."""
        try:
            return self.store.count_by_email(email) > 0
        except SQLAlchemyError as exc:
            logger.exception("email_exists failed for %s", email)
            raise IndeterminateError(f"Could not check email {email!r}") from exc

    # ------------------------------------------------------------------
    # Identity maintenance
    # ------------------------------------------------------------------

    def get_identity(self, identity_id: int) -> Identity | None:
        return _public(self.store.get_identity_by_id(identity_id))

    def get_identity_by_username(self, username: str) -> Identity | None:
        return _public(self.store.get_identity_by_username(username))

    def deactivate_identity(self, identity_id: int) -> Outcome[None]:
        """Soft-delete an identity. Deactivated identities can no longer log in."""

        def run() -> Outcome[None]:
            if not self.store.set_identity_active(identity_id, False):
                return Outcome.failure(ErrorKind.NOT_FOUND, "Identity not found")
            logger.info("Identity %s deactivated", identity_id)
            return Outcome.success()

        return self._guarded("deactivate_identity", identity_id, run)

    # ------------------------------------------------------------------
    # Student profile maintenance
    # ------------------------------------------------------------------

    def get_student(self, profile_id: int) -> StudentProfile | None:
        return self.store.get_student_by_id(profile_id)

    def get_student_by_number(self, student_number: str) -> StudentProfile | None:
        return self.store.get_student_by_number(student_number)

    def list_students(self) -> list[StudentProfile]:
        return self.store.list_students()

    def update_student(self, profile: StudentProfile) -> Outcome[StudentProfile]:
        """Update a profile and its identity's email/name together.

        Both rows change or neither does. NOT_FOUND if profile.id is unknown or deactivated.
        """

        def run() -> Outcome[StudentProfile]:
            if profile.id is None:
                raise InvalidInputError("Student profile id is required for update")
            self.store.update_student(replace(profile, gender=Gender.parse(profile.gender)))
            updated = self.store.get_student_by_id(profile.id)
            if updated is None:
                return Outcome.failure(ErrorKind.NOT_FOUND, "Student not found")
            logger.info("Student updated: %s", updated.student_number)
            return Outcome.success(updated)

        return self._guarded("update_student", profile.id, run)

    def deactivate_student(self, profile_id: int) -> Outcome[None]:
        """Soft-delete a student profile. The owning identity is left untouched."""

        def run() -> Outcome[None]:
            if not self.store.set_student_active(profile_id, False):
                return Outcome.failure(ErrorKind.NOT_FOUND, "Student not found")
            logger.info("Student %s deactivated", profile_id)
            return Outcome.success()

        return self._guarded("deactivate_student", profile_id, run)

    def count_students(self) -> int:
        return self.store.count_students()

    def count_students_enrolled_since(self, since: date) -> int:
        return self.store.count_students(enrolled_since=since)
