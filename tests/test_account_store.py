"""Unit tests for accounts/store.py -- AccountStore repository methods.

Covers:
- identity insert / lookup, case-sensitive username match, active-only lookup
- UNIQUE constraints on username, email, and student number
- two-row student insert commits both rows or neither
- student reads join identity fields; update touches both rows atomically
- soft deletes and enrollment counts
"""

import warnings
from datetime import date
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, SADeprecationWarning
from sqlalchemy.pool import SingletonThreadPool

from accounts.credentials import hash_password
from accounts.models import Gender, Identity, Role
from accounts.store import AccountStore, RowMissingError
from conftest import make_student

_HASH = hash_password("abc123")


def _identity(username: str = "jdoe", **overrides) -> Identity:
    fields = dict(username=username, role=Role.TEACHER, email=f"{username}@school.test", first_name="J", last_name="Doe")
    fields.update(overrides)
    return Identity(**fields)


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


class TestIdentityRows:
    def test_insert_assigns_id_and_timestamps(self, store: AccountStore) -> None:
        created = store.insert_identity(_identity(), _HASH)
        assert created.id is not None
        assert created.created_at
        assert created.created_at == created.updated_at
        assert created.credential_hash is None

    def test_lookup_returns_stored_hash(self, store: AccountStore) -> None:
        store.insert_identity(_identity(), _HASH)
        row = store.get_identity_by_username("jdoe")
        assert row is not None
        assert row.credential_hash == _HASH
        assert row.role is Role.TEACHER
        assert row.is_active is True

    def test_username_match_is_case_sensitive(self, store: AccountStore) -> None:
        store.insert_identity(_identity("jdoe"), _HASH)
        assert store.get_identity_by_username("JDoe") is None
        assert store.count_by_username("JDOE") == 0

    def test_duplicate_username_raises_integrity_error(self, store: AccountStore) -> None:
        store.insert_identity(_identity("jdoe"), _HASH)
        with pytest.raises(IntegrityError):
            store.insert_identity(_identity("jdoe", email="other@school.test"), _HASH)
        assert store.count_identities() == 1

    def test_duplicate_email_raises_integrity_error(self, store: AccountStore) -> None:
        store.insert_identity(_identity("a", email="same@school.test"), _HASH)
        with pytest.raises(IntegrityError):
            store.insert_identity(_identity("b", email="same@school.test"), _HASH)

    def test_missing_email_allowed_more_than_once(self, store: AccountStore) -> None:
        store.insert_identity(_identity("a", email=None), _HASH)
        store.insert_identity(_identity("b", email=None), _HASH)
        assert store.count_identities() == 2

    def test_active_only_lookup_skips_deactivated(self, store: AccountStore) -> None:
        created = store.insert_identity(_identity(), _HASH)
        assert store.set_identity_active(created.id, False) is True
        assert store.get_identity_by_username("jdoe", active_only=True) is None
        # Still counted for uniqueness purposes
        assert store.count_by_username("jdoe") == 1

    def test_update_credential_hash(self, store: AccountStore) -> None:
        created = store.insert_identity(_identity(), _HASH)
        new_hash = hash_password("xyz789")
        assert store.update_credential_hash(created.id, new_hash) is True
        assert store.get_identity_by_id(created.id).credential_hash == new_hash

    def test_update_credential_hash_unknown_id(self, store: AccountStore) -> None:
        assert store.update_credential_hash(9999, _HASH) is False

    def test_count_by_email(self, store: AccountStore) -> None:
        store.insert_identity(_identity(), _HASH)
        assert store.count_by_email("jdoe@school.test") == 1
        assert store.count_by_email("nobody@school.test") == 0


# ---------------------------------------------------------------------------
# Student profiles
# ---------------------------------------------------------------------------


class TestStudentRows:
    def test_insert_creates_student_identity_and_profile(self, store: AccountStore) -> None:
        created = store.insert_student_with_identity(make_student(), "stu01", _HASH, "ada@school.test")
        assert created.id is not None
        assert created.identity_id is not None
        identity = store.get_identity_by_id(created.identity_id)
        assert identity.role is Role.STUDENT
        assert identity.username == "stu01"
        assert identity.first_name == "Ada"

    def test_enrollment_date_defaults_to_today(self, store: AccountStore) -> None:
        created = store.insert_student_with_identity(
            make_student(enrollment_date=None), "stu01", _HASH, None
        )
        assert created.enrollment_date == date.today()

    def test_read_joins_identity_fields(self, store: AccountStore) -> None:
        created = store.insert_student_with_identity(make_student(), "stu01", _HASH, "ada@school.test")
        student = store.get_student_by_id(created.id)
        assert student.username == "stu01"
        assert student.email == "ada@school.test"
        assert student.gender is Gender.FEMALE
        assert student.date_of_birth == date(2010, 12, 10)
        assert store.get_student_by_number("S2024001").id == created.id

    def test_profile_failure_rolls_back_identity(self, store: AccountStore) -> None:
        """A duplicate student number fails the second INSERT; the first is undone."""
        store.insert_student_with_identity(make_student("S1"), "stu01", _HASH, None)
        with pytest.raises(IntegrityError):
            store.insert_student_with_identity(make_student("S1"), "stu02", _HASH, None)
        assert store.get_identity_by_username("stu02") is None
        assert store.count_identities() == 1
        assert store.count_students() == 1

    def test_injected_store_error_rolls_back_identity(self, store: AccountStore) -> None:
        boom = OperationalError("INSERT INTO student_profiles", {}, Exception("disk I/O error"))
        with patch.object(store, "_insert_student_row", side_effect=boom):
            with pytest.raises(OperationalError):
                store.insert_student_with_identity(make_student(), "stu01", _HASH, None)
        assert store.count_identities() == 0
        assert store.count_students() == 0

    def test_list_is_newest_first_and_active_only(self, store: AccountStore) -> None:
        first = store.insert_student_with_identity(make_student("S1"), "stu01", _HASH, None)
        second = store.insert_student_with_identity(make_student("S2"), "stu02", _HASH, None)
        third = store.insert_student_with_identity(make_student("S3"), "stu03", _HASH, None)
        store.set_student_active(second.id, False)
        assert [s.id for s in store.list_students()] == [third.id, first.id]
        assert store.get_student_by_id(second.id) is None

    def test_update_writes_profile_and_identity(self, store: AccountStore) -> None:
        created = store.insert_student_with_identity(make_student(), "stu01", _HASH, "ada@school.test")
        created.address = "New Address 1"
        created.email = "ada.l@school.test"
        created.last_name = "King"
        store.update_student(created)
        student = store.get_student_by_id(created.id)
        assert student.address == "New Address 1"
        assert student.email == "ada.l@school.test"
        assert student.last_name == "King"

    def test_update_unknown_profile_raises_row_missing(self, store: AccountStore) -> None:
        profile = make_student()
        profile.id = 4242
        with pytest.raises(RowMissingError):
            store.update_student(profile)

    def test_update_deactivated_profile_raises_row_missing(self, store: AccountStore) -> None:
        created = store.insert_student_with_identity(make_student(), "stu01", _HASH, "ada@school.test")
        store.set_student_active(created.id, False)
        created.address = "Should Not Persist"
        created.first_name = "Augusta"
        with pytest.raises(RowMissingError):
            store.update_student(created)
        store.set_student_active(created.id, True)
        student = store.get_student_by_id(created.id)
        assert student.address == "12 St James's Square"
        assert student.first_name == "Ada"

    def test_update_email_conflict_rolls_back_profile_change(self, store: AccountStore) -> None:
        store.insert_identity(_identity("teacher", email="taken@school.test"), _HASH)
        created = store.insert_student_with_identity(make_student(), "stu01", _HASH, "ada@school.test")
        created.address = "Should Not Persist"
        created.email = "taken@school.test"
        with pytest.raises(IntegrityError):
            store.update_student(created)
        student = store.get_student_by_id(created.id)
        assert student.address == "12 St James's Square"
        assert student.email == "ada@school.test"

    def test_counts(self, store: AccountStore) -> None:
        store.insert_student_with_identity(make_student("S1", enrollment_date=date(2023, 9, 1)), "a", _HASH, None)
        store.insert_student_with_identity(make_student("S2", enrollment_date=date(2024, 9, 1)), "b", _HASH, None)
        store.insert_student_with_identity(make_student("S3", enrollment_date=date(2025, 1, 6)), "c", _HASH, None)
        assert store.count_students() == 3
        assert store.count_students(enrolled_since=date(2024, 9, 1)) == 2
        assert store.count_students(enrolled_since=date(2026, 1, 1)) == 0


class TestLifecycle:
    def test_ping(self, store: AccountStore) -> None:
        assert store.ping() is True

    def test_ping_false_for_unreachable_database(self, tmp_path) -> None:
        s = AccountStore(f"sqlite:///{tmp_path / 'ok.db'}")
        with patch.object(type(s.engine), "connect", side_effect=OperationalError("SELECT 1", {}, Exception("gone"))):
            assert s.ping() is False
        s.close()

    def test_file_database_persists_across_stores(self, tmp_path) -> None:
        url = f"sqlite:///{tmp_path / 'school.db'}"
        first = AccountStore(url)
        first.insert_identity(_identity(), _HASH)
        first.close()
        second = AccountStore(url)
        assert second.get_identity_by_username("jdoe") is not None
        second.close()

    def test_explicit_pool_class_for_shared_memory_uri(self) -> None:
        url = "sqlite:///file:pooltest?mode=memory&cache=shared&uri=true"
        with warnings.catch_warnings():
            warnings.simplefilter("error", SADeprecationWarning)
            s = AccountStore(url, poolclass=SingletonThreadPool)
        assert isinstance(s.engine.pool, SingletonThreadPool)
        assert s.ping() is True
        s.close()
