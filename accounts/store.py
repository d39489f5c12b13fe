"""
accounts/store.py -- SQLAlchemy Core persistence layer for identities and student profiles.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_identity / _row_to_student are the mappers. The service layer never
touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Transactions:
  Single-statement operations use `with self.engine.connect()` + commit.
  Operations that write two rows (identity + profile on create, profile +
  identity on update) use `with self.engine.begin()`: SQLAlchemy commits on
  normal exit and rolls back on any exception, so a failed second statement
  also undoes the first. Nothing here catches database errors -- they
  propagate to AccountService, which maps them to an ErrorKind.

Connection pool:
  One Engine per AccountStore, created in __init__ and disposed in close().
  The owner (API lifespan, CLI command, test fixture) constructs and closes
  it explicitly; there is no module-level pool. Pool sizing arguments apply to
  server databases only -- SQLite URLs keep the dialect's default pool.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import Pool

from accounts.models import Gender, Identity, Role, StudentProfile

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_ROLE_CHECK = "role IN ({})".format(", ".join(f"'{r.value}'" for r in Role))

_identities = Table(
    "identities",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),  # case-sensitive
    Column("credential_hash", String(255), nullable=False),
    Column("email", String(255), unique=True),  # NULLs are distinct
    Column("first_name", String(100)),
    Column("last_name", String(100)),
    Column("role", String(20), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    CheckConstraint(_ROLE_CHECK, name="ck_identities_role"),
)

_students = Table(
    "student_profiles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identity_id", Integer, ForeignKey("identities.id"), nullable=False, unique=True),
    Column("student_number", String(30), nullable=False, unique=True),
    Column("date_of_birth", String(10)),  # YYYY-MM-DD
    Column("gender", String(10)),
    Column("address", Text),
    Column("phone_number", String(30)),
    Column("parent_contact", String(255)),
    Column("enrollment_date", String(10), nullable=False),
    Column("graduation_date", String(10)),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Every student read joins the identity columns the profile carries.
_student_select = select(
    _students,
    _identities.c.username,
    _identities.c.email,
    _identities.c.first_name,
    _identities.c.last_name,
).select_from(_students.join(_identities, _students.c.identity_id == _identities.c.id))


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable foreign keys and WAL journal mode on each new SQLite connection.

    SQLite PRAGMAs are per-connection and not inherited from the pool, and
    foreign key enforcement is off by default.
    """
    dbapi_conn.execute("PRAGMA foreign_keys=ON")
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _date_to_str(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str_to_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


class RowMissingError(LookupError):
    """Raised inside a multi-statement transaction when an UPDATE matched no row.

    Raising (rather than returning) lets engine.begin() roll back the
    statements that already ran.
    """


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Identity and StudentProfile rows.

    Usage:
        store = AccountStore("sqlite:///school.db")
        identity = store.insert_identity(Identity(username="admin", role=Role.ADMIN), hash_password("secret1"))
        row = store.get_identity_by_username("admin")
        store.close()
    """

    def __init__(
        self,
        db_url: str,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        pool_timeout: Optional[int] = None,
        poolclass: Optional[type[Pool]] = None,
    ) -> None:
        # Bound parameters include credential hashes; keep them out of error text and logs.
        engine_args: dict = {"hide_parameters": True}
        is_sqlite = db_url.startswith("sqlite")
        if is_sqlite:
            engine_args["connect_args"] = {"check_same_thread": False}
        else:
            engine_args["pool_pre_ping"] = True
            if pool_size is not None:
                engine_args["pool_size"] = pool_size
            if max_overflow is not None:
                engine_args["max_overflow"] = max_overflow
            if pool_timeout is not None:
                engine_args["pool_timeout"] = pool_timeout
        if poolclass is not None:
            engine_args["poolclass"] = poolclass
        self.engine: Engine = create_engine(db_url, **engine_args)
        if is_sqlite:
            event.listen(self.engine, "connect", _configure_sqlite)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if a connection can be checked out and used.

        Used by the health endpoint and the CLI `check` command. This is the
        one store method that swallows errors: it answers a yes/no question
        about availability.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Identity queries
    # ------------------------------------------------------------------

    def insert_identity(self, identity: Identity, credential_hash: str) -> Identity:
        """Insert a new identity and return it with id and timestamps populated.

        Raises sqlalchemy.exc.IntegrityError if the username or email already exists.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            identity_id = self._insert_identity_row(conn, identity, credential_hash, now)
        return _copy_identity(identity, identity_id, now)

    def get_identity_by_id(self, identity_id: int) -> Identity | None:
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_identity_by_username(self, username: str, active_only: bool = False) -> Identity | None:
        """Look up an identity by exact username (case-sensitive). Returns None if not found.

        active_only=True restricts the match to active rows; authentication
        uses that form so deactivated accounts look exactly like unknown ones.
        """
        query = _identities.select().where(_identities.c.username == username)
        if active_only:
            query = query.where(_identities.c.is_active == 1)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_identity(row) if row is not None else None

    def count_by_username(self, username: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_identities).where(_identities.c.username == username)
            ).scalar()
        return result or 0

    def count_by_email(self, email: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_identities).where(_identities.c.email == email)
            ).scalar()
        return result or 0

    def update_credential_hash(self, identity_id: int, credential_hash: str) -> bool:
        """Overwrite the stored hash in one statement. Returns False if identity_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.update()
                .where(_identities.c.id == identity_id)
                .values(credential_hash=credential_hash, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def set_identity_active(self, identity_id: int, is_active: bool) -> bool:
        """Soft-delete or reactivate an identity. Returns False if identity_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.update()
                .where(_identities.c.id == identity_id)
                .values(is_active=1 if is_active else 0, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Student profile queries
    # ------------------------------------------------------------------

    def insert_student_with_identity(
        self,
        profile: StudentProfile,
        username: str,
        credential_hash: str,
        email: Optional[str],
    ) -> StudentProfile:
        """Insert a STUDENT identity and its profile row in one transaction.

        The identity id generated by the first INSERT becomes the profile's
        identity_id. If either INSERT fails the whole transaction is rolled
        back and the exception propagates; no identity row survives without
        its profile.
        """
        now = _now_iso()
        identity = Identity(
            username=username,
            role=StudentProfile.ROLE,
            email=email,
            first_name=profile.first_name,
            last_name=profile.last_name,
        )
        enrollment_date = profile.enrollment_date or date.today()
        with self.engine.begin() as conn:
            identity_id = self._insert_identity_row(conn, identity, credential_hash, now)
            profile_id = self._insert_student_row(conn, profile, identity_id, enrollment_date, now)
        return StudentProfile(
            student_number=profile.student_number,
            first_name=profile.first_name,
            last_name=profile.last_name,
            date_of_birth=profile.date_of_birth,
            gender=profile.gender,
            address=profile.address,
            phone_number=profile.phone_number,
            parent_contact=profile.parent_contact,
            enrollment_date=enrollment_date,
            graduation_date=profile.graduation_date,
            id=profile_id,
            identity_id=identity_id,
            is_active=profile.is_active,
            created_at=now,
            updated_at=now,
            username=username,
            email=email,
        )

    def get_student_by_id(self, profile_id: int) -> StudentProfile | None:
        """Return an active student profile by id, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _student_select.where((_students.c.id == profile_id) & (_students.c.is_active == 1))
            ).fetchone()
        return _row_to_student(row) if row is not None else None

    def get_student_by_number(self, student_number: str) -> StudentProfile | None:
        """Return an active student profile by student number, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _student_select.where(
                    (_students.c.student_number == student_number) & (_students.c.is_active == 1)
                )
            ).fetchone()
        return _row_to_student(row) if row is not None else None

    def list_students(self) -> list[StudentProfile]:
        """Return all active student profiles, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _student_select.where(_students.c.is_active == 1).order_by(_students.c.id.desc())
            ).fetchall()
        return [_row_to_student(r) for r in rows]

    def update_student(self, profile: StudentProfile) -> None:
        """Update a profile row and its identity's email and name in one transaction.

        Raises RowMissingError (after rolling back) if either row does not
        exist or the profile has been deactivated. Raises IntegrityError on a
        duplicate student number or email.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _students.update()
                .where(_students.c.id == profile.id)
                .where(_students.c.is_active == 1)
                .values(
                    student_number=profile.student_number,
                    date_of_birth=_date_to_str(profile.date_of_birth),
                    gender=profile.gender.value if profile.gender else None,
                    address=profile.address,
                    phone_number=profile.phone_number,
                    parent_contact=profile.parent_contact,
                    graduation_date=_date_to_str(profile.graduation_date),
                    updated_at=now,
                )
            )
            if result.rowcount == 0:
                raise RowMissingError(f"student profile {profile.id}")
            owner = select(_students.c.identity_id).where(_students.c.id == profile.id).scalar_subquery()
            result = conn.execute(
                _identities.update()
                .where(_identities.c.id == owner)
                .values(
                    email=profile.email,
                    first_name=profile.first_name,
                    last_name=profile.last_name,
                    updated_at=now,
                )
            )
            if result.rowcount == 0:
                raise RowMissingError(f"identity for student profile {profile.id}")

    def set_student_active(self, profile_id: int, is_active: bool) -> bool:
        """Soft-delete or reactivate a profile row. Returns False if profile_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _students.update()
                .where(_students.c.id == profile_id)
                .values(is_active=1 if is_active else 0, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def count_students(self, enrolled_since: Optional[date] = None) -> int:
        """Count active students, optionally only those enrolled on or after a date."""
        query = select(func.count()).select_from(_students).where(_students.c.is_active == 1)
        if enrolled_since is not None:
            # ISO dates compare correctly as strings.
            query = query.where(_students.c.enrollment_date >= enrolled_since.isoformat())
        with self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def count_identities(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_identities)).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Statement helpers (run on a caller-owned connection)
    # ------------------------------------------------------------------

    def _insert_identity_row(self, conn: Connection, identity: Identity, credential_hash: str, now: str) -> int:
        result = conn.execute(
            _identities.insert().values(
                username=identity.username,
                credential_hash=credential_hash,
                email=identity.email,
                first_name=identity.first_name,
                last_name=identity.last_name,
                role=Role.parse(identity.role).value,
                is_active=1 if identity.is_active else 0,
                created_at=now,
                updated_at=now,
            )
        )
        return result.inserted_primary_key[0]

    def _insert_student_row(
        self,
        conn: Connection,
        profile: StudentProfile,
        identity_id: int,
        enrollment_date: date,
        now: str,
    ) -> int:
        result = conn.execute(
            _students.insert().values(
                identity_id=identity_id,
                student_number=profile.student_number,
                date_of_birth=_date_to_str(profile.date_of_birth),
                gender=profile.gender.value if profile.gender else None,
                address=profile.address,
                phone_number=profile.phone_number,
                parent_contact=profile.parent_contact,
                enrollment_date=enrollment_date.isoformat(),
                graduation_date=_date_to_str(profile.graduation_date),
                is_active=1 if profile.is_active else 0,
                created_at=now,
                updated_at=now,
            )
        )
        return result.inserted_primary_key[0]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _copy_identity(identity: Identity, identity_id: int, now: str) -> Identity:
    return Identity(
        username=identity.username,
        role=Role.parse(identity.role),
        email=identity.email,
        first_name=identity.first_name,
        last_name=identity.last_name,
        id=identity_id,
        is_active=identity.is_active,
        created_at=now,
        updated_at=now,
    )


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        username=row.username,
        credential_hash=row.credential_hash,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        role=Role(row.role),
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_student(row) -> StudentProfile:
    return StudentProfile(
        id=row.id,
        identity_id=row.identity_id,
        student_number=row.student_number,
        date_of_birth=_str_to_date(row.date_of_birth),
        gender=Gender(row.gender) if row.gender else None,
        address=row.address,
        phone_number=row.phone_number,
        parent_contact=row.parent_contact,
        enrollment_date=_str_to_date(row.enrollment_date),
        graduation_date=_str_to_date(row.graduation_date),
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
        username=row.username,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
    )
