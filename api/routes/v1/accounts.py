"""
api/routes/v1/accounts.py -- Identity and student provisioning routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /identities                         -- create a standalone identity
  GET    /identities/exists                  -- username / email existence check
  GET    /identities/{identity_id}           -- identity detail (no hash)
  PUT    /identities/{identity_id}/password  -- replace password
  DELETE /identities/{identity_id}           -- deactivate (soft delete)
  POST   /students                           -- create identity + profile atomically
  GET    /students                           -- list active students
  GET    /students/count                     -- active count, optional ?since=
  GET    /students/{profile_id}              -- student detail
  PUT    /students/{profile_id}              -- update profile + identity fields
  DELETE /students/{profile_id}              -- deactivate profile (soft delete)

All handlers are sync defs: AccountService is blocking, and FastAPI runs sync
handlers in its threadpool.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Request, Response

from accounts.models import Identity, Role
from accounts.results import ErrorKind, IndeterminateError
from accounts.service import AccountService
from api.errors import http_error, raise_for_outcome
from api.models import (
    ExistsResponse,
    IdentityCreate,
    IdentityResponse,
    PasswordUpdate,
    StudentCountResponse,
    StudentCreate,
    StudentCreatedResponse,
    StudentResponse,
    StudentUpdate,
)

router = APIRouter()


def _service(request: Request) -> AccountService:
    return request.app.state.account_service


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


@router.post("/identities", response_model=IdentityResponse, status_code=201)
def create_identity(request: Request, body: IdentityCreate) -> IdentityResponse:
    """Create an identity with any role. Duplicate username or email -> 409."""
    identity = Identity(
        username=body.username,
        role=Role(body.role.value),
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    outcome = _service(request).create_identity(identity, body.password)
    raise_for_outcome(outcome)
    return IdentityResponse.from_identity(outcome.value)


@router.get("/identities/exists", response_model=ExistsResponse)
def identity_exists(
    request: Request,
    username: Optional[str] = None,
    email: Optional[str] = None,
) -> ExistsResponse:
    """Report whether a username and/or email is taken.

    Returns 503 when the store cannot answer -- never a false "does not exist".
    """
    if username is None and email is None:
        raise http_error(ErrorKind.INVALID_INPUT, "Provide username and/or email.")
    service = _service(request)
    try:
        return ExistsResponse(
            username_exists=service.username_exists(username) if username is not None else None,
            email_exists=service.email_exists(email) if email is not None else None,
        )
    except IndeterminateError as exc:
        raise http_error(exc.kind, "Could not determine availability.") from exc


@router.get("/identities/{identity_id}", response_model=IdentityResponse)
def get_identity(request: Request, identity_id: int) -> IdentityResponse:
    identity = _service(request).get_identity(identity_id)
    if identity is None:
        raise http_error(ErrorKind.NOT_FOUND, "Identity not found.")
    return IdentityResponse.from_identity(identity)


@router.put("/identities/{identity_id}/password", status_code=204)
def update_password(request: Request, identity_id: int, body: PasswordUpdate) -> Response:
    """Replace an identity's password. Unknown id -> 404; weak password -> 422."""
    raise_for_outcome(_service(request).update_password(identity_id, body.new_password))
    return Response(status_code=204)


@router.delete("/identities/{identity_id}", status_code=204)
def deactivate_identity(request: Request, identity_id: int) -> Response:
    raise_for_outcome(_service(request).deactivate_identity(identity_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------


@router.post("/students", response_model=StudentCreatedResponse, status_code=201)
def create_student(request: Request, body: StudentCreate) -> StudentCreatedResponse:
    """Create a STUDENT identity and its profile in one transaction.

    Either a password is supplied, or generate_password=true asks the server
    to generate a temporary one, which is returned once in the response.
    """
    service = _service(request)
    profile = body.to_profile()
    if body.password is not None:
        outcome = service.create_profile(profile, body.username, body.password, body.email)
        raise_for_outcome(outcome)
        return StudentCreatedResponse(student=StudentResponse.from_profile(outcome.value))
    if not body.generate_password:
        raise http_error(ErrorKind.INVALID_INPUT, "Provide a password or set generate_password.")
    provisioned = service.provision_student(profile, body.username, body.email)
    raise_for_outcome(provisioned)
    created, temp_password = provisioned.value
    return StudentCreatedResponse(
        student=StudentResponse.from_profile(created),
        temporary_password=temp_password,
    )


@router.get("/students", response_model=list[StudentResponse])
def list_students(request: Request) -> list[StudentResponse]:
    """Return all active students, newest first."""
    return [StudentResponse.from_profile(s) for s in _service(request).list_students()]


@router.get("/students/count", response_model=StudentCountResponse)
def count_students(request: Request, since: Optional[date] = None) -> StudentCountResponse:
    service = _service(request)
    total = service.count_students() if since is None else service.count_students_enrolled_since(since)
    return StudentCountResponse(total=total, enrolled_since=since)


@router.get("/students/{profile_id}", response_model=StudentResponse)
def get_student(request: Request, profile_id: int) -> StudentResponse:
    student = _service(request).get_student(profile_id)
    if student is None:
        raise http_error(ErrorKind.NOT_FOUND, "Student not found.")
    return StudentResponse.from_profile(student)


@router.put("/students/{profile_id}", response_model=StudentResponse)
def update_student(request: Request, profile_id: int, body: StudentUpdate) -> StudentResponse:
    """Update a student's profile and identity fields together."""
    outcome = _service(request).update_student(body.to_profile(profile_id))
    raise_for_outcome(outcome)
    return StudentResponse.from_profile(outcome.value)


@router.delete("/students/{profile_id}", status_code=204)
def deactivate_student(request: Request, profile_id: int) -> Response:
    raise_for_outcome(_service(request).deactivate_student(profile_id))
    return Response(status_code=204)
