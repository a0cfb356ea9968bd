"""
HTTP routes for the GradCollab API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from gradcollab.auth import (
    MAX_PASSWORD_BYTES,
    hash_password,
    is_valid_email,
    login_session,
    logout_session,
    normalize_email,
    verify_password,
)
from gradcollab.config import Settings, get_settings
from gradcollab.db import (
    CollabRequestRecord,
    DbClient,
    DuplicateEmailError,
    TaskRequestRecord,
    UserRecord,
)
from gradcollab.dependencies import get_db_client, get_mailer, require_user
from gradcollab.emails import invite_subject, render_collab_invite
from gradcollab.errors import (
    AuthError,
    ConflictError,
    ForbiddenError,
    InviteConflictError,
    NotFoundError,
    UpdateError,
    ValidationError,
)
from gradcollab.mailer import MailMessage, Mailer
from gradcollab.schemas import (
    CollabRequestCreatedResponse,
    CollabRequestPayload,
    CredentialsPayload,
    InvitePayload,
    OkResponse,
    ProfileUpdatePayload,
    TaskRequestCreatedResponse,
    TaskRequestPayload,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_PASSWORD_LENGTH = 6
DUPLICATE_EMAIL_MESSAGE = "Account with that email address already exists."

TASK_REQUEST_REQUIRED = {
    "research_field": "Research field cannot be blank",
    "research_subject": "Research subject cannot be blank",
    "project_impact_summary": "Project impact summary cannot be blank",
    "field_requesting_help_from": "Field requesting help from cannot be blank",
    "expected_tasks_and_skills": "Expected tasks and skills cannot be blank",
    "reward": "Reward cannot be blank",
}

COLLAB_REQUEST_REQUIRED = {
    "field": "Field cannot be blank",
    "subject": "Subject cannot be blank",
    "project_impact_summary": "Project impact summary cannot be blank",
    "expected_tasks": "Expected tasks cannot be blank",
    "expected_skills": "Expected skills cannot be blank",
    "expected_time": "Expected time cannot be blank",
    "offer": "Offer cannot be blank",
}


def _require_non_blank(payload: BaseModel, messages: dict[str, str]) -> None:
    errors = {}
    for name, message in messages.items():
        value = getattr(payload, name)
        if not value or not value.strip():
            alias = type(payload).model_fields[name].alias or name
            errors[alias] = message
    if errors:
        raise ValidationError(errors)


def _validated_credentials(payload: CredentialsPayload, *, signup: bool) -> str:
    """Normalize the email and check both fields; return the normalized email."""
    email = normalize_email(payload.email)
    errors = {}
    if not is_valid_email(email):
        errors["email"] = "Email is not valid"
    if signup and len(payload.password) < MIN_PASSWORD_LENGTH:
        errors["password"] = (
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    elif signup and len(payload.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        errors["password"] = f"Password must be at most {MAX_PASSWORD_BYTES} bytes long"
    elif not signup and not payload.password:
        errors["password"] = "Password cannot be blank"
    if errors:
        raise ValidationError(errors)
    return email


# -----------------------------
# Accounts and sessions
# -----------------------------


@router.post("/signup")
def signup(
    payload: CredentialsPayload,
    request: Request,
    db: DbClient = Depends(get_db_client),
):
    """
    Create a local account and log it in.
    """
    email = _validated_credentials(payload, signup=True)
    if db.get_user_by_email(email):
        logger.warning("Signup rejected, email already registered")
        raise ConflictError("email", DUPLICATE_EMAIL_MESSAGE)

    user = UserRecord(email=email, password=hash_password(payload.password))
    try:
        db.create_user(user)
    except DuplicateEmailError as exc:
        # Lost a race with a concurrent signup for the same address.
        raise ConflictError("email", DUPLICATE_EMAIL_MESSAGE) from exc
    logger.info("Registered user %s", user.id)

    login_session(request, user)
    return user.public_dict()


@router.post("/login")
def login(
    payload: CredentialsPayload,
    request: Request,
    db: DbClient = Depends(get_db_client),
):
    email = _validated_credentials(payload, signup=False)
    user = db.get_user_by_email(email)
    if user is None or not verify_password(payload.password, user.password):
        logger.warning("Failed login attempt")
        raise AuthError()

    login_session(request, user)
    return user.public_dict()


@router.post("/logout")
def logout(request: Request):
    logout_session(request)
    return {}


@router.get("/me")
def get_current_user(user: UserRecord = Depends(require_user)):
    return user.public_dict()


@router.get("/users/{user_id}")
def get_user(user_id: str, db: DbClient = Depends(get_db_client)):
    """Public profile of any user."""
    user = db.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user.public_dict()


@router.patch("/users/{user_id}", response_model=OkResponse)
def update_user(
    user_id: str,
    payload: ProfileUpdatePayload,
    user: UserRecord = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    """
    Partially update the caller's own profile.

    A request that changes nothing is reported as a failed update.
    """
    if user.id != user_id:
        raise ForbiddenError()

    updates = payload.model_dump(exclude_unset=True)
    modified = db.update_user_profile(user_id, updates)
    if modified != 1:
        raise UpdateError()
    return OkResponse(ok=1)


# -----------------------------
# Task requests
# -----------------------------


@router.post("/task-requests", response_model=TaskRequestCreatedResponse)
def create_task_request(
    payload: TaskRequestPayload,
    user: UserRecord = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    _require_non_blank(payload, TASK_REQUEST_REQUIRED)
    record = db.create_task_request(
        TaskRequestRecord(
            user_id=user.id,
            research_field=payload.research_field,
            research_subject=payload.research_subject,
            project_impact_summary=payload.project_impact_summary,
            field_requesting_help_from=payload.field_requesting_help_from,
            expected_tasks_and_skills=payload.expected_tasks_and_skills,
            reward=payload.reward,
            additional_info=payload.additional_info,
            state=payload.state,
        )
    )
    return TaskRequestCreatedResponse(taskRequestId=record.id)


@router.get("/task-requests/{task_request_id}")
def get_task_request(
    task_request_id: str,
    with_user: bool = Query(False, alias="withUser"),
    db: DbClient = Depends(get_db_client),
):
    """
    Get a task request by id. `withUser` attaches the owner's public profile.
    """
    record = db.get_task_request(task_request_id)
    if record is None:
        raise NotFoundError("Task request not found")
    if not with_user:
        return record.as_dict()

    owner = db.get_user(record.user_id)
    if owner is None:
        raise NotFoundError("User not found")
    return {"user": owner.public_dict(), "taskRequest": record.as_dict()}


@router.get("/task-requests")
def list_task_requests(
    for_user_id: Optional[str] = Query(None, alias="forUserId"),
    research_field: Optional[str] = Query(None, alias="researchField"),
    field_requesting_help_from: Optional[str] = Query(
        None, alias="fieldRequestingHelpFrom"
    ),
    db: DbClient = Depends(get_db_client),
):
    records = db.find_task_requests(
        user_id=for_user_id,
        research_field=research_field,
        field_requesting_help_from=field_requesting_help_from,
    )
    return [record.as_dict() for record in records]


# -----------------------------
# Collab requests
# -----------------------------


@router.post("/collab-requests", response_model=CollabRequestCreatedResponse)
def create_collab_request(
    payload: CollabRequestPayload,
    user: UserRecord = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    _require_non_blank(payload, COLLAB_REQUEST_REQUIRED)
    record = db.create_collab_request(
        CollabRequestRecord(
            user_id=user.id,
            field=payload.field,
            subject=payload.subject,
            project_impact_summary=payload.project_impact_summary,
            expected_tasks=payload.expected_tasks,
            expected_skills=payload.expected_skills,
            expected_time=payload.expected_time,
            offer=payload.offer,
            additional_info=payload.additional_info,
        )
    )
    return CollabRequestCreatedResponse(collabRequestId=record.id)


@router.get("/collab-requests/{collab_request_id}")
def get_collab_request(collab_request_id: str, db: DbClient = Depends(get_db_client)):
    record = db.get_collab_request(collab_request_id)
    if record is None:
        raise NotFoundError("Collab request not found")
    return record.as_dict()


@router.get("/collab-requests")
def list_collab_requests(
    user: UserRecord = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    """Collab requests owned by the logged-in user."""
    return [record.as_dict() for record in db.find_collab_requests(user.id)]


@router.post("/collab-requests/{collab_request_id}/invites", response_model=OkResponse)
def invite_collaborator(
    collab_request_id: str,
    payload: InvitePayload,
    user: UserRecord = Depends(require_user),
    db: DbClient = Depends(get_db_client),
    mailer: Mailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
):
    """
    Record an invite on one of the caller's collab requests and email it.

    The invite is persisted before the email goes out; a dispatch failure
    leaves it recorded.
    """
    email = normalize_email(payload.invited_collab_email)
    if not is_valid_email(email):
        raise ValidationError({"invitedCollabEmail": "Email is not valid"})

    record = db.add_collab_invite(collab_request_id, user.id, email)
    if record is None:
        logger.warning(
            "Invite on collab request %s by %s matched nothing",
            collab_request_id,
            user.id,
        )
        raise InviteConflictError()

    content = render_collab_invite(record, settings.web_client_origin)
    mailer.send(
        MailMessage(
            to=email,
            from_=settings.mail_from,
            subject=invite_subject(record),
            text=content.text,
            html=content.html,
        )
    )
    logger.info("Invited a collaborator to collab request %s", record.id)
    return OkResponse(ok=1)
