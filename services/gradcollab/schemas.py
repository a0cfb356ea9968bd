"""
Pydantic schemas for the GradCollab API.

Request bodies use the web client's camelCase keys. Required text fields
default to "" so that a missing field and a blank one fail the same check.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CredentialsPayload(CamelModel):
    email: str = ""
    password: str = ""


class ProfileUpdatePayload(CamelModel):
    """Partial profile update; only the keys present in the body are written."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    name: Optional[str] = None
    field: Optional[str] = None
    specialization: Optional[str] = None
    current_availability: Optional[str] = None
    supervisor_email: Optional[str] = None
    research_experience_and_papers: Optional[str] = None
    university: Optional[str] = None
    degrees_held: Optional[str] = None
    short_bio: Optional[str] = None
    linked_in_url: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        # Validators only run for keys present in the body, so this rejects
        # an explicit null without making absent keys an error.
        if value is None:
            raise ValueError("Input should be a valid string")
        return value


class TaskRequestPayload(CamelModel):
    research_field: str = ""
    research_subject: str = ""
    project_impact_summary: str = ""
    field_requesting_help_from: str = ""
    expected_tasks_and_skills: str = ""
    reward: str = ""
    additional_info: Optional[str] = None
    state: Optional[str] = None


class CollabRequestPayload(CamelModel):
    field: str = ""
    subject: str = ""
    project_impact_summary: str = ""
    expected_tasks: str = ""
    expected_skills: str = ""
    expected_time: str = ""
    offer: str = ""
    additional_info: Optional[str] = None


class InvitePayload(CamelModel):
    invited_collab_email: str = ""


class TaskRequestCreatedResponse(BaseModel):
    taskRequestId: str


class CollabRequestCreatedResponse(BaseModel):
    collabRequestId: str


class OkResponse(BaseModel):
    ok: int = 1
