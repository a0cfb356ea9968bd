"""
Repositories for users, task requests and collab requests.

Two implementations share the `DbClient` interface: an in-memory one for
development and tests, and a SQLAlchemy one that accepts any SQLAlchemy URL
(Postgres in production, SQLite for tests).
"""

from __future__ import annotations

import threading
import time
import uuid
import dataclasses
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from sqlalchemy import (
    Column,
    Float,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    insert,
    literal,
    or_,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

PROFILE_FIELDS = (
    "name",
    "field",
    "specialization",
    "current_availability",
    "supervisor_email",
    "research_experience_and_papers",
    "university",
    "degrees_held",
    "short_bio",
    "linked_in_url",
)


class DuplicateEmailError(Exception):
    """Raised when a user with the same (normalized) email already exists."""


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> float:
    return time.time()


@dataclass
class UserRecord:
    email: str
    password: str
    name: str = ""
    field: str = ""
    specialization: str = ""
    current_availability: str = ""
    supervisor_email: str = ""
    research_experience_and_papers: str = ""
    university: str = ""
    degrees_held: str = ""
    short_bio: str = ""
    linked_in_url: str = ""
    id: str = dataclasses.field(default_factory=_new_id)
    created_at: float = dataclasses.field(default_factory=_now)
    updated_at: float = dataclasses.field(default_factory=_now)

    def public_dict(self) -> dict:
        """The client-safe projection: everything except the password hash."""
        return {
            "_id": self.id,
            "email": self.email,
            "name": self.name,
            "field": self.field,
            "specialization": self.specialization,
            "currentAvailability": self.current_availability,
            "supervisorEmail": self.supervisor_email,
            "researchExperienceAndPapers": self.research_experience_and_papers,
            "university": self.university,
            "degreesHeld": self.degrees_held,
            "shortBio": self.short_bio,
            "linkedInUrl": self.linked_in_url,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class TaskRequestRecord:
    user_id: str
    research_field: str
    research_subject: str
    project_impact_summary: str
    field_requesting_help_from: str
    expected_tasks_and_skills: str
    reward: str
    additional_info: Optional[str] = None
    state: Optional[str] = None
    id: str = dataclasses.field(default_factory=_new_id)
    created_at: float = dataclasses.field(default_factory=_now)
    updated_at: float = dataclasses.field(default_factory=_now)

    def as_dict(self) -> dict:
        data = {
            "_id": self.id,
            "researchField": self.research_field,
            "researchSubject": self.research_subject,
            "projectImpactSummary": self.project_impact_summary,
            "fieldRequestingHelpFrom": self.field_requesting_help_from,
            "expectedTasksAndSkills": self.expected_tasks_and_skills,
            "reward": self.reward,
            "userId": self.user_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.additional_info is not None:
            data["additionalInfo"] = self.additional_info
        if self.state is not None:
            data["state"] = self.state
        return data


@dataclass
class CollabRequestRecord:
    user_id: str
    field: str
    subject: str
    project_impact_summary: str
    expected_tasks: str
    expected_skills: str
    expected_time: str
    offer: str
    additional_info: Optional[str] = None
    invited_collabs: List[str] = dataclasses.field(default_factory=list)
    id: str = dataclasses.field(default_factory=_new_id)
    created_at: float = dataclasses.field(default_factory=_now)
    updated_at: float = dataclasses.field(default_factory=_now)

    def as_dict(self) -> dict:
        data = {
            "_id": self.id,
            "field": self.field,
            "subject": self.subject,
            "projectImpactSummary": self.project_impact_summary,
            "expectedTasks": self.expected_tasks,
            "expectedSkills": self.expected_skills,
            "expectedTime": self.expected_time,
            "offer": self.offer,
            "userId": self.user_id,
            "invitedCollabs": list(self.invited_collabs),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.additional_info is not None:
            data["additionalInfo"] = self.additional_info
        return data


class DbClient(Protocol):
    """Interface for database access."""

    def create_user(self, user: UserRecord) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def update_user_profile(self, user_id: str, updates: Dict[str, str]) -> int:
        """Apply a partial profile update and return the modified count."""
        ...

    def create_task_request(self, task_request: TaskRequestRecord) -> TaskRequestRecord:
        ...

    def get_task_request(self, task_request_id: str) -> Optional[TaskRequestRecord]:
        ...

    def find_task_requests(
        self,
        *,
        user_id: Optional[str] = None,
        research_field: Optional[str] = None,
        field_requesting_help_from: Optional[str] = None,
    ) -> list[TaskRequestRecord]:
        ...

    def create_collab_request(
        self, collab_request: CollabRequestRecord
    ) -> CollabRequestRecord:
        ...

    def get_collab_request(
        self, collab_request_id: str
    ) -> Optional[CollabRequestRecord]:
        ...

    def find_collab_requests(self, user_id: str) -> list[CollabRequestRecord]:
        ...

    def add_collab_invite(
        self, collab_request_id: str, owner_id: str, email: str
    ) -> Optional[CollabRequestRecord]:
        """
        Atomically append `email` to the request's invite list, provided the
        request exists, is owned by `owner_id` and has not invited `email` yet.
        Returns the updated record, or None when nothing matched.
        """
        ...


def _task_request_matches(
    record: TaskRequestRecord,
    user_id: Optional[str],
    research_field: Optional[str],
    field_requesting_help_from: Optional[str],
) -> bool:
    if user_id is not None and record.user_id != user_id:
        return False
    if research_field is not None and record.research_field != research_field:
        return False
    if (
        field_requesting_help_from is not None
        and record.field_requesting_help_from != field_requesting_help_from
    ):
        return False
    return True


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.task_requests: Dict[str, TaskRequestRecord] = {}
        self.collab_requests: Dict[str, CollabRequestRecord] = {}
        # Held for every read and write of the dicts below.
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.task_requests.clear()
            self.collab_requests.clear()

    def create_user(self, user: UserRecord) -> UserRecord:
        with self._lock:
            if any(existing.email == user.email for existing in self.users.values()):
                raise DuplicateEmailError(user.email)
            self.users[user.id] = user
        return user

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self.users.values():
                if user.email == email:
                    return user
        return None

    def update_user_profile(self, user_id: str, updates: Dict[str, str]) -> int:
        with self._lock:
            user = self.users.get(user_id)
            if not user:
                return 0
            changed = {
                key: value
                for key, value in updates.items()
                if getattr(user, key) != value
            }
            if not changed:
                return 0
            for key, value in changed.items():
                setattr(user, key, value)
            user.updated_at = _now()
            return 1

    def create_task_request(self, task_request: TaskRequestRecord) -> TaskRequestRecord:
        with self._lock:
            self.task_requests[task_request.id] = task_request
        return task_request

    def get_task_request(self, task_request_id: str) -> Optional[TaskRequestRecord]:
        with self._lock:
            return self.task_requests.get(task_request_id)

    def find_task_requests(
        self,
        *,
        user_id: Optional[str] = None,
        research_field: Optional[str] = None,
        field_requesting_help_from: Optional[str] = None,
    ) -> list[TaskRequestRecord]:
        with self._lock:
            records = list(self.task_requests.values())
        return [
            record
            for record in records
            if _task_request_matches(
                record, user_id, research_field, field_requesting_help_from
            )
        ]

    def create_collab_request(
        self, collab_request: CollabRequestRecord
    ) -> CollabRequestRecord:
        with self._lock:
            self.collab_requests[collab_request.id] = collab_request
        return collab_request

    def get_collab_request(
        self, collab_request_id: str
    ) -> Optional[CollabRequestRecord]:
        with self._lock:
            return self.collab_requests.get(collab_request_id)

    def find_collab_requests(self, user_id: str) -> list[CollabRequestRecord]:
        with self._lock:
            return [
                record
                for record in self.collab_requests.values()
                if record.user_id == user_id
            ]

    def add_collab_invite(
        self, collab_request_id: str, owner_id: str, email: str
    ) -> Optional[CollabRequestRecord]:
        with self._lock:
            record = self.collab_requests.get(collab_request_id)
            if (
                record is None
                or record.user_id != owner_id
                or email in record.invited_collabs
            ):
                return None
            record.invited_collabs.append(email)
            record.updated_at = _now()
            return record


class SqlDbClient:
    """
    Relational store for accounts and postings.

    Creates the users, task_requests, collab_requests and collab_invites
    tables on first use. Invites live in their own table so that appending
    one is a single guarded INSERT.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("SqlDbClient needs a database URL")
        self.engine = create_engine(database_url, pool_pre_ping=True)
        self.Session = sessionmaker(self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            email=row.email,
            password=row.password,
            created_at=row.created_at,
            updated_at=row.updated_at,
            **{name: getattr(row, name) for name in PROFILE_FIELDS},
        )

    def _to_task_request_record(self, row: "TaskRequestRow") -> TaskRequestRecord:
        return TaskRequestRecord(
            id=row.id,
            user_id=row.user_id,
            research_field=row.research_field,
            research_subject=row.research_subject,
            project_impact_summary=row.project_impact_summary,
            field_requesting_help_from=row.field_requesting_help_from,
            expected_tasks_and_skills=row.expected_tasks_and_skills,
            reward=row.reward,
            additional_info=row.additional_info,
            state=row.state,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_collab_request_record(
        self, row: "CollabRequestRow", invited_collabs: list[str]
    ) -> CollabRequestRecord:
        return CollabRequestRecord(
            id=row.id,
            user_id=row.user_id,
            field=row.field,
            subject=row.subject,
            project_impact_summary=row.project_impact_summary,
            expected_tasks=row.expected_tasks,
            expected_skills=row.expected_skills,
            expected_time=row.expected_time,
            offer=row.offer,
            additional_info=row.additional_info,
            invited_collabs=invited_collabs,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _load_invites(
        self, session: Session, collab_request_ids: list[str]
    ) -> Dict[str, list[str]]:
        invites: Dict[str, list[str]] = {cid: [] for cid in collab_request_ids}
        if not collab_request_ids:
            return invites
        stmt = (
            select(CollabInviteRow)
            .where(CollabInviteRow.collab_request_id.in_(collab_request_ids))
            .order_by(CollabInviteRow.id.asc())
        )
        for invite in session.execute(stmt).scalars():
            invites[invite.collab_request_id].append(invite.email)
        return invites

    def create_user(self, user: UserRecord) -> UserRecord:
        with self.Session() as session:
            row = UserRow(
                id=user.id,
                email=user.email,
                password=user.password,
                created_at=user.created_at,
                updated_at=user.updated_at,
                **{name: getattr(user, name) for name in PROFILE_FIELDS},
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateEmailError(user.email) from exc
            return user

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            return self._to_user_record(row)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.email == email)
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            return self._to_user_record(row)

    def update_user_profile(self, user_id: str, updates: Dict[str, str]) -> int:
        if not updates:
            return 0
        # Only rows where some value actually differs count as modified.
        stmt = (
            update(UserRow.__table__)
            .where(
                UserRow.id == user_id,
                or_(*[getattr(UserRow, key) != value for key, value in updates.items()]),
            )
            .values(**updates, updated_at=_now())
        )
        with self.Session() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount or 0

    def create_task_request(self, task_request: TaskRequestRecord) -> TaskRequestRecord:
        with self.Session() as session:
            session.add(
                TaskRequestRow(
                    id=task_request.id,
                    user_id=task_request.user_id,
                    research_field=task_request.research_field,
                    research_subject=task_request.research_subject,
                    project_impact_summary=task_request.project_impact_summary,
                    field_requesting_help_from=task_request.field_requesting_help_from,
                    expected_tasks_and_skills=task_request.expected_tasks_and_skills,
                    reward=task_request.reward,
                    additional_info=task_request.additional_info,
                    state=task_request.state,
                    created_at=task_request.created_at,
                    updated_at=task_request.updated_at,
                )
            )
            session.commit()
            return task_request

    def get_task_request(self, task_request_id: str) -> Optional[TaskRequestRecord]:
        with self.Session() as session:
            row = session.get(TaskRequestRow, task_request_id)
            if not row:
                return None
            return self._to_task_request_record(row)

    def find_task_requests(
        self,
        *,
        user_id: Optional[str] = None,
        research_field: Optional[str] = None,
        field_requesting_help_from: Optional[str] = None,
    ) -> list[TaskRequestRecord]:
        stmt = select(TaskRequestRow)
        if user_id is not None:
            stmt = stmt.where(TaskRequestRow.user_id == user_id)
        if research_field is not None:
            stmt = stmt.where(TaskRequestRow.research_field == research_field)
        if field_requesting_help_from is not None:
            stmt = stmt.where(
                TaskRequestRow.field_requesting_help_from == field_requesting_help_from
            )
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._to_task_request_record(row) for row in rows]

    def create_collab_request(
        self, collab_request: CollabRequestRecord
    ) -> CollabRequestRecord:
        with self.Session() as session:
            session.add(
                CollabRequestRow(
                    id=collab_request.id,
                    user_id=collab_request.user_id,
                    field=collab_request.field,
                    subject=collab_request.subject,
                    project_impact_summary=collab_request.project_impact_summary,
                    expected_tasks=collab_request.expected_tasks,
                    expected_skills=collab_request.expected_skills,
                    expected_time=collab_request.expected_time,
                    offer=collab_request.offer,
                    additional_info=collab_request.additional_info,
                    created_at=collab_request.created_at,
                    updated_at=collab_request.updated_at,
                )
            )
            for email in collab_request.invited_collabs:
                session.add(
                    CollabInviteRow(
                        collab_request_id=collab_request.id,
                        email=email,
                        created_at=collab_request.created_at,
                    )
                )
            session.commit()
            return collab_request

    def get_collab_request(
        self, collab_request_id: str
    ) -> Optional[CollabRequestRecord]:
        with self.Session() as session:
            row = session.get(CollabRequestRow, collab_request_id)
            if not row:
                return None
            invites = self._load_invites(session, [row.id])
            return self._to_collab_request_record(row, invites[row.id])

    def find_collab_requests(self, user_id: str) -> list[CollabRequestRecord]:
        with self.Session() as session:
            stmt = select(CollabRequestRow).where(CollabRequestRow.user_id == user_id)
            rows = session.execute(stmt).scalars().all()
            invites = self._load_invites(session, [row.id for row in rows])
            return [
                self._to_collab_request_record(row, invites[row.id]) for row in rows
            ]

    def add_collab_invite(
        self, collab_request_id: str, owner_id: str, email: str
    ) -> Optional[CollabRequestRecord]:
        now = _now()
        # One INSERT ... SELECT: the owner predicate and the insert run as a
        # single statement, and the unique constraint rejects a racing duplicate.
        owned = select(
            literal(collab_request_id, type_=String),
            literal(email, type_=String),
            literal(now, type_=Float),
        ).select_from(CollabRequestRow.__table__).where(
            CollabRequestRow.id == collab_request_id,
            CollabRequestRow.user_id == owner_id,
        )
        stmt = insert(CollabInviteRow.__table__).from_select(
            ["collab_request_id", "email", "created_at"], owned
        )
        with self.Session() as session:
            try:
                result = session.execute(stmt)
                if not result.rowcount:
                    session.rollback()
                    return None
                session.execute(
                    update(CollabRequestRow.__table__)
                    .where(CollabRequestRow.id == collab_request_id)
                    .values(updated_at=now)
                )
                session.commit()
            except IntegrityError:
                session.rollback()
                return None
            row = session.get(CollabRequestRow, collab_request_id)
            invites = self._load_invites(session, [collab_request_id])
            return self._to_collab_request_record(row, invites[collab_request_id])


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True)
    password = Column(String, nullable=False)
    name = Column(String, nullable=False, default="")
    field = Column(String, nullable=False, default="")
    specialization = Column(String, nullable=False, default="")
    current_availability = Column(String, nullable=False, default="")
    supervisor_email = Column(String, nullable=False, default="")
    research_experience_and_papers = Column(String, nullable=False, default="")
    university = Column(String, nullable=False, default="")
    degrees_held = Column(String, nullable=False, default="")
    short_bio = Column(String, nullable=False, default="")
    linked_in_url = Column(String, nullable=False, default="")
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class TaskRequestRow(Base):
    __tablename__ = "task_requests"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    research_field = Column(String, nullable=False)
    research_subject = Column(String, nullable=False)
    project_impact_summary = Column(String, nullable=False)
    field_requesting_help_from = Column(String, nullable=False)
    expected_tasks_and_skills = Column(String, nullable=False)
    reward = Column(String, nullable=False)
    additional_info = Column(String, nullable=True)
    state = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class CollabRequestRow(Base):
    __tablename__ = "collab_requests"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    field = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    project_impact_summary = Column(String, nullable=False)
    expected_tasks = Column(String, nullable=False)
    expected_skills = Column(String, nullable=False)
    expected_time = Column(String, nullable=False)
    offer = Column(String, nullable=False)
    additional_info = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class CollabInviteRow(Base):
    __tablename__ = "collab_invites"
    __table_args__ = (
        UniqueConstraint("collab_request_id", "email", name="uq_collab_invite_email"),
    )

    # Autoincrement id preserves invite order.
    id = Column(Integer, primary_key=True, autoincrement=True)
    collab_request_id = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)
