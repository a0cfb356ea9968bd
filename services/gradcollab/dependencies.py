"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from gradcollab.auth import session_user_id
from gradcollab.config import get_settings
from gradcollab.db import DbClient, InMemoryDbClient, SqlDbClient, UserRecord
from gradcollab.errors import UnauthenticatedError
from gradcollab.mailer import InMemoryMailer, Mailer, SendGridMailer

_db_client: DbClient | None = None
_mailer: Mailer | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client built once per process.
    """
    global _db_client
    if _db_client is not None:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = SqlDbClient(settings.database_url)
    return _db_client


def get_mailer() -> Mailer:
    global _mailer
    if _mailer is not None:
        return _mailer

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.sendgrid_api_key:
        _mailer = InMemoryMailer()
    else:
        _mailer = SendGridMailer(api_key=settings.sendgrid_api_key)
    return _mailer


def get_optional_user(
    request: Request, db: DbClient = Depends(get_db_client)
) -> Optional[UserRecord]:
    user_id = session_user_id(request)
    if not user_id:
        return None
    return db.get_user(user_id)


def require_user(user: Optional[UserRecord] = Depends(get_optional_user)) -> UserRecord:
    if user is None:
        raise UnauthenticatedError()
    return user
