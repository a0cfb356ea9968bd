"""
Email normalization, password hashing and session helpers.
"""

from __future__ import annotations

import logging

import bcrypt
from email_validator import EmailNotValidError, validate_email
from starlette.requests import Request

from gradcollab.db import UserRecord

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user_id"
BCRYPT_ROUNDS = 10
# bcrypt only looks at the first 72 bytes and newer releases refuse longer input.
MAX_PASSWORD_BYTES = 72

GMAIL_DOMAINS = {"gmail.com", "googlemail.com"}
PLUS_SUBADDRESS_DOMAINS = {
    "outlook.com",
    "hotmail.com",
    "live.com",
    "icloud.com",
    "me.com",
    "mac.com",
}
DASH_SUBADDRESS_DOMAINS = {"yahoo.com", "ymail.com", "rocketmail.com"}


def normalize_email(email: str) -> str:
    """
    Fold an address so that equivalent spellings collide.

    Lowercases the address, strips provider sub-addresses (`+tag` for Gmail,
    Outlook and iCloud, `-tag` for Yahoo) and rewrites googlemail.com to
    gmail.com. Dots in Gmail local parts are kept.
    """
    email = (email or "").strip()
    local, sep, domain = email.rpartition("@")
    if not sep or not local or not domain:
        return email
    local = local.lower()
    domain = domain.lower()

    if domain in GMAIL_DOMAINS:
        local = local.split("+", 1)[0]
        domain = "gmail.com"
    elif domain in PLUS_SUBADDRESS_DOMAINS:
        local = local.split("+", 1)[0]
    elif domain in DASH_SUBADDRESS_DOMAINS:
        local = local.split("-", 1)[0]

    if not local:
        return email.lower()
    return f"{local}@{domain}"


def is_valid_email(email: str) -> bool:
    """Syntax-only address check (no DNS lookups)."""
    if not email:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    candidate = password.encode("utf-8")
    if len(candidate) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(candidate, password_hash.encode("utf-8"))


def login_session(request: Request, user: UserRecord) -> None:
    """Bind the session cookie to `user`."""
    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id
    logger.info("User %s logged in", user.id)


def logout_session(request: Request) -> None:
    user_id = request.session.get(SESSION_USER_KEY)
    request.session.clear()
    if user_id:
        logger.info("User %s logged out", user_id)


def session_user_id(request: Request) -> str | None:
    return request.session.get(SESSION_USER_KEY)
