"""Accounts and cookie sessions.

A session cookie carries ``user_id:issued_at:signature`` where the signature
is an HMAC-SHA256 of the first two fields under ``COOKIE_SECRET``. Cookies
older than ``SESSION_MAX_AGE`` seconds are refused even when correctly signed.
"""
import hashlib
import hmac
import logging
import os
import time
import uuid

import bcrypt as _bcrypt
import kuzu
from fastapi import Depends, Request, Response

from . import store
from .db import get_conn
from .errors import DuplicateError, UnauthorizedError, ValidationError
from .relationship_types import create_default_types

logger = logging.getLogger(__name__)

COOKIE_SECRET = os.environ.get("COOKIE_SECRET", "")
SESSION_COOKIE = "session"
SESSION_MAX_AGE = int(os.environ.get("SESSION_MAX_AGE", 30 * 24 * 3600))

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72  # bcrypt ignores anything past this

_USER_COLUMNS = "u.id, u.email, u.display_name, u.password_hash, u.created_at"


# ── Passwords ──

def validate_password(password: str):
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password is too long (max {MAX_PASSWORD_BYTES} bytes)")


def hash_password(password: str) -> str:
    validate_password(password)
    return _bcrypt.hashpw(password.encode("utf-8"), _bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        # malformed stored hash
        return False


# ── Session cookies ──

def _sign(payload: str) -> str:
    return hmac.new(COOKIE_SECRET.encode(), payload.encode(), hashlib.sha256).hexdigest()


def create_session_token(user_id: str, issued_at: int | None = None) -> str:
    payload = f"{user_id}:{int(time.time()) if issued_at is None else issued_at}"
    return f"{payload}:{_sign(payload)}"


def verify_session_token(token: str | None, now: float | None = None) -> str | None:
    """The user id a cookie was issued for, or None if it is forged, malformed or stale."""
    if not token or not COOKIE_SECRET:
        return None
    try:
        user_id, issued_at, sig = token.split(":")
        age = (time.time() if now is None else now) - int(issued_at)
    except ValueError:
        return None
    if not hmac.compare_digest(sig, _sign(f"{user_id}:{issued_at}")):
        return None
    if age < 0 or age > SESSION_MAX_AGE:
        return None
    return user_id


def start_session(response: Response, user_id: str):
    response.set_cookie(SESSION_COOKIE, create_session_token(user_id),
                        max_age=SESSION_MAX_AGE, httponly=True, samesite="lax")


def end_session(response: Response):
    response.delete_cookie(SESSION_COOKIE)


# ── Accounts ──

def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email address is required")
    return email


def public_user(user: dict) -> dict:
    return {k: v for k, v in user.items() if k != "password_hash"}


def _find_user(conn: kuzu.Connection, where: str, params: dict) -> dict | None:
    result = conn.execute(f"MATCH (u:User) WHERE {where} RETURN {_USER_COLUMNS}", params)
    if not result.has_next():
        return None
    row = result.get_next()
    return {"id": row[0], "email": row[1], "display_name": row[2],
            "password_hash": row[3], "created_at": row[4]}


def get_user_by_email(conn: kuzu.Connection, email: str) -> dict | None:
    return _find_user(conn, "u.email = $email", {"email": email.strip().lower()})


def get_user_by_id(conn: kuzu.Connection, user_id: str) -> dict | None:
    return _find_user(conn, "u.id = $id", {"id": user_id})


def create_user(conn: kuzu.Connection, email: str, display_name: str,
                password: str) -> dict:
    """Register an account and seed its default relationship types.

    Returns the public view of the user (no password hash).
    """
    email = normalize_email(email)
    if not display_name or not display_name.strip():
        raise ValidationError("Display name is required")
    if get_user_by_email(conn, email):
        raise DuplicateError("A user with this email already exists")
    user = {"id": str(uuid.uuid4()), "email": email,
            "display_name": display_name.strip(), "created_at": store.now_iso()}
    conn.execute(
        "CREATE (u:User {id: $id, email: $email, display_name: $display_name, "
        "password_hash: $password_hash, created_at: $created_at})",
        {**user, "password_hash": hash_password(password)}
    )
    create_default_types(conn, user["id"])
    logger.info("User %s registered", user["id"])
    return user


def authenticate_user(conn: kuzu.Connection, email: str, password: str) -> dict:
    """The public user for a correct email and password; anything else is UnauthorizedError."""
    user = get_user_by_email(conn, email or "")
    if user is None or not verify_password(password, user["password_hash"]):
        logger.info("Failed login for %s", (email or "").strip().lower())
        raise UnauthorizedError("Invalid email or password")
    return public_user(user)


def get_current_user(request: Request, conn=Depends(get_conn)) -> dict:
    """FastAPI dependency resolving the session cookie to the signed-in user."""
    user_id = verify_session_token(request.cookies.get(SESSION_COOKIE))
    user = get_user_by_id(conn, user_id) if user_id else None
    if user is None:
        raise UnauthorizedError("Not authenticated")
    return public_user(user)
