import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
import psycopg2
from passlib.hash import pbkdf2_sha256

from db import execute, fetchall, fetchone, insert, scalar, utcnow

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

USER_COLUMNS = """
    id, username, email, is_admin, is_active,
    ai_generations, cv_saves, created_at, updated_at
"""

USAGE_FIELDS = {"ai_generations", "cv_saves"}


class AuthError(Exception):
    """Missing, invalid or expired bearer token."""


class DuplicateUserError(ValueError):
    pass


# -------------------------
# Row mapper
# -------------------------
def _row_to_user(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not row:
        return None
    user = dict(row)
    user.pop("password_hash", None)
    # sqlite stores 0/1, postgres may hand back ints or bools
    user["is_admin"] = bool(user.get("is_admin"))
    user["is_active"] = bool(user.get("is_active"))
    return user


# -------------------------
# Password + tokens
# -------------------------
def hash_password(password: str) -> str:
    return pbkdf2_sha256.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pbkdf2_sha256.verify(password, password_hash)
    except ValueError:
        # malformed stored hash
        return False


def create_token(user: Dict[str, Any], secret: str, expires_hours: int = 1) -> str:
    payload = {
        "sub": str(user["id"]),
        "username": user["username"],
        "isAdmin": bool(user.get("is_admin")),
        "exp": datetime.now(timezone.utc) + timedelta(hours=expires_hours),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        return {
            "user_id": int(payload["sub"]),
            "username": payload.get("username", ""),
            "is_admin": bool(payload.get("isAdmin")),
        }
    except (jwt.PyJWTError, KeyError, ValueError) as e:
        logger.info(f"[AUTH] Token rejected: {e}")
        raise AuthError("Not authorized, token failed") from e


# -------------------------
# User ops
# -------------------------
def create_user(username: str, email: str, password: str) -> Dict[str, Any]:
    """
    Create a new user. Raises DuplicateUserError if the email or username is taken.
    The first user in the DB is made admin.
    """
    username = username.strip()
    email = email.strip().lower()

    if fetchone("SELECT id FROM users WHERE email = %s OR username = %s", (email, username)):
        raise DuplicateUserError("User already exists with this email or username")

    is_admin = 1 if int(scalar("SELECT COUNT(*) FROM users", default=0)) == 0 else 0
    now = utcnow()

    try:
        user_id = insert(
            """
            INSERT INTO users (username, email, password_hash, is_admin, is_active, created_at, updated_at)
            VALUES (%s, %s, %s, %s, 1, %s, %s)
            """,
            (username, email, hash_password(password), is_admin, now, now),
        )
    except (sqlite3.IntegrityError, psycopg2.IntegrityError) as e:
        raise DuplicateUserError("User already exists with this email or username") from e

    if is_admin:
        logger.info(f"[AUTH] First user {email} registered as admin")
    return get_user_by_id(user_id)


def authenticate_user(email: str, password: str) -> Optional[Dict[str, Any]]:
    row = fetchone("SELECT * FROM users WHERE email = %s", ((email or "").strip().lower(),))
    if not row or not verify_password(password or "", row["password_hash"]):
        return None

    user = _row_to_user(row)
    if not user["is_active"]:
        return None
    return user


def get_user_by_id(user_id: int) -> Optional[Dict[str, Any]]:
    return _row_to_user(fetchone(f"SELECT {USER_COLUMNS} FROM users WHERE id = %s", (user_id,)))


def update_user(
    user_id: int,
    username: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    changes: Dict[str, Any] = {}
    if username:
        changes["username"] = username.strip()
    if email:
        changes["email"] = email.strip().lower()
    if password:
        changes["password_hash"] = hash_password(password)
    if not changes:
        raise ValueError("No fields to update")

    assignments = ", ".join(f"{col} = %s" for col in changes)
    try:
        updated = execute(
            f"UPDATE users SET {assignments}, updated_at = %s WHERE id = %s",
            list(changes.values()) + [utcnow(), user_id],
        )
    except (sqlite3.IntegrityError, psycopg2.IntegrityError) as e:
        raise DuplicateUserError("Username or email already taken.") from e

    if not updated:
        return None
    return get_user_by_id(user_id)


def get_all_users() -> List[Dict[str, Any]]:
    rows = fetchall(f"SELECT {USER_COLUMNS} FROM users ORDER BY created_at DESC")
    return [_row_to_user(r) for r in rows]


def toggle_active(user_id: int) -> Optional[Dict[str, Any]]:
    user = get_user_by_id(user_id)
    if not user:
        return None

    new_status = 0 if user["is_active"] else 1
    execute(
        "UPDATE users SET is_active = %s, updated_at = %s WHERE id = %s",
        (new_status, utcnow(), user_id),
    )
    return get_user_by_id(user_id)


# -------------------------
# Usage counters
# -------------------------
def increment_usage(user_id: int, field: str, amount: int = 1) -> None:
    if field not in USAGE_FIELDS:
        return
    execute(
        f"UPDATE users SET {field} = {field} + %s WHERE id = %s",
        (amount, user_id),
    )


def usage_overview(since: str) -> Dict[str, int]:
    """User and usage totals for the admin dashboard; `since` is an ISO timestamp."""
    row = fetchone(
        """
        SELECT
            COUNT(*) AS total_users,
            COALESCE(SUM(is_active), 0) AS active_users,
            COALESCE(SUM(ai_generations), 0) AS ai_generations,
            COALESCE(SUM(cv_saves), 0) AS cv_saves
        FROM users
        """
    ) or {}
    new_users = scalar("SELECT COUNT(*) FROM users WHERE created_at >= %s", (since,), default=0)
    return {
        "total_users": int(row.get("total_users") or 0),
        "active_users": int(row.get("active_users") or 0),
        "new_users": int(new_users),
        "ai_generations": int(row.get("ai_generations") or 0),
        "cv_saves": int(row.get("cv_saves") or 0),
    }
