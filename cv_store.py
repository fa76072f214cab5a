# cv_store.py
"""
Per-user CV storage.

Every query is scoped by owner. A CV that exists but belongs to somebody
else is reported exactly like a missing one (None / False).
"""
import json
import logging
from typing import Any, Dict, List, Optional

from db import execute, fetchall, fetchone, insert, utcnow
from models import CVData

logger = logging.getLogger(__name__)

DEFAULT_CV_NAME = "Untitled CV"
UPDATABLE_FIELDS = ("cv_data", "template_id", "name")


def _serialize(cv_data: Any) -> str:
    if isinstance(cv_data, CVData):
        return json.dumps(cv_data.to_wire())
    return json.dumps(cv_data)


def _row_to_record(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    record = dict(row)
    if "cv_data" in record and isinstance(record["cv_data"], str):
        record["cv_data"] = json.loads(record["cv_data"])
    return record


def create_cv(owner_id: int, cv_data: Any, template_id: Optional[str] = None, name: Optional[str] = None) -> Dict[str, Any]:
    now = utcnow()
    cv_id = insert(
        """
        INSERT INTO cvs (user_id, cv_data, template_id, name, created_at, updated_at)
        VALUES (%s, %s, %s, %s, %s, %s)
        """,
        (owner_id, _serialize(cv_data), template_id, (name or "").strip() or DEFAULT_CV_NAME, now, now),
    )
    logger.info(f"[DB] Created CV {cv_id} for user {owner_id}")
    return get_cv(owner_id, cv_id)


def list_cvs(owner_id: int) -> List[Dict[str, Any]]:
    """Summaries only (no cv_data), most recently updated first."""
    return fetchall(
        """
        SELECT id, user_id, template_id, name, created_at, updated_at
        FROM cvs
        WHERE user_id = %s
        ORDER BY updated_at DESC, id DESC
        """,
        (owner_id,),
    )


def get_cv(owner_id: int, cv_id: int) -> Optional[Dict[str, Any]]:
    row = fetchone(
        "SELECT * FROM cvs WHERE id = %s AND user_id = %s",
        (cv_id, owner_id),
    )
    return _row_to_record(row)


def update_cv(owner_id: int, cv_id: int, **fields) -> Optional[Dict[str, Any]]:
    """
    Partial update of cv_data / template_id / name.
    Fields passed as None are left alone. Raises ValueError when nothing is given.
    """
    changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
    if not changes:
        raise ValueError("No fields to update provided")

    if "cv_data" in changes:
        changes["cv_data"] = _serialize(changes["cv_data"])

    assignments = ", ".join(f"{col} = %s" for col in changes)
    params = list(changes.values()) + [utcnow(), cv_id, owner_id]

    updated = execute(
        f"UPDATE cvs SET {assignments}, updated_at = %s WHERE id = %s AND user_id = %s",
        params,
    )
    if not updated:
        return None
    return get_cv(owner_id, cv_id)


def delete_cv(owner_id: int, cv_id: int) -> bool:
    deleted = execute("DELETE FROM cvs WHERE id = %s AND user_id = %s", (cv_id, owner_id))
    if deleted:
        logger.info(f"[DB] Deleted CV {cv_id} for user {owner_id}")
    return deleted > 0


def count_cvs(updated_since: Optional[str] = None) -> int:
    if updated_since:
        row = fetchone("SELECT COUNT(*) AS n FROM cvs WHERE updated_at >= %s", (updated_since,))
    else:
        row = fetchone("SELECT COUNT(*) AS n FROM cvs")
    return int(row["n"]) if row else 0
