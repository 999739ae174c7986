"""
bizdash/audit.py

Audit logging helper utilities.

Goals:
- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store username snapshot to preserve identity even if the user is removed later.
- Store IP address for traceability.

IMPORTANT:
- log_action() ADDS an AuditLog entry to the current SQLAlchemy session.
  The storage layer calls it inside its transaction, so the entry commits or
  rolls back together with the change it describes.
- Works outside a request (CLI, seeding): user and IP are then left empty.
"""

from __future__ import annotations

import enum
import json
from typing import Any, Dict, Iterable, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog


def _safe_str(value: Any) -> Optional[str]:
    """
    Convert a value to a stable string representation suitable for JSON and DB storage.

    - Enum members are stored by value.
    - Lists/dicts (JSON columns) are dumped as JSON.
    - For None: return None.
    """
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def serialize_model(instance: Any, exclude: Iterable[str] = ()) -> Dict[str, Optional[str]]:
    """
    Column snapshot of a row for the before/after fields of AuditLog.

    Relationships are skipped; derived JSON fields (lowStock, totalSpent, ...) are
    not columns and never appear. Columns named in exclude (password_hash) are left out.
    """
    skipped = set(exclude)
    return {
        column.name: _safe_str(getattr(instance, column.name))
        for column in instance.__table__.columns
        if column.name not in skipped
    }


def _acting_user() -> tuple[Optional[int], Optional[str]]:
    if not has_request_context() or not current_user.is_authenticated:
        return None, None
    return current_user.id, current_user.username


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        entity: SQLAlchemy model instance with .id (after flush)
        action: CREATE / UPDATE / DELETE
        before: dict snapshot (optional)
        after: dict snapshot (optional)

    SECURITY NOTE:
    - request.remote_addr is as Flask sees it. Behind a reverse proxy,
      configure ProxyFix / trusted proxy headers to capture the real client IP.
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    user_id, username = _acting_user()

    entry = AuditLog(
        user_id=user_id,
        username_snapshot=username,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
