"""Append-only audit rows and running order notes for payment operations."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from checkout_bridge.models.order import AuditLog

logger = logging.getLogger("checkout_bridge.audit")


async def log_event(
    session: AsyncSession,
    action: str,
    order_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """Add an audit row for `action` to the session; the caller commits."""
    serialized = json.dumps(details, default=str) if details else None
    entry = AuditLog(
        order_id=order_id,
        action=action,
        details=serialized,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info("AUDIT | order=%s action=%s | %s", order_id or "-", action, (serialized or "")[:200])
    return entry


def append_note(existing_notes: Optional[str], message: str) -> str:
    """Append a timestamped note to an order's running notes."""
    note = f"[{datetime.now(timezone.utc):%Y-%m-%d %H:%M UTC}] {message}"
    return f"{existing_notes}\n{note}" if existing_notes else note
