# services/activity.py: audit trail sink
from __future__ import annotations
import logging
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder

from models import ActivityLog

logger = logging.getLogger("uvicorn")


async def record(action: str, entity_type: str, entity_id: Any = None, details: Optional[dict] = None) -> None:
    """Append an audit entry. Never raises: a broken audit trail must not fail the caller."""
    try:
        await ActivityLog.create(
            action=action,
            entity_type=entity_type,
            entity_id=None if entity_id is None else str(entity_id),
            details=jsonable_encoder(details) if details is not None else None,
        )
    except Exception as e:
        logger.warning(f"[activity] {action} {entity_type}#{entity_id} not recorded: {e}")


async def recent(limit: int = 500, entity_type: Optional[str] = None) -> list[dict]:
    qs = ActivityLog.all()
    if entity_type:
        qs = qs.filter(entity_type=entity_type)
    return await qs.order_by("-id").limit(limit).values(
        "id", "action", "entity_type", "entity_id", "details", "created_at"
    )
