import json
from datetime import datetime, timezone
from typing import Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from ..models.cache_entry import CacheEntry
import logging

logger = logging.getLogger(__name__)


def export_history_key(user_type: str, user_id: int) -> str:
    return f"export_history:{user_type}:{user_id}"


def attendance_history_key(teacher_id: int) -> str:
    return f"attendance_history:{teacher_id}"


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def cache_get(db: AsyncSession, key: str, default: Any = None) -> Any:
    entry = await db.get(CacheEntry, key)
    if entry is None:
        return default
    return json.loads(entry.value)


async def cache_set(db: AsyncSession, key: str, value: Any) -> None:
    entry = await db.get(CacheEntry, key)
    payload = json.dumps(value, default=str)
    if entry is None:
        db.add(CacheEntry(key=key, value=payload))
    else:
        entry.value = payload
    await db.commit()


async def cache_delete(db: AsyncSession, key: str) -> None:
    entry = await db.get(CacheEntry, key)
    if entry is not None:
        await db.delete(entry)
        await db.commit()


async def record_export(db: AsyncSession, user_type: str, user_id: int, kind: str,
                        file_name: str, file_format: str, details: Optional[dict] = None) -> None:
    """
    Append an entry to the user's export history.

    The history is a convenience list; failing to write it does not fail the
    export itself.
    """
    key = export_history_key(user_type, user_id)
    try:
        history = await cache_get(db, key, default=[])
        history.append({
            "kind": kind,
            "file_name": file_name,
            "format": file_format,
            "details": details or {},
            "timestamp": timestamp(),
        })
        await cache_set(db, key, history)
    except SQLAlchemyError as e:
        logger.error(f"Could not record export history for {key}: {e}")
        await db.rollback()
