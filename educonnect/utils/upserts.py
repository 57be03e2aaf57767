from typing import Iterable, List, Sequence, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import func
import logging

logger = logging.getLogger(__name__)


class BatchSaveError(Exception):
    """Some records of a batch failed to save. The ones that succeeded stay saved."""

    def __init__(self, message: str, failed: List[dict], saved: int):
        super().__init__(message)
        self.message = message
        self.failed = failed
        self.saved = saved


def _dialect_insert(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Upsert is not supported for dialect '{dialect}'")
    return insert


def upsert_statement(db: AsyncSession, model, values: dict, conflict_keys: Sequence[str],
                     update_keys: Sequence[str]):
    """INSERT ... ON CONFLICT (conflict_keys) DO UPDATE SET update_keys, updated_at"""
    insert = _dialect_insert(db)
    stmt = insert(model).values(**values)
    set_ = {key: stmt.excluded[key] for key in update_keys}
    if "updated_at" in model.__table__.columns:
        set_["updated_at"] = func.now()
    return stmt.on_conflict_do_update(index_elements=list(conflict_keys), set_=set_)


async def execute_each(db: AsyncSession, items: Iterable[Tuple[dict, object]], what: str) -> int:
    """
    Run each (descriptor, statement) pair and commit it on its own.

    A failing statement is rolled back alone and reported through
    BatchSaveError once every item has been tried.
    """
    failed = []
    saved = 0

    for descriptor, statement in items:
        try:
            await db.execute(statement)
            await db.commit()
            saved += 1
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error saving {what} for {descriptor}: {e}")
            failed.append({**descriptor, "error": e.__class__.__name__})

    if failed:
        raise BatchSaveError(
            f"Error saving {what}: {len(failed)} of {len(failed) + saved} records failed",
            failed=failed,
            saved=saved,
        )

    logger.info(f"Saved {saved} {what} records")
    return saved
