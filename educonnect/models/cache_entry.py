from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from ..core.database import Base


class CacheEntry(Base):
    """String-keyed JSON store for per-user convenience data (export history)."""
    __tablename__ = "cache_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False, default="null")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
