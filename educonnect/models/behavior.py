from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from ..core.database import Base


class BehaviorCategory(str, enum.Enum):
    GOOD = "good"
    REGULAR = "regular"
    BAD = "bad"


class BehaviorRecord(Base):
    __tablename__ = "behavior_records"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    category = Column(String, nullable=False)
    note = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    created_by = Column(Integer, ForeignKey("teachers.id", ondelete="SET NULL"), nullable=True)

    student = relationship("Student", back_populates="behavior")
