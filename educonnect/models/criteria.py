from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class Criterion(Base):
    __tablename__ = "criteria"
    __table_args__ = (UniqueConstraint("subject_id", "name", name="uq_criteria_subject_name"),)

    id = Column(Integer, primary_key=True, index=True)
    # Stored lower-cased, matches GradeEntry.evaluation_type
    name = Column(String, nullable=False)
    weight = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)

    subject = relationship("Subject", back_populates="criteria")
