from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base

PARTICIPATION = "participation"


class GradeEntry(Base):
    __tablename__ = "grade_entries"
    __table_args__ = (
        UniqueConstraint("student_id", "subject", "period", "evaluation_type", name="uq_grade_entry_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    subject = Column(String, nullable=False)
    period = Column(String, nullable=False)
    evaluation_type = Column(String, nullable=False)
    score = Column(Float, nullable=False, default=0)
    comment = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    created_by = Column(Integer, ForeignKey("teachers.id", ondelete="SET NULL"), nullable=True)

    student = relationship("Student", back_populates="grades")
