from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    paternal_surname = Column(String, nullable=False)
    maternal_surname = Column(String, nullable=True)
    enrollment_number = Column(String, nullable=True)
    group_label = Column(String, nullable=True, index=True)
    father_name = Column(String, nullable=True)
    mother_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    added_at = Column(DateTime(timezone=True), server_default=func.now())
    school_id = Column(Integer, ForeignKey("schools.id"), nullable=False)

    school = relationship("School", back_populates="students")
    grades = relationship("GradeEntry", back_populates="student", cascade="all, delete-orphan")
    attendance = relationship("AttendanceRecord", back_populates="student", cascade="all, delete-orphan")
    behavior = relationship("BehaviorRecord", back_populates="student", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.paternal_surname, self.maternal_surname]
        return " ".join(p for p in parts if p)
