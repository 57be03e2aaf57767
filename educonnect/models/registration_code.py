from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class RegistrationCode(Base):
    __tablename__ = "registration_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    label = Column(String, nullable=True)
    is_used = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    created_by = Column(Integer, ForeignKey("admins.id"), nullable=False)
    used_by = Column(
        Integer,
        ForeignKey("teachers.id", ondelete="SET NULL", use_alter=True, name="fk_registration_codes_used_by"),
        nullable=True
    )

    creator = relationship("Admin", back_populates="codes")
