"""
Doctor Model - Stores doctor-specific profile information.

This model extends the base User model with professional details.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from ..database import Base


class Doctor(Base):
    """
    Doctor Model - Stores doctor-specific information

    Fields:
    - id: Primary key for doctor profile
    - user_id: Foreign key to User model
    - first_name / last_name: Doctor's name
    - specialization: Doctor's specialization (e.g. Chiropractic)
    - license_number: Professional license number
    - created_at: When the doctor profile was created
    - updated_at: When the doctor profile was last updated
    """
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    specialization = Column(String(100), nullable=True)
    license_number = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="doctor_profile", uselist=False)

    def __repr__(self):
        """String representation of the Doctor model"""
        return f"<Doctor(id={self.id}, user_id={self.user_id}, specialization='{self.specialization}')>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
