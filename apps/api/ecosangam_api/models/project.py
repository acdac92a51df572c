"""Blue-carbon restoration project model."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ecosangam_api.db.base import Base

ECOSYSTEM_TYPES = ("mangrove", "seagrass", "saltmarsh", "tidal_wetland")
PROJECT_STATUSES = ("pending", "active", "verified", "rejected", "requires_additional_data")


class Project(Base):
    """Restoration project with lifecycle state and credit counters."""

    __tablename__ = "projects"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    ecosystem_type = Column(String(50), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    state = Column(String(100), nullable=True, index=True)
    district = Column(String(100), nullable=True)
    area_hectares = Column(Float, nullable=False)
    methodology = Column(String(255), nullable=True)
    start_date = Column(Date, nullable=True)
    status = Column(String(50), default="pending", nullable=False, index=True)
    total_credits_issued = Column(Integer, default=0, nullable=False)
    available_credits = Column(Integer, default=0, nullable=False)
    created_by = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    organization_id = Column(String(64), ForeignKey("organizations.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="projects")
    creator = relationship("User")
    measurements = relationship("FieldMeasurement", back_populates="project")
    verifications = relationship("VerificationRecord", back_populates="project")
