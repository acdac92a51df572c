"""Verification record model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from ecosangam_api.db.base import Base

VERIFICATION_METHODS = ("field_visit", "drone_survey", "satellite_imagery", "mobile_data", "hybrid")
VERIFICATION_STATUSES = ("pending", "in_progress", "verified", "rejected", "requires_additional_data")
EVIDENCE_TYPES = (
    "photograph",
    "drone_imagery",
    "field_measurement",
    "document",
    "gps_data",
    "satellite",
    "mobile_data",
)


class VerificationRecord(Base):
    """Review of a project's evidence; frozen once immutable_record is set."""

    __tablename__ = "verification_records"

    id = Column(String(64), primary_key=True, index=True)
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False, index=True)
    verifier_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    verification_method = Column(String(50), nullable=False)
    status = Column(String(50), default="pending", nullable=False, index=True)
    evidence_items = Column(JSON, nullable=False, default=list)
    findings_json = Column(JSON, nullable=False, default=dict)
    confidence_score = Column(Float, default=0.0, nullable=False)
    carbon_credits_recommended = Column(Integer, default=0, nullable=False)
    immutable_record = Column(Boolean, default=False, nullable=False)
    blockchain_hash = Column(String(255), nullable=True, unique=True)
    resubmission_count = Column(Integer, default=0, nullable=False)
    opened_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    verified_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)

    # Relationships
    project = relationship("Project", back_populates="verifications")
    verifier = relationship("User")

    @property
    def compliance_issues(self) -> list[str]:
        return list((self.findings_json or {}).get("compliance_issues", []))
