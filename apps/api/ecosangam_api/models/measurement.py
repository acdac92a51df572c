"""Synced field measurement and drone flight models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from ecosangam_api.db.base import Base

MEASUREMENT_TYPES = ("plantation", "monitoring", "restoration")
SYNC_STATUSES = ("offline", "syncing", "synced", "error")
FLIGHT_STATUSES = ("scheduled", "in_progress", "completed", "aborted", "failed")


class FieldMeasurement(Base):
    """Append-only evidentiary record, written once per measurement id."""

    __tablename__ = "field_measurements"

    id = Column(String(64), primary_key=True, index=True)  # device-assigned idempotency key
    type = Column(String(50), nullable=False, index=True)  # plantation, monitoring, restoration
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False, index=True)
    recorded_at = Column(DateTime, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    gps_accuracy = Column(Float, nullable=True)  # meters
    data_json = Column(JSON, nullable=False)
    photographs = Column(JSON, nullable=True)  # evidence refs
    field_notes = Column(Text, nullable=True)
    field_officer = Column(String(255), nullable=False)
    organization_id = Column(String(64), ForeignKey("organizations.id"), nullable=False, index=True)
    device_id = Column(String(255), nullable=False, index=True)
    submitted_by = Column(String(64), ForeignKey("users.id"), nullable=True)
    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    project = relationship("Project", back_populates="measurements")


class FlightMission(Base):
    """Drone survey flight over a project area."""

    __tablename__ = "flight_missions"

    id = Column(String(64), primary_key=True, index=True)
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False, index=True)
    drone_id = Column(String(100), nullable=False)
    pilot_name = Column(String(255), nullable=True)
    started_at = Column(DateTime, nullable=False, index=True)
    ended_at = Column(DateTime, nullable=True)
    status = Column(String(50), default="completed", nullable=False)
    images_captured = Column(Integer, default=0, nullable=False)
    average_quality_score = Column(Float, nullable=True)  # 0-100
    coverage_area_m2 = Column(Float, nullable=True)
    detected_changes = Column(Integer, default=0, nullable=False)
    recorded_by = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    project = relationship("Project")
