"""Audit ledger models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String

from ecosangam_api.db.base import Base


class LedgerEvent(Base):
    """Append-only audit ledger with hash chaining, one chain per project."""

    __tablename__ = "ledger_events"

    id = Column(Integer, primary_key=True, index=True)
    event_hash = Column(String(255), nullable=False, unique=True, index=True)
    previous_event_hash = Column(String(255), nullable=True, index=True)  # NULL for first event
    correlation_id = Column(String(255), nullable=False, index=True)
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False, index=True)
    event_type = Column(String(100), nullable=False, index=True)  # verification.approved, credits.minted, etc.
    payload_json = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
