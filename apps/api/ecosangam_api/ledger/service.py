"""Audit ledger service with hash chaining."""

import hashlib
import json
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ecosangam_api.models import LedgerEvent


class LedgerService:
    """Tamper-evident audit ledger with hash chaining.

    Event hashes double as the opaque transaction / blockchain hash handed
    out for approvals and credit movements.
    """

    def __init__(self, db: Session):
        """Initialize ledger service."""
        self.db = db

    def _hash_event(self, event_data: dict) -> str:
        """Compute hash of event data."""
        # Create deterministic JSON representation
        event_str = json.dumps(event_data, sort_keys=True, default=str)
        return hashlib.sha256(event_str.encode()).hexdigest()

    def _get_last_event_hash(self, project_id: str) -> Optional[str]:
        """Get hash of last event for project."""
        last_event = (
            self.db.query(LedgerEvent)
            .filter(LedgerEvent.project_id == project_id)
            .order_by(LedgerEvent.id.desc())
            .first()
        )
        return last_event.event_hash if last_event else None

    def _event_data(self, event: LedgerEvent) -> dict:
        return {
            "project_id": event.project_id,
            "correlation_id": event.correlation_id,
            "event_type": event.event_type,
            "payload": event.payload_json,
            "previous_hash": event.previous_event_hash,
            "timestamp": event.created_at.isoformat(),
        }

    def append_event(
        self,
        project_id: str,
        correlation_id: str,
        event_type: str,
        payload: dict,
    ) -> LedgerEvent:
        """Append event to ledger with hash chaining."""
        previous_hash = self._get_last_event_hash(project_id)
        created_at = datetime.utcnow()

        ledger_event = LedgerEvent(
            previous_event_hash=previous_hash,
            correlation_id=correlation_id,
            project_id=project_id,
            event_type=event_type,
            payload_json=payload,
            created_at=created_at,
        )
        ledger_event.event_hash = self._hash_event(self._event_data(ledger_event))

        self.db.add(ledger_event)
        self.db.flush()

        return ledger_event

    def get_events(self, project_id: str) -> list[LedgerEvent]:
        """Chain for a project, oldest first."""
        return (
            self.db.query(LedgerEvent)
            .filter(LedgerEvent.project_id == project_id)
            .order_by(LedgerEvent.id.asc())
            .all()
        )

    def verify_chain(self, project_id: str) -> tuple[bool, Optional[str]]:
        """Verify hash chain integrity for project."""
        previous_hash = None
        for event in self.get_events(project_id):
            # Verify previous hash matches
            if event.previous_event_hash != previous_hash:
                return False, f"Event {event.id} does not link to {previous_hash}"

            computed_hash = self._hash_event(self._event_data(event))
            if computed_hash != event.event_hash:
                return False, f"Event {event.id} hash mismatch"

            previous_hash = event.event_hash

        return True, None
