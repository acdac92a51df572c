"""Offline-first field record store.

Each device keeps a FIFO queue of captured measurements in the key-value
store under ``offline_measurements:<device_id>``. ``sync_pending`` drains it
oldest first through a ``RecordSubmitter``. The queue is always re-read
before it is written, so measurements saved while a sync is running are
never lost.
"""

import asyncio
import logging
import math
import time
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from ecosangam_api.auth.capabilities import require_capability
from ecosangam_api.errors import DomainError, FieldViolation, TransientSyncError, ValidationError
from ecosangam_api.identity.service import Session
from ecosangam_api.ledger.locks import KeyedLocks
from ecosangam_api.models import FieldMeasurement, User
from ecosangam_api.models.measurement import MEASUREMENT_TYPES
from ecosangam_api.records.submitter import RecordSubmitter
from ecosangam_api.registry.service import ProjectRegistry
from ecosangam_api.schemas import MeasurementIn, QueueEntryView, SyncReport
from ecosangam_api.services.base import UNSCOPED_ROLES
from ecosangam_api.storage.kv import KeyValueStore
from ecosangam_api.utils.metrics import measurement_syncs, measurements_saved, sync_duration

logger = logging.getLogger(__name__)


def validate_measurement(measurement: MeasurementIn) -> list[FieldViolation]:
    """Shape checks that can run on the device without connectivity."""
    violations = []
    if measurement.type not in MEASUREMENT_TYPES:
        violations.append(FieldViolation("type", f"must be one of {', '.join(MEASUREMENT_TYPES)}"))
    if not measurement.project_id.strip():
        violations.append(FieldViolation("project_id", "must not be empty"))
    if not -90 <= measurement.gps.lat <= 90:
        violations.append(FieldViolation("gps.lat", "must be within [-90, 90]"))
    if not -180 <= measurement.gps.lng <= 180:
        violations.append(FieldViolation("gps.lng", "must be within [-180, 180]"))
    accuracy = measurement.gps.accuracy
    if accuracy is not None and (not math.isfinite(accuracy) or accuracy < 0):
        violations.append(FieldViolation("gps.accuracy", "must be a finite, non-negative number"))
    if not measurement.field_officer.strip():
        violations.append(FieldViolation("field_officer", "must not be empty"))
    return violations


class FieldRecordStore:
    """Device queues plus the synced measurement history."""

    def __init__(
        self,
        db: DBSession,
        kv: KeyValueStore,
        submitter: RecordSubmitter,
        registry: ProjectRegistry,
        locks: KeyedLocks,
    ):
        self.db = db
        self.kv = kv
        self.submitter = submitter
        self.registry = registry
        self.locks = locks

    @staticmethod
    def _queue_key(device_id: str) -> str:
        return f"offline_measurements:{device_id}"

    def _load_queue(self, device_id: str) -> list[dict]:
        return self.kv.get_json(self._queue_key(device_id), default=[])

    def _store_queue(self, device_id: str, queue: list[dict]) -> None:
        self.kv.set_json(self._queue_key(device_id), queue)

    def _find_entry(self, device_id: str, entry_id: str) -> Optional[dict]:
        for entry in self._load_queue(device_id):
            if entry["id"] == entry_id:
                return entry
        return None

    def _update_entry(self, device_id: str, entry_id: str, **changes) -> None:
        queue = self._load_queue(device_id)
        for entry in queue:
            if entry["id"] == entry_id:
                entry.update(changes)
        self._store_queue(device_id, queue)

    def _remove_entry(self, device_id: str, entry_id: str) -> None:
        queue = [entry for entry in self._load_queue(device_id) if entry["id"] != entry_id]
        self._store_queue(device_id, queue)

    def save_offline(self, device_id: str, measurement: MeasurementIn) -> str:
        """Queue a measurement on the device; returns its idempotency key."""
        violations = validate_measurement(measurement)
        if not device_id or not device_id.strip():
            violations.append(FieldViolation("device_id", "must not be empty"))
        if violations:
            raise ValidationError(violations)

        measurement_id = measurement.id or f"msr-{uuid.uuid4().hex}"
        queue = self._load_queue(device_id)
        if any(entry["id"] == measurement_id for entry in queue):
            return measurement_id

        entry = measurement.model_dump(mode="json")
        entry.update(
            {
                "id": measurement_id,
                "timestamp": (measurement.timestamp or datetime.utcnow()).isoformat(),
                "sync_status": "offline",
                "attempts": 0,
                "last_error": None,
                "retryable": True,
            }
        )
        queue.append(entry)
        self._store_queue(device_id, queue)

        measurements_saved.labels(type=measurement.type).inc()
        logger.info(
            f"Queued measurement {measurement_id}",
            extra={"device_id": device_id, "project_id": measurement.project_id, "queue_length": len(queue)},
        )
        return measurement_id

    async def sync_pending(self, session: Session, device_id: str) -> SyncReport:
        """Push queued measurements, oldest first. One sync per device at a time."""
        require_capability(session.user, "measurements:submit")
        if not await self.submitter.is_online():
            measurement_syncs.labels(status="offline").inc()
            raise TransientSyncError("No connectivity; measurements stay queued")

        report = SyncReport()
        async with self.locks.hold(f"device:{device_id}"):
            started = time.monotonic()
            for entry_id in [entry["id"] for entry in self._load_queue(device_id)]:
                entry = self._find_entry(device_id, entry_id)
                if entry is None or entry["sync_status"] == "synced":
                    continue
                if entry["sync_status"] == "error" and not entry.get("retryable", True):
                    report.skipped.append(entry_id)
                    continue

                previous_status = entry["sync_status"]
                self._update_entry(device_id, entry_id, sync_status="syncing")
                try:
                    await self.submitter.submit(entry, device_id, session.user)
                except asyncio.CancelledError:
                    self._update_entry(device_id, entry_id, sync_status=previous_status)
                    logger.warning(f"Sync cancelled during {entry_id}", extra={"device_id": device_id})
                    raise
                except (DomainError, SQLAlchemyError) as e:
                    message = e.message if isinstance(e, DomainError) else str(e)
                    # Database failures may clear up on their own
                    retryable = e.retryable if isinstance(e, DomainError) else True
                    self._update_entry(
                        device_id,
                        entry_id,
                        sync_status="error",
                        attempts=entry.get("attempts", 0) + 1,
                        last_error=message,
                        retryable=retryable,
                    )
                    report.failed.append(entry_id)
                    measurement_syncs.labels(status="error").inc()
                    logger.warning(
                        f"Measurement {entry_id} failed to sync: {message}",
                        extra={"device_id": device_id, "retryable": retryable},
                    )
                    continue

                self._remove_entry(device_id, entry_id)
                report.synced.append(entry_id)
                measurement_syncs.labels(status="synced").inc()

            sync_duration.observe(time.monotonic() - started)

        logger.info(
            f"Sync finished for device {device_id}",
            extra={"synced": len(report.synced), "failed": len(report.failed), "skipped": len(report.skipped)},
        )
        return report

    def list_queue(self, device_id: str, user: Optional[User] = None) -> list[QueueEntryView]:
        """Queued entries, oldest first; scoped users only see their organization's."""
        entries = [QueueEntryView(**entry) for entry in self._load_queue(device_id)]
        if user is None or user.role in UNSCOPED_ROLES:
            return entries
        return [entry for entry in entries if entry.organization_id == user.organization_id]

    def get_measurements(self, project_id: str, user: Optional[User] = None) -> list[FieldMeasurement]:
        """Synced measurements for a project, oldest first."""
        if user is not None:
            self.registry.get_project_for(user, project_id)
        else:
            self.registry.get_project(project_id)
        return (
            self.db.query(FieldMeasurement)
            .filter(FieldMeasurement.project_id == project_id)
            .order_by(FieldMeasurement.recorded_at.asc(), FieldMeasurement.id.asc())
            .all()
        )
