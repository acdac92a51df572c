"""Submission of queued field measurements to the durable record store."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ecosangam_api.auth.capabilities import RECORD_STORE_WRITER
from ecosangam_api.ledger.service import LedgerService
from ecosangam_api.models import FieldMeasurement, User
from ecosangam_api.registry.service import ProjectRegistry
from ecosangam_api.services.base import BaseService

logger = logging.getLogger(__name__)


class RecordSubmitter(ABC):
    """Remote side of the offline queue."""

    @abstractmethod
    async def is_online(self) -> bool:
        """Whether the device currently has connectivity."""

    @abstractmethod
    async def submit(self, entry: dict, device_id: str, user: User) -> FieldMeasurement:
        """Persist one queued entry. Must be idempotent by ``entry["id"]``."""


class DatabaseRecordSubmitter(BaseService, RecordSubmitter):
    """Writes synced measurements to the database after a simulated upload delay."""

    def __init__(
        self,
        db: Session,
        registry: ProjectRegistry,
        delay_seconds: float = 0.0,
        connectivity: Optional[Callable[[], bool]] = None,
    ):
        super().__init__(db)
        self.registry = registry
        self.ledger = LedgerService(db)
        self.delay_seconds = delay_seconds
        self.connectivity = connectivity or (lambda: True)

    async def is_online(self) -> bool:
        return bool(self.connectivity())

    async def submit(self, entry: dict, device_id: str, user: User) -> FieldMeasurement:
        await asyncio.sleep(self.delay_seconds)

        # Nothing below awaits, so a cancelled submit never leaves a partial write
        existing = self.db.get(FieldMeasurement, entry["id"])
        if existing is not None:
            logger.info(f"Measurement {entry['id']} already synced", extra={"device_id": device_id})
            return existing

        project = self.registry.get_project_for(user, entry["project_id"])
        gps = entry["gps"]

        with self.unit_of_work():
            measurement = FieldMeasurement(
                id=entry["id"],
                type=entry["type"],
                project_id=project.id,
                recorded_at=datetime.fromisoformat(entry["timestamp"]),
                latitude=gps["lat"],
                longitude=gps["lng"],
                gps_accuracy=gps.get("accuracy"),
                data_json=entry.get("data") or {},
                photographs=list(entry.get("photographs") or []),
                field_notes=entry.get("field_notes"),
                field_officer=entry["field_officer"],
                organization_id=entry.get("organization_id") or user.organization_id,
                device_id=device_id,
                submitted_by=user.id,
            )
            self.db.add(measurement)
            self.db.flush()

            if project.status == "pending":
                self.registry.transition(project, "active", RECORD_STORE_WRITER)
            self.ledger.append_event(
                project_id=project.id,
                correlation_id=measurement.id,
                event_type="measurement_synced",
                payload={"measurement_id": measurement.id, "type": measurement.type, "device_id": device_id},
            )

        logger.info(
            f"Synced measurement {measurement.id}",
            extra={"project_id": project.id, "device_id": device_id, "type": measurement.type},
        )
        return measurement
