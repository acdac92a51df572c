"""Wiring of services around one database session."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ecosangam_api.identity.directory import OrganizationDirectory
from ecosangam_api.identity.service import IdentityService
from ecosangam_api.ledger.client import LedgerClient, SimulatedLedgerClient
from ecosangam_api.ledger.credits import CreditLedger
from ecosangam_api.ledger.locks import KeyedLocks
from ecosangam_api.ledger.service import LedgerService
from ecosangam_api.records.store import FieldRecordStore
from ecosangam_api.records.submitter import DatabaseRecordSubmitter, RecordSubmitter
from ecosangam_api.registry.service import ProjectRegistry
from ecosangam_api.reports.dashboards import DashboardService
from ecosangam_api.reports.flights import FlightService
from ecosangam_api.settings import Settings, get_settings
from ecosangam_api.storage.kv import KeyValueStore, get_kv_store
from ecosangam_api.verification.workflow import VerificationWorkflow

logger = logging.getLogger(__name__)

# Shared by every request in the process so per-project and per-device
# serialization holds across sessions
_locks = KeyedLocks()
_ledger_client: Optional[LedgerClient] = None


def get_locks() -> KeyedLocks:
    return _locks


def get_ledger_client() -> LedgerClient:
    """Get the process-wide ledger client."""
    global _ledger_client

    if _ledger_client is None:
        delay = get_settings().ledger_confirmation_delay_seconds
        _ledger_client = SimulatedLedgerClient(delay_seconds=delay)
        logger.info(f"Initialized simulated ledger client ({delay}s confirmation delay)")

    return _ledger_client


@dataclass
class Services:
    """All services bound to one database session."""

    identity: IdentityService
    directory: OrganizationDirectory
    registry: ProjectRegistry
    records: FieldRecordStore
    workflow: VerificationWorkflow
    ledger: CreditLedger
    audit: LedgerService
    flights: FlightService
    dashboards: DashboardService


def build_services(
    db: Session,
    kv: Optional[KeyValueStore] = None,
    settings: Optional[Settings] = None,
    ledger_client: Optional[LedgerClient] = None,
    submitter: Optional[RecordSubmitter] = None,
    connectivity: Optional[Callable[[], bool]] = None,
    locks: Optional[KeyedLocks] = None,
) -> Services:
    """Build the service graph; every argument defaults to the process-wide instance."""
    settings = settings or get_settings()
    kv = kv or get_kv_store()
    locks = locks or get_locks()
    ledger_client = ledger_client or get_ledger_client()

    registry = ProjectRegistry(db)
    if submitter is None:
        submitter = DatabaseRecordSubmitter(
            db,
            registry,
            delay_seconds=settings.record_submission_delay_seconds,
            connectivity=connectivity,
        )

    return Services(
        identity=IdentityService(db, kv, session_ttl_hours=settings.session_ttl_hours),
        directory=OrganizationDirectory(db),
        registry=registry,
        records=FieldRecordStore(db, kv, submitter, registry, locks),
        workflow=VerificationWorkflow(db, registry, ledger_client, locks, settings),
        ledger=CreditLedger(db, registry, ledger_client, locks, settings),
        audit=LedgerService(db),
        flights=FlightService(db, registry),
        dashboards=DashboardService(db, registry),
    )
