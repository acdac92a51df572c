"""Database models - import all models here for metadata discovery."""

from ecosangam_api.models.account import Organization, User
from ecosangam_api.models.credit import CarbonCreditToken, CreditTransaction
from ecosangam_api.models.ledger import LedgerEvent
from ecosangam_api.models.measurement import FieldMeasurement, FlightMission
from ecosangam_api.models.project import Project
from ecosangam_api.models.verification import VerificationRecord

__all__ = [
    "Organization",
    "User",
    "Project",
    "FieldMeasurement",
    "FlightMission",
    "VerificationRecord",
    "CarbonCreditToken",
    "CreditTransaction",
    "LedgerEvent",
]
