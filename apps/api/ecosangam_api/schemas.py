"""Request and view models shared by services, commands and routes."""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class OrganizationCreate(BaseModel):
    """Organization registration request."""

    id: str
    name: str
    type: str = Field(..., description="NGO, government, panchayat, private, community or verifier")
    registration_number: Optional[str] = None
    location: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


class OrganizationView(BaseModel):
    id: str
    name: str
    type: str
    registration_number: Optional[str] = None
    location: Optional[str] = None

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    """User registration request."""

    id: Optional[str] = None
    name: str
    email: str
    role: str
    organization_id: str
    credential: str


class UserView(BaseModel):
    id: str
    name: str
    email: str
    role: str
    organization_id: str

    class Config:
        from_attributes = True


class SessionView(BaseModel):
    token: str
    user: UserView
    expires_at: datetime


class Location(BaseModel):
    lat: float
    lng: float
    state: Optional[str] = None
    district: Optional[str] = None


class ProjectCreate(BaseModel):
    """Project creation request. Range checks happen in the registry."""

    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    ecosystem_type: str
    location: Location
    area_hectares: float
    methodology: Optional[str] = None
    start_date: Optional[date] = None


class ProjectPatch(BaseModel):
    """Project update request; unknown fields are passed on so the registry can refuse them."""

    model_config = {"extra": "allow"}

    name: Optional[str] = None
    description: Optional[str] = None
    methodology: Optional[str] = None


class ProjectView(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    ecosystem_type: str
    latitude: float
    longitude: float
    state: Optional[str] = None
    district: Optional[str] = None
    area_hectares: float
    methodology: Optional[str] = None
    start_date: Optional[date] = None
    status: str
    total_credits_issued: int
    available_credits: int
    created_by: str
    organization_id: str

    class Config:
        from_attributes = True


class GPSReading(BaseModel):
    lat: float
    lng: float
    accuracy: Optional[float] = None  # meters


class MeasurementIn(BaseModel):
    """Field measurement captured on a device."""

    id: Optional[str] = None
    type: str = Field(..., description="plantation, monitoring or restoration")
    project_id: str
    timestamp: Optional[datetime] = None
    gps: GPSReading
    data: dict[str, Any] = Field(default_factory=dict)
    photographs: list[str] = Field(default_factory=list)
    field_notes: str = ""
    field_officer: str
    organization_id: Optional[str] = None


class QueueEntryView(BaseModel):
    id: str
    type: str
    project_id: str
    timestamp: datetime
    sync_status: str
    attempts: int = 0
    last_error: Optional[str] = None
    retryable: bool = True  # false once a sync failed for a reason retrying cannot fix
    organization_id: Optional[str] = None


class SyncReport(BaseModel):
    synced: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)  # terminal failures left in the queue


class EvidenceItem(BaseModel):
    type: str
    description: str = ""
    url: str
    timestamp: Optional[datetime] = None
    verified: bool = False


class Findings(BaseModel):
    carbon_sequestration_rate: float = 0.0  # tCO2e per hectare per year
    area_verified: float = 0.0  # hectares
    biomass_estimate: float = 0.0  # tonnes per hectare
    species_verification: list[str] = Field(default_factory=list)
    compliance_issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ReviewOpen(BaseModel):
    project_id: str
    verification_method: str
    evidence_items: list[EvidenceItem] = Field(default_factory=list)
    findings: Optional[Findings] = None


class VerificationView(BaseModel):
    id: str
    project_id: str
    verifier_id: str
    verification_method: str
    status: str
    evidence_items: list[EvidenceItem]
    findings: Findings
    confidence_score: float
    carbon_credits_recommended: int
    immutable_record: bool
    blockchain_hash: Optional[str] = None
    resubmission_count: int = 0
    opened_at: datetime
    verified_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "VerificationView":
        return cls(
            id=record.id,
            project_id=record.project_id,
            verifier_id=record.verifier_id,
            verification_method=record.verification_method,
            status=record.status,
            evidence_items=[EvidenceItem(**item) for item in record.evidence_items or []],
            findings=Findings(**(record.findings_json or {})),
            confidence_score=record.confidence_score,
            carbon_credits_recommended=record.carbon_credits_recommended,
            immutable_record=record.immutable_record,
            blockchain_hash=record.blockchain_hash,
            resubmission_count=record.resubmission_count,
            opened_at=record.opened_at,
            verified_at=record.verified_at,
        )


class TransactionView(BaseModel):
    id: int
    token_id: str
    tx_type: str
    from_owner: Optional[str] = None
    to_owner: Optional[str] = None
    amount: int
    purpose: Optional[str] = None
    transaction_hash: str
    created_at: datetime

    class Config:
        from_attributes = True


class TokenView(BaseModel):
    id: str
    project_id: str
    verification_id: str
    parent_token_id: Optional[str] = None
    amount: int
    vintage: int
    serial_number: str
    status: str
    owner: str
    issuer: str
    issue_date: datetime
    metadata: dict[str, Any]
    retirement_reason: Optional[str] = None
    transaction_history: list[TransactionView] = Field(default_factory=list)

    @classmethod
    def from_token(cls, token) -> "TokenView":
        return cls(
            id=token.id,
            project_id=token.project_id,
            verification_id=token.verification_id,
            parent_token_id=token.parent_token_id,
            amount=token.amount,
            vintage=token.vintage,
            serial_number=token.serial_number,
            status=token.status,
            owner=token.owner,
            issuer=token.issuer,
            issue_date=token.issue_date,
            metadata=token.metadata_json,
            retirement_reason=token.retirement_reason,
            transaction_history=[TransactionView.model_validate(tx) for tx in token.transactions],
        )


class TransferIn(BaseModel):
    from_owner: str
    to_owner: str
    amount: int


class RetireIn(BaseModel):
    amount: int
    reason: str


class CreditBalance(BaseModel):
    owner: str
    active: int = 0
    retired: int = 0
    tokens: list[TokenView] = Field(default_factory=list)


class FlightIn(BaseModel):
    """Drone survey flight log entry."""

    project_id: str
    drone_id: str
    pilot_name: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: str = "completed"
    images_captured: int = 0
    average_quality_score: Optional[float] = None
    coverage_area_m2: Optional[float] = None
    detected_changes: int = 0


class FlightView(BaseModel):
    id: str
    project_id: str
    drone_id: str
    pilot_name: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: str
    images_captured: int
    average_quality_score: Optional[float] = None
    coverage_area_m2: Optional[float] = None
    detected_changes: int

    class Config:
        from_attributes = True


class MonitoringReport(BaseModel):
    project_id: str
    total_flights: int
    total_images: int
    coverage_area_m2: float
    average_quality_score: float
    detected_changes: int
    measurements_by_type: dict[str, int]
    latest_flights: list[FlightView]
