"""Tests for the verification workflow."""

import pytest

from conftest import session_for
from ecosangam_api.errors import (
    AuthorizationError,
    IncompleteEvidence,
    OutstandingCompliance,
    StateConflictError,
    ValidationError,
)
from ecosangam_api.models import CarbonCreditToken, VerificationRecord
from ecosangam_api.schemas import EvidenceItem, Findings, ReviewOpen

FINDINGS = Findings(
    carbon_sequestration_rate=18.5,
    area_verified=450.2,
    biomass_estimate=142.0,
    species_verification=["Rhizophora mucronata", "Avicennia marina"],
)


def evidence_items(verified: bool = True, count: int = 3) -> list[EvidenceItem]:
    kinds = ["drone_imagery", "field_measurement", "photograph"]
    return [
        EvidenceItem(type=kinds[i % 3], description=f"Evidence {i}", url=f"ipfs://evidence-{i}", verified=verified)
        for i in range(count)
    ]


def open_review(services, verifier_user, project, **overrides):
    data = {
        "project_id": project.id,
        "verification_method": "hybrid",
        "evidence_items": evidence_items(),
        "findings": FINDINGS,
    }
    data.update(overrides)
    return services.workflow.open_review(verifier_user, ReviewOpen(**data))


def test_open_review_with_evidence_is_in_progress(services, verifier_user, active_project):
    record = open_review(services, verifier_user, active_project)

    assert record.status == "in_progress"
    assert record.verifier_id == verifier_user.id
    assert not record.immutable_record
    assert record.blockchain_hash is None


def test_open_review_without_evidence_is_pending(services, verifier_user, active_project):
    record = open_review(services, verifier_user, active_project, evidence_items=[])
    assert record.status == "pending"

    record = services.workflow.add_evidence(verifier_user, record.id, evidence_items())
    assert record.status == "in_progress"


def test_open_review_requires_verifier(services, ngo_user, active_project):
    with pytest.raises(AuthorizationError):
        open_review(services, ngo_user, active_project)


def test_open_review_on_pending_project_conflicts(services, verifier_user, pending_project):
    with pytest.raises(StateConflictError):
        open_review(services, verifier_user, pending_project)


@pytest.mark.asyncio
async def test_approval_recommends_credits_and_freezes_record(services, verifier_user, active_project):
    """Scenario: 450.2 ha at 18.5 tCO2e/ha/yr over one year yields 8328 credits."""
    record = open_review(services, verifier_user, active_project)

    record, mint_request = await services.workflow.approve(verifier_user, record.id)

    assert record.status == "verified"
    assert record.immutable_record
    assert record.blockchain_hash
    assert record.verified_at is not None
    assert record.carbon_credits_recommended == 8328
    assert record.confidence_score == 100.0
    assert mint_request.amount == 8328
    assert mint_request.owner == active_project.organization_id
    # The ledger marks the project verified when it mints
    assert active_project.status == "active"

    with pytest.raises(StateConflictError):
        services.workflow.record_findings(verifier_user, record.id, Findings())


@pytest.mark.asyncio
async def test_approve_and_mint_updates_project(commands, services, verifier_user, active_project):
    record = open_review(services, verifier_user, active_project)

    result = await commands.approve(session_for(verifier_user), record.id)

    assert result.ok, result.error
    token = result.value.token
    assert token.amount == 8328
    assert token.owner == active_project.organization_id
    assert token.serial_number.startswith(f"IN-{active_project.id}-")
    assert active_project.status == "verified"
    assert active_project.total_credits_issued == 8328
    assert active_project.available_credits == 8328


@pytest.mark.asyncio
async def test_approval_without_credits_verifies_project_directly(services, verifier_user, active_project):
    record = open_review(services, verifier_user, active_project, findings=Findings())

    record, mint_request = await services.workflow.approve(verifier_user, record.id)

    assert mint_request is None
    assert active_project.status == "verified"
    assert active_project.total_credits_issued == 0


@pytest.mark.asyncio
async def test_unverified_evidence_blocks_approval(db, services, verifier_user, active_project):
    record = open_review(services, verifier_user, active_project, evidence_items=evidence_items(verified=False))

    with pytest.raises(IncompleteEvidence) as exc_info:
        await services.workflow.approve(verifier_user, record.id)

    assert len(exc_info.value.unverified) == 3
    assert record.status == "in_progress"
    assert db.query(CarbonCreditToken).count() == 0

    services.workflow.mark_evidence_verified(verifier_user, record.id)
    record, mint_request = await services.workflow.approve(verifier_user, record.id)
    assert record.status == "verified"


@pytest.mark.asyncio
async def test_compliance_issues_block_approval(services, verifier_user, active_project):
    findings = FINDINGS.model_copy(update={"compliance_issues": ["Boundary mismatch"]})
    record = open_review(services, verifier_user, active_project, findings=findings)

    with pytest.raises(OutstandingCompliance):
        await services.workflow.approve(verifier_user, record.id)


@pytest.mark.asyncio
async def test_approve_requires_in_progress(services, verifier_user, active_project):
    record = open_review(services, verifier_user, active_project, evidence_items=[])

    with pytest.raises(StateConflictError):
        await services.workflow.approve(verifier_user, record.id)


def test_reject_closes_record_and_rejects_project(db, services, verifier_user, active_project):
    """Scenario: a rejected review issues no credits and rejects the project."""
    record = open_review(services, verifier_user, active_project)

    record = services.workflow.reject(verifier_user, record.id, "Planting density below methodology minimum")

    assert record.status == "rejected"
    assert "Planting density below methodology minimum" in record.compliance_issues
    assert not record.immutable_record
    assert record.blockchain_hash is None
    assert active_project.status == "rejected"
    assert active_project.total_credits_issued == 0
    assert db.query(CarbonCreditToken).count() == 0

    with pytest.raises(StateConflictError):
        services.workflow.add_evidence(verifier_user, record.id, evidence_items())
    with pytest.raises(StateConflictError):
        open_review(services, verifier_user, active_project)


@pytest.mark.asyncio
async def test_reject_keeps_verified_project_verified(commands, services, verifier_user, active_project):
    first = open_review(services, verifier_user, active_project)
    await commands.approve(session_for(verifier_user), first.id)
    second = open_review(services, verifier_user, active_project)

    services.workflow.reject(verifier_user, second.id, "Duplicate submission")

    assert active_project.status == "verified"


@pytest.mark.asyncio
async def test_additional_data_round_trip(services, verifier_user, active_project):
    record = open_review(services, verifier_user, active_project)

    record = services.workflow.request_additional_data(verifier_user, record.id, ["Need canopy photographs"])
    assert record.status == "requires_additional_data"
    assert active_project.status == "requires_additional_data"

    record = services.workflow.add_evidence(
        verifier_user,
        record.id,
        [EvidenceItem(type="photograph", url="ipfs://canopy", verified=True)],
    )
    assert record.status == "in_progress"
    assert record.resubmission_count == 1
    assert active_project.status == "active"

    with pytest.raises(OutstandingCompliance):
        await services.workflow.approve(verifier_user, record.id)

    services.workflow.record_findings(verifier_user, record.id, FINDINGS)
    record, mint_request = await services.workflow.approve(verifier_user, record.id)
    assert mint_request.amount == 8328


def test_verification_queue_filters(services, verifier_user, active_project):
    pending = open_review(services, verifier_user, active_project, evidence_items=[])
    in_progress = open_review(services, verifier_user, active_project)

    assert [r.id for r in services.workflow.get_verification_queue(status="pending")] == [pending.id]
    assert {r.id for r in services.workflow.get_verification_queue(project_id=active_project.id)} == {
        pending.id,
        in_progress.id,
    }


@pytest.mark.asyncio
async def test_approval_is_recorded_on_audit_chain(services, verifier_user, active_project):
    record = open_review(services, verifier_user, active_project)
    record, _ = await services.workflow.approve(verifier_user, record.id)

    events = services.audit.get_events(active_project.id)
    assert events[-1].event_type == "verification_approved"
    assert events[-1].event_hash == record.blockchain_hash
    assert services.audit.verify_chain(active_project.id) == (True, None)


@pytest.mark.parametrize(
    "field, value",
    [
        ("area_verified", float("inf")),
        ("area_verified", float("nan")),
        ("carbon_sequestration_rate", -1.0),
        ("biomass_estimate", float("-inf")),
    ],
)
def test_record_findings_rejects_unusable_numbers(services, verifier_user, active_project, field, value):
    record = open_review(services, verifier_user, active_project)

    with pytest.raises(ValidationError) as exc_info:
        services.workflow.record_findings(verifier_user, record.id, FINDINGS.model_copy(update={field: value}))

    assert [v.field for v in exc_info.value.violations] == [field]
    assert record.findings_json["area_verified"] == 450.2


def test_open_review_validates_findings(db, services, verifier_user, active_project):
    findings = FINDINGS.model_copy(update={"area_verified": -5.0, "carbon_sequestration_rate": float("nan")})

    with pytest.raises(ValidationError) as exc_info:
        open_review(services, verifier_user, active_project, findings=findings)

    fields = {v.field for v in exc_info.value.violations}
    assert fields == {"findings.area_verified", "findings.carbon_sequestration_rate"}
    assert db.query(VerificationRecord).count() == 0


@pytest.mark.asyncio
async def test_overflowing_credit_total_fails_approval_cleanly(services, verifier_user, active_project):
    huge = FINDINGS.model_copy(update={"area_verified": 1e200, "carbon_sequestration_rate": 1e200})
    record = open_review(services, verifier_user, active_project, findings=huge)

    with pytest.raises(ValidationError):
        await services.workflow.approve(verifier_user, record.id)

    assert record.status == "in_progress"
    assert not record.immutable_record
