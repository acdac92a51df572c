"""Tests for demo seed data."""

from ecosangam_api.db.seed import DEMO_PROJECTS, DEMO_USERS, seed_all
from ecosangam_api.identity.service import IdentityService
from ecosangam_api.models import Project, User


def test_seed_is_idempotent(db):
    seed_all(db)
    seed_all(db)

    assert db.query(User).count() == len(DEMO_USERS)
    assert db.query(Project).count() == len(DEMO_PROJECTS)


def test_seeded_projects_carry_no_credits(db):
    seed_all(db)

    projects = db.query(Project).all()
    assert all(p.total_credits_issued == 0 and p.available_credits == 0 for p in projects)
    assert db.get(Project, "IND006").status == "pending"
    assert db.get(Project, "IND001").status == "active"


def test_demo_users_can_log_in(db, kv):
    seed_all(db)
    identity = IdentityService(db, kv)

    session = identity.login("verifier@carbon.org", "verifier123")

    assert session.user.role == "verifier"
    assert session.user.credential_hash != "verifier123"
