"""Tests for login, sessions and the organization directory."""

from datetime import datetime, timedelta

import pytest

from conftest import TEST_CREDENTIAL, session_for
from ecosangam_api.errors import (
    AuthorizationError,
    InvalidCredential,
    NotFound,
    UnknownAccount,
    ValidationError,
)
from ecosangam_api.schemas import OrganizationCreate, UserCreate


def test_login_returns_session_for_user(services, ngo_user):
    session = services.identity.login("USR-NGO@example.org ", TEST_CREDENTIAL)

    assert session.user.id == ngo_user.id
    assert session.token
    assert not session.expired
    assert ngo_user.last_login_at is not None


def test_login_unknown_email(services, ngo_user):
    with pytest.raises(UnknownAccount):
        services.identity.login("nobody@example.org", TEST_CREDENTIAL)


def test_login_wrong_credential_counts_failures(services, ngo_user):
    for _ in range(2):
        with pytest.raises(InvalidCredential):
            services.identity.login(ngo_user.email, "wrong-credential")
    assert ngo_user.failed_logins == 2

    services.identity.login(ngo_user.email, TEST_CREDENTIAL)
    assert ngo_user.failed_logins == 0


def test_credential_is_never_stored_in_plaintext(ngo_user):
    assert TEST_CREDENTIAL not in ngo_user.credential_hash


def test_resolve_and_logout(services, ngo_user):
    session = services.identity.login(ngo_user.email, TEST_CREDENTIAL)

    resolved = services.identity.resolve(session.token)
    assert resolved.user.id == ngo_user.id

    services.identity.logout(session.token)
    assert services.identity.resolve(session.token) is None


def test_logout_without_session_succeeds(services):
    services.identity.logout(None)
    services.identity.logout("no-such-token")


def test_resolve_drops_expired_sessions(services, kv, ngo_user):
    expired = (datetime.utcnow() - timedelta(minutes=1)).isoformat()
    kv.set_json("session:stale", {"user_id": ngo_user.id, "expires_at": expired})

    assert services.identity.resolve("stale") is None
    assert kv.get_json("session:stale") is None


def test_resolve_unknown_token(services):
    assert services.identity.resolve("made-up") is None
    assert services.identity.resolve(None) is None


def test_register_user_hashes_credential(services, admin_user):
    user = services.identity.register_user(
        admin_user,
        UserCreate(
            name="Field Officer",
            email="Officer@Example.org",
            role="panchayat",
            organization_id="org-panchayat",
            credential="mangroves1",
        ),
    )

    assert user.id.startswith("usr-")
    assert user.email == "officer@example.org"
    assert user.credential_hash != "mangroves1"
    assert services.identity.login("officer@example.org", "mangroves1").user.id == user.id


def test_register_user_reports_every_violation(services, admin_user, ngo_user):
    data = UserCreate(
        name=" ",
        email=ngo_user.email,
        role="auditor",
        organization_id="org-missing",
        credential="123",
    )

    with pytest.raises(ValidationError) as exc_info:
        services.identity.register_user(admin_user, data)

    fields = {v.field for v in exc_info.value.violations}
    assert fields == {"name", "email", "role", "organization_id", "credential"}


def test_register_user_is_admin_only(services, ngo_user):
    data = UserCreate(
        name="Someone", email="someone@example.org", role="ngo", organization_id="org-ngo", credential="secret123"
    )

    with pytest.raises(AuthorizationError):
        services.identity.register_user(ngo_user, data)


def test_directory_registers_and_lists(services, organizations):
    organization = services.directory.register(
        OrganizationCreate(id="org-coop", name="Coastal Cooperative", type="community")
    )

    assert services.directory.get("org-coop") is organization
    assert [o.id for o in services.directory.list(type="community")] == ["org-coop"]


def test_directory_rejects_duplicates_and_bad_types(services, organizations):
    with pytest.raises(ValidationError) as exc_info:
        services.directory.register(OrganizationCreate(id="org-ngo", name="Again", type="charity"))

    assert {v.field for v in exc_info.value.violations} == {"id", "type"}


def test_directory_get_unknown(services):
    with pytest.raises(NotFound):
        services.directory.get("org-nowhere")


@pytest.mark.asyncio
async def test_register_organization_command_requires_capability(commands, ngo_user, admin_user):
    data = OrganizationCreate(id="org-new", name="New Trust", type="NGO")

    denied = await commands.register_organization(session_for(ngo_user), data)
    assert isinstance(denied.error, AuthorizationError)

    allowed = await commands.register_organization(session_for(admin_user), data)
    assert allowed.ok
    assert allowed.unwrap().id == "org-new"


@pytest.mark.asyncio
async def test_failed_command_carries_error_value(commands, ngo_user):
    result = await commands.login(ngo_user.email, "wrong-credential")

    assert not result.ok
    assert result.error.code == "invalid_credential"
    with pytest.raises(InvalidCredential):
        result.unwrap()
