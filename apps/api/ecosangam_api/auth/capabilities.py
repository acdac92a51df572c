"""Role capabilities and internal writer capabilities."""

import logging
from dataclasses import dataclass

from ecosangam_api.errors import AuthorizationError

logger = logging.getLogger(__name__)

# Capabilities a user role grants
ROLE_CAPABILITIES = {
    "admin": {
        "projects:read_all",
        "projects:update_any",
        "users:register",
        "organizations:register",
        "credits:transfer",
        "credits:retire",
        "flights:record",
        "ledger:audit",
    },
    "government": {
        "projects:read_all",
        "projects:create",
        "projects:update",
        "measurements:submit",
        "credits:transfer",
        "credits:retire",
        "flights:record",
        "ledger:audit",
    },
    "ngo": {
        "projects:create",
        "projects:update",
        "measurements:submit",
        "credits:transfer",
        "credits:retire",
        "flights:record",
    },
    "panchayat": {
        "projects:create",
        "projects:update",
        "measurements:submit",
        "credits:transfer",
        "credits:retire",
    },
    "verifier": {
        "projects:read_all",
        "verifications:review",
        "flights:record",
        "ledger:audit",
    },
}

VALID_CAPABILITIES = set().union(*ROLE_CAPABILITIES.values())


def capabilities_for(role: str) -> set[str]:
    """Capabilities granted to a role (empty for unknown roles)."""
    caps = ROLE_CAPABILITIES.get(role)
    if caps is None:
        logger.warning(f"Unknown role: {role} (grants no capabilities)")
        return set()
    return caps


def has_capability(user, capability: str) -> bool:
    return capability in capabilities_for(user.role)


def require_capability(user, capability: str) -> None:
    """Raise ``AuthorizationError`` unless ``user`` holds ``capability``."""
    if not has_capability(user, capability):
        logger.info(
            "Capability denied",
            extra={"user_id": getattr(user, "id", None), "role": getattr(user, "role", None), "capability": capability},
        )
        raise AuthorizationError(capability)


@dataclass(frozen=True, eq=False)
class WriterCapability:
    """Token held by a component allowed to mutate guarded project fields.

    Identity comparison matters: only the module-level instances below are
    accepted, so holding an equal-looking copy grants nothing.
    """

    name: str


RECORD_STORE_WRITER = WriterCapability("record_store")
WORKFLOW_WRITER = WriterCapability("verification_workflow")
LEDGER_WRITER = WriterCapability("credit_ledger")
