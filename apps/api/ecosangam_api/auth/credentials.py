"""Credential hashing for user accounts."""

from passlib.context import CryptContext

from ecosangam_api.settings import get_settings

settings = get_settings()
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_credential(credential: str) -> str:
    """Hash a credential using bcrypt."""
    # Bcrypt has a 72-byte limit, truncate if necessary
    credential_bytes = credential.encode("utf-8")
    if len(credential_bytes) > 72:
        credential = credential_bytes[:72].decode("utf-8", errors="ignore")
    return pwd_context.hash(credential)


def verify_credential(credential: str, hashed: str) -> bool:
    """Verify a credential against its bcrypt hash."""
    credential_bytes = credential.encode("utf-8")
    if len(credential_bytes) > 72:
        credential = credential_bytes[:72].decode("utf-8", errors="ignore")
    return pwd_context.verify(credential, hashed)
