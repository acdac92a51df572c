"""Organization and user models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from ecosangam_api.db.base import Base

ROLES = ("admin", "ngo", "panchayat", "government", "verifier")
ORGANIZATION_TYPES = ("NGO", "government", "panchayat", "private", "community", "verifier")


class Organization(Base):
    """Organization used for access scoping and display."""

    __tablename__ = "organizations"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False, index=True)  # NGO, government, panchayat, private, community, verifier
    registration_number = Column(String(100), nullable=True)
    location = Column(String(255), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    users = relationship("User", back_populates="organization")
    projects = relationship("Project", back_populates="organization")


class User(Base):
    """Platform user. Role is fixed at registration."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(String(50), nullable=False, index=True)  # admin, ngo, panchayat, government, verifier
    organization_id = Column(String(64), ForeignKey("organizations.id"), nullable=False, index=True)
    credential_hash = Column(String(255), nullable=False)
    failed_logins = Column(Integer, default=0, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="users")
