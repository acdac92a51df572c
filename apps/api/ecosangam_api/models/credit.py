"""Carbon credit token and transaction models."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from ecosangam_api.db.base import Base

TOKEN_STATUSES = ("active", "retired", "transferred")
TRANSACTION_TYPES = ("mint", "transfer", "retire")


class CarbonCreditToken(Base):
    """A holding of whole tCO2e credits. Only the credit ledger writes these."""

    __tablename__ = "carbon_credit_tokens"

    id = Column(String(64), primary_key=True, index=True)
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False, index=True)
    verification_id = Column(String(64), ForeignKey("verification_records.id"), nullable=False, index=True)
    parent_token_id = Column(String(64), ForeignKey("carbon_credit_tokens.id"), nullable=True)
    amount = Column(Integer, nullable=False)  # current balance held by owner
    vintage = Column(Integer, nullable=False)
    serial_number = Column(String(128), nullable=False, unique=True, index=True)
    status = Column(String(50), default="active", nullable=False, index=True)
    owner = Column(String(255), nullable=False, index=True)
    issuer = Column(String(255), nullable=False)
    in_issuance_pool = Column(Boolean, default=False, nullable=False)
    metadata_json = Column(JSON, nullable=False)
    retirement_reason = Column(Text, nullable=True)
    issue_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    transactions = relationship(
        "CreditTransaction",
        back_populates="token",
        order_by="CreditTransaction.id",
    )


class CreditTransaction(Base):
    """Entry in a token's transaction history."""

    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    token_id = Column(String(64), ForeignKey("carbon_credit_tokens.id"), nullable=False, index=True)
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False, index=True)
    tx_type = Column(String(50), nullable=False, index=True)  # mint, transfer, retire
    from_owner = Column(String(255), nullable=True)  # NULL for mint
    to_owner = Column(String(255), nullable=True)  # NULL for retire
    amount = Column(Integer, nullable=False)
    purpose = Column(Text, nullable=True)
    transaction_hash = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    token = relationship("CarbonCreditToken", back_populates="transactions")
