import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Index, Integer, String, text

from codegate.core.database import Base
from codegate.schemas.verification import CodePurpose


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every verification column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class VerificationCode(Base):
    """Emailed verification codes, kept after use for audit"""
    __tablename__ = "verification_codes"
    __table_args__ = (
        Index("ix_verification_codes_lookup", "email", "purpose", "used"),
        # at most one unused code per (email, purpose)
        Index("uq_verification_codes_outstanding", "email", "purpose",
              unique=True,
              postgresql_where=text("NOT used"),
              sqlite_where=text("NOT used")),
    )

    id = Column(String(36), primary_key=True,
                default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, index=True)
    code = Column(String(6), nullable=False)
    purpose = Column(SQLEnum(CodePurpose), nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    verified_at = Column(DateTime, nullable=True)
    redeemed_at = Column(DateTime, nullable=True)
