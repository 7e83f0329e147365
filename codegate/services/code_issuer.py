import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from codegate.config import settings
from codegate.models.verification_code import utcnow
from codegate.schemas.verification import (CodePurpose, IssueResult,
                                           normalize_email)
from codegate.services.code_store import CodeStore
from codegate.services.email_service import EmailService
from codegate.utils.logger import verification_logger

CODE_MIN = 100000
CODE_MAX = 999999


def generate_code() -> str:
    """Six digit code, uniform over [100000, 999999], from the OS CSPRNG"""
    return f"{CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1):06d}"


class CodeIssuer:
    """Creates a fresh code for (email, purpose) and emails it"""

    def __init__(
        self,
        db: Session,
        email_service: Optional[EmailService] = None,
        ttl: Optional[timedelta] = None,
    ):
        self.store = CodeStore(db)
        self.email_service = email_service or EmailService()
        if ttl is None:
            ttl = timedelta(minutes=settings.code_expire_minutes)
        self.ttl = ttl

    async def issue(
        self,
        email: str,
        purpose: CodePurpose,
        metadata: Optional[Dict[str, str]] = None,
        now: Optional[datetime] = None,
    ) -> IssueResult:
        """Supersede any outstanding code, store a new one and send it.

        Raises StorageError if the code could not be stored and DeliveryError
        if it was stored but could not be emailed. The stored row is kept in
        the second case.
        """
        email = normalize_email(email)
        now = now or utcnow()
        expires_at = now + self.ttl

        code = generate_code()
        code_id, superseded = self.store.replace_outstanding(
            email, code, purpose, expires_at, created_at=now)
        if superseded:
            verification_logger.info(
                f"Superseded {superseded} outstanding {purpose.value} code(s) for {email}")

        await self.email_service.send_verification_code(
            email, code, purpose, metadata)
        verification_logger.info(f"✅ Sent {purpose.value} code to {email}")

        return IssueResult(
            code_id=code_id,
            email=email,
            purpose=purpose,
            expires_at=expires_at,
            superseded=superseded,
        )
