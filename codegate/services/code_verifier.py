from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from codegate.config import settings
from codegate.core.exceptions import InvalidOrExpired
from codegate.models.verification_code import utcnow
from codegate.schemas.verification import (CodePurpose, VerifyResult,
                                           normalize_email)
from codegate.services.code_store import CodeStore
from codegate.utils.logger import verification_logger


class CodeVerifier:
    """Checks and consumes a submitted code"""

    def __init__(self, db: Session, max_attempts: Optional[int] = None):
        self.store = CodeStore(db)
        if max_attempts is None:
            max_attempts = settings.max_verify_attempts
        self.max_attempts = max_attempts

    def verify(
        self,
        email: str,
        code: str,
        purpose: CodePurpose,
        now: Optional[datetime] = None,
    ) -> VerifyResult:
        """Consume the code or raise InvalidOrExpired.

        Wrong, expired, superseded and already used codes all raise the same
        error. Every miss counts against the outstanding code for the pair,
        which is burned after max_attempts misses.
        """
        email = normalize_email(email)
        code = code.strip()
        now = now or utcnow()

        record = self.store.find_active(email, code, purpose, now)
        if record is None:
            burned = self.store.record_failed_attempt(
                email, purpose, now, self.max_attempts)
            if burned:
                verification_logger.warning(
                    f"Burned {purpose.value} code for {email} after {self.max_attempts} failed attempts")
            verification_logger.info(f"No valid {purpose.value} code for {email}")
            raise InvalidOrExpired()

        code_id = str(record.id)
        if not self.store.mark_used(code_id, now):
            verification_logger.warning(
                f"{purpose.value} code for {email} was consumed concurrently")
            raise InvalidOrExpired()

        verification_logger.info(f"✅ Verified {purpose.value} code for {email}")
        return VerifyResult(
            code_id=code_id,
            email=email,
            purpose=purpose,
            verified_at=now,
        )
