"""Persistence for emailed verification codes.

All writes go through conditional UPDATEs so that the row count decides
which of several concurrent callers wins. A partial unique index on
(email, purpose) WHERE NOT used backs the one-outstanding-code rule.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from codegate.core.exceptions import StorageError
from codegate.models.verification_code import VerificationCode, utcnow
from codegate.schemas.verification import CodePurpose
from codegate.utils.logger import db_logger


class CodeStore:
    def __init__(self, db: Session):
        self.db = db

    def _outstanding(self, email: str, purpose: CodePurpose):
        return self.db.query(VerificationCode).filter(
            VerificationCode.email == email,
            VerificationCode.purpose == purpose,
            VerificationCode.used.is_(False)
        )

    def _fail(self, action: str, exc: Exception) -> StorageError:
        self.db.rollback()
        db_logger.error(f"❌ Verification store failed to {action}: {exc}")
        return StorageError()

    def _invalidate(self, email: str, purpose: CodePurpose) -> int:
        return self._outstanding(email, purpose).update(
            {VerificationCode.used: True}, synchronize_session=False)

    def _add(self, email, code, purpose, expires_at, created_at=None) -> str:
        row = VerificationCode(
            email=email,
            code=code,
            purpose=purpose,
            expires_at=expires_at,
            created_at=created_at or utcnow(),
        )
        self.db.add(row)
        self.db.flush()
        return str(row.id)

    def invalidate_outstanding(self, email: str, purpose: CodePurpose) -> int:
        """Mark every unused code for (email, purpose) as used"""
        try:
            count = self._invalidate(email, purpose)
            self.db.commit()
            return count
        except SQLAlchemyError as e:
            raise self._fail("invalidate codes", e) from e

    def insert(
        self,
        email: str,
        code: str,
        purpose: CodePurpose,
        expires_at: datetime,
        created_at: Optional[datetime] = None,
    ) -> str:
        """Store a new code and return its id"""
        try:
            code_id = self._add(email, code, purpose, expires_at, created_at)
            self.db.commit()
            return code_id
        except SQLAlchemyError as e:
            raise self._fail("insert code", e) from e

    def replace_outstanding(
        self,
        email: str,
        code: str,
        purpose: CodePurpose,
        expires_at: datetime,
        created_at: Optional[datetime] = None,
    ) -> Tuple[str, int]:
        """Invalidate and insert in one transaction.

        Returns (code_id, number of codes invalidated). A concurrent issue for
        the same pair trips the partial unique index; the loser retries once so
        the most recent request ends up holding the outstanding code.
        """
        for attempt in range(2):
            try:
                superseded = self._invalidate(email, purpose)
                code_id = self._add(email, code, purpose, expires_at, created_at)
                self.db.commit()
                return code_id, superseded
            except IntegrityError as e:
                if attempt:
                    raise self._fail("replace code", e) from e
                self.db.rollback()
                db_logger.warning(
                    f"Concurrent issue for {email} ({purpose.value}), retrying")
            except SQLAlchemyError as e:
                raise self._fail("replace code", e) from e

    def get(self, code_id: str) -> Optional[VerificationCode]:
        try:
            return self.db.query(VerificationCode).filter(
                VerificationCode.id == code_id).first()
        except SQLAlchemyError as e:
            raise self._fail("load code", e) from e

    def find_active(
        self, email: str, code: str, purpose: CodePurpose, now: datetime
    ) -> Optional[VerificationCode]:
        """Latest unused, unexpired row matching the code, locked for update"""
        try:
            return self._outstanding(email, purpose).filter(
                VerificationCode.code == code,
                VerificationCode.expires_at > now
            ).order_by(VerificationCode.created_at.desc()).with_for_update().first()
        except SQLAlchemyError as e:
            raise self._fail("look up code", e) from e

    def mark_used(self, code_id: str, now: Optional[datetime] = None) -> bool:
        """Consume a code.

        Returns False when another caller consumed it first. Raises
        StorageError when the row does not exist.
        """
        try:
            updated = self.db.query(VerificationCode).filter(
                VerificationCode.id == code_id,
                VerificationCode.used.is_(False)
            ).update({
                VerificationCode.used: True,
                VerificationCode.verified_at: now or utcnow(),
            }, synchronize_session=False)

            if updated:
                self.db.commit()
                return True

            exists = self.db.query(VerificationCode.id).filter(
                VerificationCode.id == code_id).first()
            self.db.rollback()
        except SQLAlchemyError as e:
            raise self._fail("mark code used", e) from e

        if exists is None:
            raise StorageError(f"Verification code {code_id} no longer exists")
        return False

    def record_failed_attempt(
        self, email: str, purpose: CodePurpose, now: datetime, max_attempts: int
    ) -> bool:
        """Count a wrong guess against the outstanding code.

        Returns True when the guess used up the last attempt and the code was
        burned.
        """
        try:
            live = self._outstanding(email, purpose).filter(
                VerificationCode.expires_at > now)
            bumped = live.update(
                {VerificationCode.attempts: VerificationCode.attempts + 1},
                synchronize_session=False)
            burned = 0
            if bumped:
                burned = self._outstanding(email, purpose).filter(
                    VerificationCode.attempts >= max_attempts
                ).update({VerificationCode.used: True}, synchronize_session=False)
            self.db.commit()
            return burned > 0
        except SQLAlchemyError as e:
            raise self._fail("record attempt", e) from e

    def redeem(
        self,
        code_id: str,
        email: str,
        purpose: CodePurpose,
        now: datetime,
        grant_window: timedelta,
    ) -> bool:
        """Spend a verified code on one provisioning action"""
        try:
            updated = self.db.query(VerificationCode).filter(
                VerificationCode.id == code_id,
                VerificationCode.email == email,
                VerificationCode.purpose == purpose,
                VerificationCode.used.is_(True),
                VerificationCode.verified_at.isnot(None),
                VerificationCode.verified_at > now - grant_window,
                VerificationCode.redeemed_at.is_(None)
            ).update({VerificationCode.redeemed_at: now}, synchronize_session=False)
            self.db.commit()
            return updated == 1
        except SQLAlchemyError as e:
            raise self._fail("redeem verification", e) from e

    def purge_expired(self, before: datetime) -> int:
        """Delete codes that expired before the given time"""
        try:
            deleted = self.db.query(VerificationCode).filter(
                VerificationCode.expires_at < before
            ).delete(synchronize_session=False)
            self.db.commit()
            return deleted
        except SQLAlchemyError as e:
            raise self._fail("purge codes", e) from e

    def status(self, email: str, purpose: CodePurpose, now: datetime) -> Optional[Dict[str, Any]]:
        """State of the outstanding code, without the code itself (debugging)"""
        row = self._outstanding(email, purpose).filter(
            VerificationCode.expires_at > now
        ).order_by(VerificationCode.created_at.desc()).first()
        if row is None:
            return None
        return {
            "id": row.id,
            "email": row.email,
            "purpose": row.purpose.value,
            "attempts": row.attempts,
            "created_at": row.created_at.isoformat(),
            "expires_at": row.expires_at.isoformat(),
            "ttl": max(int((row.expires_at - now).total_seconds()), 0),
        }
