"""Turns a successful code verification into an account action.

Per (email, purpose) a round trip moves through
NoCode -> CodeIssued -> CodeConsumed -> Provisioned, or ends in CodeExpired
or CodeSuperseded. Every terminal state needs a fresh issue to leave.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from codegate.config import settings
from codegate.core.exceptions import (DeliveryError, IdentityProviderError,
                                      ProvisioningConflict, StorageError)
from codegate.models.verification_code import utcnow
from codegate.schemas.verification import (CodePurpose, Identity, IssueResult,
                                           PendingRegistration, VerifyResult,
                                           normalize_email)
from codegate.services.code_issuer import CodeIssuer
from codegate.services.code_store import CodeStore
from codegate.services.code_verifier import CodeVerifier
from codegate.services.email_service import EmailService
from codegate.services.identity_service import DatabaseIdentityProvider
from codegate.utils.logger import verification_logger


class ProvisioningCoordinator:
    def __init__(
        self,
        db: Session,
        identity_provider=None,
        email_service: Optional[EmailService] = None,
        ttl: Optional[timedelta] = None,
    ):
        self.store = CodeStore(db)
        self.identity_provider = identity_provider or DatabaseIdentityProvider(db)
        self.issuer = CodeIssuer(db, email_service=email_service, ttl=ttl)
        self.verifier = CodeVerifier(db)
        self.grant_window = timedelta(minutes=settings.verification_grant_minutes)

    async def request_code(
        self,
        email: str,
        purpose: CodePurpose,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Optional[IssueResult]:
        """Issue a code, hiding account existence for password resets.

        Reset requests for unknown emails return None without sending
        anything. Storage and delivery failures for a known email are logged
        only, so every reset request looks the same to the caller.
        """
        email = normalize_email(email)
        if purpose == CodePurpose.signup:
            return await self.issuer.issue(email, purpose, metadata)

        if not self.identity_provider.account_exists(email):
            verification_logger.info(f"Password reset requested for unknown email: {email}")
            return None

        try:
            return await self.issuer.issue(email, purpose, metadata)
        except (StorageError, DeliveryError) as e:
            verification_logger.error(f"❌ Password reset code for {email} was not issued: {e.message}")
            return None

    def verify(self, email: str, code: str, purpose: CodePurpose, now: Optional[datetime] = None) -> VerifyResult:
        return self.verifier.verify(email, code, purpose, now)

    def load_verification(self, verification_id: str, email: str, purpose: CodePurpose) -> VerifyResult:
        """Rebuild a VerifyResult from the id handed out by the verify endpoint"""
        record = self.store.get(verification_id)
        if (record is None or record.verified_at is None
                or record.email != normalize_email(email) or record.purpose != purpose):
            raise ProvisioningConflict()
        return VerifyResult(
            code_id=str(record.id),
            email=str(record.email),
            purpose=record.purpose,
            verified_at=record.verified_at,
        )

    def _redeem(self, verification: VerifyResult, email: str, purpose: CodePurpose, now: datetime):
        email = normalize_email(email)
        if verification.email != email or verification.purpose != purpose:
            raise ProvisioningConflict()
        if not self.store.redeem(verification.code_id, email, purpose, now, self.grant_window):
            verification_logger.warning(
                f"Rejected reuse of {purpose.value} verification {verification.code_id} for {email}")
            raise ProvisioningConflict()

    def complete_signup(
        self,
        verification: VerifyResult,
        pending: PendingRegistration,
        now: Optional[datetime] = None,
    ) -> Identity:
        """Create the account held in the pending registration.

        The verification is spent even if account creation fails; the caller
        has to request a new code in that case.
        """
        self._redeem(verification, pending.email, CodePurpose.signup, now or utcnow())

        try:
            identity = self.identity_provider.create_account(
                normalize_email(pending.email),
                pending.password,
                {"display_name": pending.display_name},
            )
        except IdentityProviderError as e:
            verification_logger.warning(f"Signup for {pending.email} failed after verification: {e.message}")
            raise ProvisioningConflict(e.message) from e

        verification_logger.info(f"✅ Provisioned account {identity.id} for {identity.email}")
        return identity

    def complete_reset(
        self,
        verification: VerifyResult,
        email: str,
        new_password: str,
        now: Optional[datetime] = None,
    ) -> None:
        """Apply a new password after a verified reset code"""
        self._redeem(verification, email, CodePurpose.password_reset, now or utcnow())

        try:
            self.identity_provider.update_credential(normalize_email(email), new_password)
        except IdentityProviderError as e:
            verification_logger.warning(f"Password reset for {email} failed after verification: {e.message}")
            raise ProvisioningConflict() from e

        verification_logger.info(f"✅ Password reset for {normalize_email(email)}")
