from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from codegate.core.auth import create_access_token, get_password_hash
from codegate.core.exceptions import IdentityProviderError, StorageError
from codegate.models.user import User
from codegate.schemas.verification import Identity, normalize_email
from codegate.utils.logger import db_logger


class DatabaseIdentityProvider:
    """Identity provider backed by the local users table"""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, email: str) -> Optional[User]:
        try:
            return self.db.query(User).filter(
                User.email == normalize_email(email)).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            db_logger.error(f"❌ Failed to look up account {email}: {e}")
            raise StorageError("Account storage is unavailable") from e

    def account_exists(self, email: str) -> bool:
        user = self._get(email)
        return user is not None and bool(user.is_active)

    def create_account(self, email: str, credential: str, profile: Optional[Dict[str, str]] = None) -> Identity:
        """Create a user and sign them in"""
        profile = profile or {}
        email = normalize_email(email)
        if self._get(email):
            raise IdentityProviderError("Email already registered")

        db_user = User(
            email=email,
            display_name=profile.get("display_name") or email.split("@")[0],
            hashed_password=get_password_hash(credential),
        )
        self.db.add(db_user)
        try:
            self.db.commit()
        except IntegrityError as e:
            # registered by a concurrent request
            self.db.rollback()
            raise IdentityProviderError("Email already registered") from e
        self.db.refresh(db_user)

        return Identity(
            id=str(db_user.id),
            email=str(db_user.email),
            display_name=str(db_user.display_name),
            access_token=create_access_token(data={"sub": str(db_user.id)}),
        )

    def update_credential(self, email: str, new_credential: str) -> None:
        user = self._get(email)
        if not user or not bool(user.is_active):
            raise IdentityProviderError("Account not found")

        setattr(user, "hashed_password", get_password_hash(new_credential))
        self.db.commit()
