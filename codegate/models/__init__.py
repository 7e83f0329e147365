# import every model so it is registered with SQLAlchemy
from codegate.models.user import User
from codegate.models.verification_code import VerificationCode

__all__ = [
    "User",
    "VerificationCode",
]
