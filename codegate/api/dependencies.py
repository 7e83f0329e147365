from typing import Optional

from codegate.config import settings
from codegate.services.email_service import EmailService
from codegate.services.throttle_service import IssueThrottle


def get_email_service() -> EmailService:
    """Mail relay client"""
    return EmailService()


def get_issue_throttle() -> Optional[IssueThrottle]:
    """Resend throttle, None when disabled"""
    if not settings.throttle_enabled:
        return None
    return IssueThrottle()
