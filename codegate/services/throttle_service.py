"""Resend throttle for code issuance, kept in Redis"""
from typing import Optional

import redis

from codegate.config import settings
from codegate.core.exceptions import RateLimitError
from codegate.core.redis import get_redis
from codegate.schemas.verification import CodePurpose, normalize_email
from codegate.utils.logger import api_logger


class IssueThrottle:
    def __init__(self, client: Optional[redis.Redis] = None, interval_seconds: Optional[int] = None):
        self.redis = client if client is not None else get_redis()
        if interval_seconds is None:
            interval_seconds = settings.resend_interval_seconds
        self.interval_seconds = interval_seconds

    def _get_rate_limit_key(self, email: str, purpose: CodePurpose) -> str:
        return f"verification_rate_limit:{purpose.value}:{normalize_email(email)}"

    def hit(self, email: str, purpose: CodePurpose) -> None:
        """Claim the resend slot for (email, purpose) or raise RateLimitError"""
        key = self._get_rate_limit_key(email, purpose)
        try:
            if self.redis.set(key, "1", nx=True, ex=self.interval_seconds):
                return
            ttl = self.redis.ttl(key)
        except redis.RedisError as e:
            # fail open
            api_logger.error(f"❌ Throttle unavailable, allowing request for {email}: {e}")
            return

        wait = int(ttl) if ttl and int(ttl) > 0 else self.interval_seconds
        api_logger.info(f"Throttled {purpose.value} code request for {email}, {wait}s left")
        raise RateLimitError(
            f"Please wait {wait} seconds before requesting another code", retry_after=wait)

    def release(self, email: str, purpose: CodePurpose) -> None:
        """Give the slot back, e.g. when issuance failed before anything was sent"""
        try:
            self.redis.delete(self._get_rate_limit_key(email, purpose))
        except redis.RedisError as e:
            api_logger.error(f"❌ Could not release throttle for {email}: {e}")
