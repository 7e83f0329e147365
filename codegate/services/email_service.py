from html import escape
from typing import Dict, Optional

import httpx

from codegate.config import settings
from codegate.core.exceptions import DeliveryError
from codegate.schemas.verification import CodePurpose
from codegate.utils.logger import verification_logger

_LAYOUT = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <style>
        body {{ font-family: Arial, sans-serif; background-color: #0a0a0a; }}
        .container {{ max-width: 480px; margin: 0 auto; background-color: #1a1a1a; padding: 32px; border-radius: 16px; border: 1px solid rgba(34, 197, 94, 0.2); }}
        .header {{ text-align: center; color: #22c55e; margin-bottom: 16px; }}
        .content {{ color: #a1a1aa; line-height: 1.6; text-align: center; }}
        .code-box {{ background-color: #0a0a0a; border: 2px solid #22c55e; border-radius: 12px; padding: 24px; margin: 24px 0; font-size: 36px; font-weight: bold; letter-spacing: 10px; color: #22c55e; font-family: monospace; }}
        .footer {{ text-align: center; color: #52525b; font-size: 12px; margin-top: 32px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h2>{heading}</h2></div>
        <div class="content">
            <p>{intro}</p>
            <div class="code-box">{code}</div>
            <p>This code expires in <strong>{minutes} minutes</strong>.</p>
            <p>{ignore_hint}</p>
        </div>
        <div class="footer"><p>The {sender} Team</p></div>
    </div>
</body>
</html>
"""


class EmailService:
    """Client for the transactional mail relay"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.smtp_service_url = settings.smtp_service_url
        self.api_key = settings.smtp_api_key
        self.sender_name = settings.email_sender_name
        self.timeout = settings.email_timeout_seconds
        self.transport = transport

    def render(self, code: str, purpose: CodePurpose, metadata: Optional[Dict[str, str]] = None) -> tuple:
        """Subject and HTML body for a code email"""
        metadata = metadata or {}
        display_name = metadata.get("display_name")
        minutes = settings.code_expire_minutes

        if purpose == CodePurpose.signup:
            subject = f"Your {self.sender_name} Verification Code"
            heading = f"Welcome, {escape(display_name)}!" if display_name else f"Welcome to {self.sender_name}!"
            intro = "Enter this verification code to complete your registration:"
            ignore_hint = "If you didn't request this code, you can safely ignore this email."
        else:
            subject = f"Your {self.sender_name} Password Reset Code"
            heading = "Password Reset Code"
            intro = "Use this code to reset your password:"
            ignore_hint = "If you didn't request this, you can safely ignore this email."

        body = _LAYOUT.format(
            heading=heading,
            intro=intro,
            code=code,
            minutes=minutes,
            ignore_hint=ignore_hint,
            sender=self.sender_name,
        ).strip()
        return subject, body

    async def send(self, recipient: str, subject: str, body: str) -> dict:
        """Post one HTML email to the relay. Raises DeliveryError on any failure."""
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.smtp_service_url}/v1/mail/send",
                    headers={
                        "Content-Type": "application/json",
                        "X-API-Key": self.api_key
                    },
                    json={
                        "recipient_email": recipient,
                        "subject": subject,
                        "body": body,
                        "body_type": "html"
                    },
                )
            except httpx.TimeoutException as e:
                verification_logger.error(f"❌ Mail relay timed out for {recipient}: {e}")
                raise DeliveryError() from e
            except httpx.RequestError as e:
                verification_logger.error(f"❌ Mail relay unreachable for {recipient}: {e}")
                raise DeliveryError() from e

        if response.status_code != 200:
            verification_logger.error(
                f"❌ Mail relay rejected email to {recipient}: {response.status_code} {response.text}")
            raise DeliveryError()

        try:
            result = response.json()
        except ValueError:
            result = {}
        return {
            "success": True,
            "message": result.get("message", "Email sent"),
            "email_id": result.get("email_id")
        }

    async def send_verification_code(
        self,
        email: str,
        code: str,
        purpose: CodePurpose,
        metadata: Optional[Dict[str, str]] = None,
    ) -> dict:
        subject, body = self.render(code, purpose, metadata)
        return await self.send(email, subject, body)
