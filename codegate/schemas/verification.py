from datetime import datetime
from enum import Enum
from typing import Dict, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class CodePurpose(str, Enum):
    signup = "signup"
    password_reset = "password_reset"


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CodeRequest(BaseModel):
    email: EmailStr = Field(..., description="Email address")
    purpose: CodePurpose = Field(..., description="What the code will authorize")
    metadata: Optional[Dict[str, str]] = Field(
        None, description="Extra values for the email, e.g. display_name")


class CodeAccepted(BaseModel):
    accepted: bool = Field(default=True, description="Always true on success")


class CodeVerifyRequest(BaseModel):
    email: EmailStr = Field(..., description="Email address")
    code: str = Field(..., min_length=1, max_length=12, description="Verification code")
    purpose: CodePurpose = Field(..., description="What the code was issued for")


class CodeVerifyResponse(BaseModel):
    valid: bool = Field(..., description="Whether the code was accepted")
    verification_id: Optional[str] = Field(
        None, description="Single-use grant for the follow-up provisioning call")
    error: Optional[Literal["invalid_or_expired"]] = Field(None, description="Error kind")


class PendingRegistration(BaseModel):
    """Signup payload the caller holds between requesting and entering a code"""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=8, description="Password, at least 8 characters")
    display_name: str = Field(..., min_length=1, max_length=100, description="Display name")


class RegisterRequest(PendingRegistration):
    verification_id: str = Field(..., description="Grant returned by /verification-codes/verify")


class ResetPasswordRequest(BaseModel):
    verification_id: str = Field(..., description="Grant returned by /verification-codes/verify")
    email: EmailStr = Field(..., description="Email address")
    new_password: str = Field(..., min_length=8, description="New password")


class IssueResult(BaseModel):
    code_id: str
    email: str
    purpose: CodePurpose
    expires_at: datetime
    superseded: int = 0


class VerifyResult(BaseModel):
    code_id: str
    email: str
    purpose: CodePurpose
    verified_at: datetime


class Identity(BaseModel):
    id: str = Field(..., description="User ID")
    email: str = Field(..., description="Email address")
    display_name: str = Field(..., description="Display name")
    access_token: Optional[str] = Field(None, description="Access token")
    token_type: str = Field(default="bearer", description="Token type")
