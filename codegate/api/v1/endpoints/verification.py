from http import HTTPStatus
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from codegate.api.dependencies import get_email_service, get_issue_throttle
from codegate.core.database import get_db
from codegate.core.exceptions import (DeliveryError, InvalidOrExpired,
                                      StorageError)
from codegate.schemas.verification import (CodeAccepted, CodeRequest,
                                           CodeVerifyRequest,
                                           CodeVerifyResponse)
from codegate.services.email_service import EmailService
from codegate.services.provisioning_service import ProvisioningCoordinator
from codegate.services.throttle_service import IssueThrottle

router = APIRouter()


@router.post("", response_model=CodeAccepted, status_code=HTTPStatus.ACCEPTED)
@router.post("/", response_model=CodeAccepted, status_code=HTTPStatus.ACCEPTED)
async def request_verification_code(
    request: CodeRequest,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    throttle: Optional[IssueThrottle] = Depends(get_issue_throttle),
):
    """Email a verification code.

    Password reset requests get the same response whether or not the email
    has an account.
    """
    if throttle:
        throttle.hit(request.email, request.purpose)

    coordinator = ProvisioningCoordinator(db, email_service=email_service)
    try:
        await coordinator.request_code(request.email, request.purpose, request.metadata)
    except (StorageError, DeliveryError):
        # no code reached the caller, allow an immediate resend
        if throttle:
            throttle.release(request.email, request.purpose)
        raise

    return CodeAccepted()


@router.post("/verify", response_model=CodeVerifyResponse, response_model_exclude_none=True)
@router.post("/verify/", response_model=CodeVerifyResponse, response_model_exclude_none=True)
async def verify_code(request: CodeVerifyRequest, db: Session = Depends(get_db)):
    """Check and consume a verification code"""
    coordinator = ProvisioningCoordinator(db)
    try:
        result = coordinator.verify(request.email, request.code, request.purpose)
    except InvalidOrExpired:
        return CodeVerifyResponse(valid=False, error="invalid_or_expired")

    return CodeVerifyResponse(valid=True, verification_id=result.code_id)
