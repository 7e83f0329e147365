from datetime import datetime, timezone
from http import HTTPStatus

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from codegate.core.database import get_db
from codegate.schemas.base import ApiResponse
from codegate.schemas.verification import (CodePurpose, PendingRegistration,
                                           RegisterRequest,
                                           ResetPasswordRequest)
from codegate.services.provisioning_service import ProvisioningCoordinator

router = APIRouter()


@router.post("/register", response_model=ApiResponse, status_code=HTTPStatus.CREATED)
@router.post("/register/", response_model=ApiResponse, status_code=HTTPStatus.CREATED)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Create the account for a verified signup"""
    coordinator = ProvisioningCoordinator(db)
    verification = coordinator.load_verification(
        request.verification_id, request.email, CodePurpose.signup)
    pending = PendingRegistration(
        email=request.email,
        password=request.password,
        display_name=request.display_name,
    )
    identity = coordinator.complete_signup(verification, pending)
    return ApiResponse(
        success=True,
        message="Account created",
        timestamp=datetime.now(timezone.utc),
        data=identity.model_dump()
    )


@router.post("/reset-password", response_model=ApiResponse)
@router.post("/reset-password/", response_model=ApiResponse)
async def reset_password(request: ResetPasswordRequest, db: Session = Depends(get_db)):
    """Set a new password after a verified reset code"""
    coordinator = ProvisioningCoordinator(db)
    verification = coordinator.load_verification(
        request.verification_id, request.email, CodePurpose.password_reset)
    coordinator.complete_reset(verification, request.email, request.new_password)
    return ApiResponse(
        success=True,
        message="Password reset successfully",
        timestamp=datetime.now(timezone.utc),
    )
