from fastapi import APIRouter

from codegate.api.v1.endpoints import auth, verification

api_router = APIRouter()

# verification code issue/verify
api_router.include_router(
    verification.router, prefix="/verification-codes", tags=["verification"])

# account provisioning
api_router.include_router(
    auth.router, prefix="/auth", tags=["auth"])
