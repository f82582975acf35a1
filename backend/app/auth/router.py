"""Auth router for bearer-token identity lookup.

Endpoints:
    GET /auth/me - Identity carried by the caller's bearer token
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.dependencies import get_current_identity

from .tokens import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class IdentityResponse(BaseModel):
    """Response body for the current identity."""
    userId: str
    email: str | None = None


@router.get("/me", response_model=IdentityResponse)
async def read_current_identity(
    identity: Identity = Depends(get_current_identity),
) -> IdentityResponse:
    """Return the user the bearer token was issued to."""
    return IdentityResponse(userId=identity.user_id, email=identity.email)
