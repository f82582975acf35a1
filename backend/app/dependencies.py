"""FastAPI dependencies shared by the HTTP routers."""
import logging

from fastapi import Depends, HTTPException, Request

from app.auth.tokens import Identity, InvalidToken, parse_bearer
from app.realtime import RealtimeServices

logger = logging.getLogger(__name__)


def get_services(request: Request) -> RealtimeServices:
    """Realtime components built by the application lifespan."""
    return request.app.state.realtime


def get_current_identity(
    request: Request,
    services: RealtimeServices = Depends(get_services),
) -> Identity:
    """Resolve the caller from the ``Authorization: Bearer`` header.

    Raises:
        HTTPException: 401 when the header is missing or the token is invalid.
    """
    token = parse_bearer(request.headers.get("authorization"))
    if not token:
        raise HTTPException(
            status_code=401,
            detail="No token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return services.verifier.verify(token)
    except InvalidToken as e:
        logger.info(f"Rejected bearer token: {e.reason}")
        raise HTTPException(
            status_code=401,
            detail="Token expired" if e.reason == "token_expired" else "Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
