"""Connection gate: authenticates WebSocket handshakes before acceptance."""
import logging
from typing import Optional

from starlette.requests import HTTPConnection

from app.auth.tokens import Identity, MissingToken, TokenVerifier, parse_bearer

logger = logging.getLogger(__name__)


def extract_token(connection: HTTPConnection) -> Optional[str]:
    """Pull the bearer token from a handshake.

    The ``Authorization: Bearer`` header is preferred; the ``token`` query
    parameter is the fallback for browser clients that cannot set headers.
    """
    token = parse_bearer(connection.headers.get("authorization"))
    if token:
        return token
    return connection.query_params.get("token") or None


class ConnectionGate:
    """Accepts or rejects connection attempts. Touches no shared state."""

    def __init__(self, verifier: TokenVerifier) -> None:
        self._verifier = verifier

    def authenticate(self, connection: HTTPConnection) -> Identity:
        """Return the identity behind the handshake's token.

        Raises:
            MissingToken: No token in header or query string.
            InvalidToken: The token failed verification.
        """
        token = extract_token(connection)
        if not token:
            raise MissingToken("Authentication required")
        return self._verifier.verify(token)
