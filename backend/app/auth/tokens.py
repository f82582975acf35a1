"""JWT bearer token verification and issuance.

Tokens are HS256-signed JWTs carrying ``userId`` and ``email`` claims, the
same shape the REST login hands out. Verification is a pure function of the
token and the configured secret.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from app.config import AppConfig

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class for credential failures.

    Attributes:
        reason: Short machine-readable code sent back to the client.
    """

    reason = "unauthorized"


class MissingToken(AuthError):
    """No bearer credential was supplied."""

    reason = "missing_token"


class InvalidToken(AuthError):
    """The credential is malformed, has a bad signature, or lacks claims."""

    reason = "invalid_token"


class TokenExpired(InvalidToken):
    """The credential was valid but its ``exp`` claim has passed."""

    reason = "token_expired"


@dataclass(frozen=True)
class Identity:
    """Authenticated user identity decoded from a token."""

    user_id: str
    email: Optional[str] = None


class TokenVerifier:
    """Validates and issues signed bearer tokens."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_minutes: int = 60 * 24 * 7,
    ) -> None:
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    @classmethod
    def from_config(cls, config: AppConfig) -> "TokenVerifier":
        return cls(
            secret_key=config.secrets.jwt.secret_key,
            algorithm=config.secrets.jwt.algorithm,
            expire_minutes=config.auth.token_expire_minutes,
        )

    def verify(self, token: str) -> Identity:
        """Decode *token* and return the identity it carries.

        Raises:
            TokenExpired: The token's ``exp`` is in the past.
            InvalidToken: Bad signature, malformed token, or no ``userId``.
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(f"Invalid token: {exc}") from exc

        user_id = payload.get("userId")
        if not isinstance(user_id, str) or not user_id:
            raise InvalidToken("Token has no userId claim")

        email = payload.get("email")
        return Identity(user_id=user_id, email=email if isinstance(email, str) else None)

    def issue(
        self,
        user_id: str,
        email: Optional[str] = None,
        expires_in: Optional[timedelta] = None,
    ) -> str:
        """Sign a token for *user_id*; expiry defaults to the configured lifetime."""
        now = datetime.now(timezone.utc)
        lifetime = expires_in if expires_in is not None else timedelta(minutes=self.expire_minutes)
        payload = {
            "userId": user_id,
            "email": email,
            "iat": now,
            "exp": now + lifetime,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)


def parse_bearer(header: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header value."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None
