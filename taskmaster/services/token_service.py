"""Token service: issues and verifies signed access and refresh tokens."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import jwt
import structlog

from taskmaster.config import Settings, get_settings
from taskmaster.exceptions import (
    InvalidTokenError,
    TokenExpiredError,
    WrongTokenTypeError,
)

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"
REFRESH_TOKEN_TYPE = "refresh"


class TokenService:
    """Signs and verifies JWTs.

    Access tokens carry ``{userId}``; refresh tokens carry
    ``{userId, type: "refresh"}`` and are signed with the refresh secret
    when one is configured. Nothing here is revocable: refresh-token
    revocation lives in the user's active-token set (see UserService).
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def issue_token_pair(self, user_id: UUID) -> tuple[str, str]:
        """Create a fresh (access_token, refresh_token) pair for a user."""
        return self.create_access_token(user_id), self.create_refresh_token(user_id)

    def create_access_token(self, user_id: UUID) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": str(user_id),
            "iat": now,
            "exp": now + self.settings.jwt_expire,
        }
        token = jwt.encode(payload, self.settings.jwt_secret, algorithm=JWT_ALGORITHM)
        logger.debug(
            "access_token_created",
            user_id=str(user_id),
            expires_in_seconds=int(self.settings.jwt_expire.total_seconds()),
        )
        return token

    def create_refresh_token(self, user_id: UUID) -> str:
        """Create a refresh token.

        The random ``jti`` keeps two tokens issued in the same second distinct,
        since each one is tracked individually in the active-token set.
        """
        now = datetime.now(timezone.utc)
        payload = {
            "userId": str(user_id),
            "type": REFRESH_TOKEN_TYPE,
            "jti": uuid4().hex,
            "iat": now,
            "exp": now + self.settings.jwt_refresh_expire,
        }
        return jwt.encode(
            payload, self.settings.refresh_secret, algorithm=JWT_ALGORITHM
        )

    def verify_access_token(self, token: str) -> UUID:
        """Return the user id encoded in an access token.

        Raises:
            TokenExpiredError: If the token has expired
            InvalidTokenError: If the token is malformed, tampered with,
                or is a refresh token
        """
        payload = self._decode(token, self.settings.jwt_secret)
        if payload.get("type") == REFRESH_TOKEN_TYPE:
            raise InvalidTokenError("Refresh token used as access token")
        return self._user_id(payload)

    def verify_refresh_token(self, token: str) -> UUID:
        """Return the user id encoded in a refresh token.

        Raises:
            TokenExpiredError: If the token has expired
            InvalidTokenError: If the token is malformed or tampered with
            WrongTokenTypeError: If the type tag is not "refresh"
        """
        payload = self._decode(token, self.settings.refresh_secret)
        if payload.get("type") != REFRESH_TOKEN_TYPE:
            raise WrongTokenTypeError("Token is not a refresh token")
        return self._user_id(payload)

    @staticmethod
    def _decode(token: str, secret: str) -> dict:
        try:
            return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}")

    @staticmethod
    def _user_id(payload: dict) -> UUID:
        try:
            return UUID(str(payload["userId"]))
        except (KeyError, ValueError):
            raise InvalidTokenError("Invalid token payload")
