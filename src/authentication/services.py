"""Bearer token lifecycle for portal sessions.

Access and refresh tokens are HS256 JWTs that identify a user and the
``token_version`` they were minted under. Bumping the version (logout-all)
invalidates every outstanding token at once; individual tokens are revoked by
putting their ``jti`` on a Redis blocklist until they would expire anyway.
Refresh tokens are single use: each exchange blocklists the presented one.
"""

import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Tuple

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import F
from rest_framework.exceptions import AuthenticationFailed

from core.redis_client import get_redis_client

logger = logging.getLogger(__name__)


class BlocklistUnavailable(Exception):
    """Redis could not be reached, so revocation state is unknown; callers refuse the token."""


class TokenService:
    """Mint, verify, rotate, and revoke portal tokens.

    Payloads hold ``sub``, ``ver`` (the user's token version), ``type``,
    ``jti``, ``iat`` and ``exp``. Nothing about roles or permissions goes in
    a token; those are read from the database per request.
    """

    ACCESS_TTL = timedelta(minutes=15)
    REFRESH_TTL = timedelta(hours=24)
    ALGORITHM = "HS256"
    BLOCKLIST_PREFIX = "blocklist:token:"

    @classmethod
    def generate_tokens(cls, user) -> Tuple[str, str]:
        """Return an ``(access, refresh)`` pair bound to the user's current token version."""
        now = datetime.now(timezone.utc)
        return (
            cls._sign(cls._build_payload(user, "access", now, cls.ACCESS_TTL)),
            cls._sign(cls._build_payload(user, "refresh", now, cls.REFRESH_TTL)),
        )

    @classmethod
    def _sign(cls, payload: dict[str, Any]) -> str:
        return jwt.encode(payload, settings.SECRET_KEY, algorithm=cls.ALGORITHM)

    @classmethod
    def _build_payload(cls, user, token_type: str, issued_at: datetime, ttl: timedelta) -> dict[str, Any]:
        return {
            "sub": str(user.id),
            "ver": user.token_version,
            "type": token_type,
            "jti": str(uuid.uuid4()),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + ttl).timestamp()),
        }

    @classmethod
    def decode_token(cls, token: str, expected_type: Optional[str] = None) -> dict[str, Any]:
        """Verify signature and expiry; reject an access token where a refresh is expected and vice versa."""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[cls.ALGORITHM])
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationFailed("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationFailed("Invalid token") from exc

        if expected_type and payload.get("type") != expected_type:
            raise AuthenticationFailed("Invalid token type")
        return payload

    @staticmethod
    def is_current(payload: dict[str, Any], user) -> bool:
        """False once the user has logged out everywhere since the token was minted."""
        return payload.get("ver") == user.token_version

    @classmethod
    def rotate_refresh(cls, refresh_token: str) -> Tuple[Any, str, str]:
        """Spend ``refresh_token`` and return ``(user, access, refresh)`` for a fresh pair."""
        payload = cls.decode_token(refresh_token, expected_type="refresh")
        if cls.is_token_blocked(payload.get("jti", "")):
            raise AuthenticationFailed("Invalid or revoked refresh token")

        user = _active_user(payload.get("sub"))
        if user is None:
            raise AuthenticationFailed("User not found or inactive")
        if not cls.is_current(payload, user):
            raise AuthenticationFailed("Invalid or revoked refresh token")

        cls.block_token(payload["jti"], payload["exp"])
        access, refresh = cls.generate_tokens(user)
        return user, access, refresh

    @classmethod
    def revoke_all(cls, user, access_token: Optional[str] = None) -> None:
        """Bump the user's token version, and blocklist ``access_token`` straight away if given."""
        get_user_model().objects.filter(pk=user.pk).update(token_version=F("token_version") + 1)
        if access_token:
            payload = cls.decode_token(access_token, expected_type="access")
            cls.block_token(payload["jti"], payload["exp"])
        logger.info("User %s revoked all tokens", user.pk)

    @classmethod
    def block_token(cls, jti: str, exp: int) -> None:
        """Blocklist ``jti`` for the rest of its lifetime (at least one second)."""
        client = get_redis_client()
        ttl_seconds = max(1, exp - int(time.time()))
        try:
            client.setex(f"{cls.BLOCKLIST_PREFIX}{jti}", ttl_seconds, "1")
        except Exception as exc:  # pragma: no cover - network failure
            logger.error("Redis unavailable while blocklisting token %s", jti)
            raise BlocklistUnavailable("Redis unavailable while blocklisting") from exc

    @classmethod
    def is_token_blocked(cls, jti: str) -> bool:
        client = get_redis_client()
        try:
            return client.get(f"{cls.BLOCKLIST_PREFIX}{jti}") is not None
        except Exception as exc:  # pragma: no cover - network failure
            raise BlocklistUnavailable("Redis unavailable while checking blocklist") from exc


def _active_user(user_id):
    if not user_id:
        return None
    User = get_user_model()
    try:
        return User.objects.filter(pk=user_id, is_active=True).first()
    except (DjangoValidationError, ValueError):
        return None


__all__ = ["TokenService", "BlocklistUnavailable"]
