"""Middleware: request correlation ids and JWT authentication with a Redis blocklist."""

import logging
import uuid
from typing import Optional

from django.contrib.auth.models import AnonymousUser
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed

from authentication.models import User
from authentication.services import BlocklistUnavailable, TokenService

from .logging import request_id_var
from .response import envelope

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "HTTP_X_REQUEST_ID"


class RequestIdMiddleware(MiddlewareMixin):
    """Bind an ``X-Request-ID`` (incoming or generated) to the logging context."""

    def process_request(self, request):  # type: ignore[override]
        request_id = request.META.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.request_id = request_id
        request._request_id_token = request_id_var.set(request_id)
        return None

    def process_response(self, request, response):  # type: ignore[override]
        request_id = getattr(request, "request_id", None)
        if request_id:
            response["X-Request-ID"] = request_id
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            request_id_var.reset(token)
        return response


class JWTAuthMiddleware(MiddlewareMixin):
    """Decode access JWT, check blocklist and token version, and attach request.user."""

    def process_request(self, request):  # type: ignore[override]
        """Authenticate request using Bearer access token if present."""
        auth_header = request.META.get("HTTP_AUTHORIZATION", "")
        if not auth_header or not auth_header.startswith("Bearer "):
            request.user = AnonymousUser()
            return None

        token = auth_header.split(" ", 1)[1]

        try:
            payload = TokenService.decode_token(token, expected_type="access")
            jti = payload.get("jti")
            if not jti:
                return _unauthorized()

            if TokenService.is_token_blocked(jti):
                return _unauthorized()

            user = self._get_user(payload.get("sub"))
            if not user or not user.is_active:
                return _unauthorized()

            if not TokenService.is_current(payload, user):
                return _unauthorized()

            request.user = user
            return None

        except AuthenticationFailed as exc:
            logger.info("Rejected bearer token: %s", exc.detail)
            return _unauthorized()
        except BlocklistUnavailable:
            logger.error("Token blocklist unavailable while authenticating request")
            return _service_unavailable()

    @staticmethod
    def _get_user(user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        try:
            return User.objects.get(id=user_id)
        except (User.DoesNotExist, DjangoValidationError, ValueError):
            return None


def _unauthorized() -> JsonResponse:
    return JsonResponse(
        envelope(
            errors=["Authentication credentials were not provided or are invalid, token revoked, or user is inactive."]
        ),
        status=status.HTTP_401_UNAUTHORIZED,
    )


def _service_unavailable() -> JsonResponse:
    return JsonResponse(
        envelope(errors=["Authentication service unavailable (blocklist)."]),
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


__all__ = ["JWTAuthMiddleware", "RequestIdMiddleware"]
