"""Domain error taxonomy and the exception handler enforcing the API envelope."""

from typing import Any

from django.conf import settings
from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import APIException, AuthenticationFailed, NotAuthenticated
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from authentication.services import BlocklistUnavailable
from .response import envelope


class PortalError(APIException):
    """Base for errors raised by the authorization and workflow engine.

    Every subclass carries a user-facing ``detail`` string that the exception
    handler passes through unchanged.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The request could not be completed."
    default_code = "portal_error"


class Unauthorized(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required."
    default_code = "unauthorized"


class Forbidden(PortalError):
    """Authenticated, but a guard rejected the action."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to perform this action."
    default_code = "forbidden"


class NotFound(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class InvalidTransition(PortalError):
    """Requested status change is not in the table or the state moved on."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "This status transition is not allowed."
    default_code = "invalid_transition"


class ReviewAlreadyClosed(InvalidTransition):
    default_detail = "This review has already been completed."
    default_code = "review_already_closed"


class ValidationError(PortalError):
    default_detail = "Invalid input."
    default_code = "validation_error"


class TransitionFailed(PortalError):
    """Persistence failed mid-transition; the transaction was rolled back."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "The status change could not be saved. Please try again."
    default_code = "transition_failed"


def _normalize_errors(payload: Any) -> list[Any]:
    """Convert DRF's response.data into a list for the envelope."""

    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and "detail" in payload:
        # Common DRF pattern: {"detail": "..."}
        return [payload["detail"]]
    return [payload]


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """Wrap DRF errors in `{ "data": null, "errors": [...] }` shape.

    - Uses DRF's default handler to produce the base response.
    - Keeps the reason string of ``PortalError`` subclasses so guard denials
      reach the user verbatim.
    - Normalizes the remaining auth/permission messages.
    - Optionally exposes more detailed auth errors when DEBUG_AUTH_ERRORS is enabled.
    """

    # Blocklist outages are security-critical and must fail closed with 503.
    if isinstance(exc, BlocklistUnavailable):
        return Response(
            envelope(errors=["Authentication service unavailable (blocklist)."]),
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    # Treat database errors as a temporary service outage and still respect the
    # global envelope format instead of returning Django's HTML 500 page.
    if isinstance(exc, DatabaseError):
        return Response(
            envelope(errors=["Service temporarily unavailable."]),
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    response = drf_exception_handler(exc, context)

    if response is None:
        return response

    # DRF downgrades NotAuthenticated to 403 when no WWW-Authenticate header
    # is available; the API always reports missing credentials as 401.
    if isinstance(exc, (AuthenticationFailed, NotAuthenticated, Unauthorized)):
        response.status_code = status.HTTP_401_UNAUTHORIZED

    if response.status_code >= 400:
        base_errors = response.data

        if isinstance(exc, PortalError) and response.status_code != status.HTTP_401_UNAUTHORIZED:
            errors = _normalize_errors(base_errors)
        elif response.status_code == status.HTTP_401_UNAUTHORIZED:
            if getattr(settings, "DEBUG_AUTH_ERRORS", False):
                # Surface the specific message (e.g. "Token has expired").
                errors = _normalize_errors(base_errors)
            else:
                errors = [
                    "Authentication credentials were not provided or are invalid, "
                    "token revoked, or user is inactive."
                ]
        elif response.status_code == status.HTTP_403_FORBIDDEN:
            errors = [
                "You do not have permission to perform this action on this resource."
            ]
        else:
            errors = _normalize_errors(base_errors)

        response.data = envelope(errors=errors)

    return response


__all__ = [
    "Forbidden",
    "InvalidTransition",
    "NotFound",
    "PortalError",
    "ReviewAlreadyClosed",
    "TransitionFailed",
    "Unauthorized",
    "ValidationError",
    "custom_exception_handler",
]
