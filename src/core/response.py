"""The ``{"data": ..., "errors": [...]}`` envelope shared by every endpoint.

Successful responses go through ``api_response`` or one of the base view
classes below; error responses are shaped by ``core.exceptions`` and the
authentication middleware, all via ``envelope``.
"""

from typing import Any, Iterable, Optional

from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import ModelViewSet, ReadOnlyModelViewSet


def envelope(data: Any = None, errors: Optional[Iterable[Any]] = None) -> dict:
    return {"data": data, "errors": list(errors or [])}


def api_response(data: Any, status: int = 200) -> Response:
    """Wrap ``data`` in a successful envelope."""
    return Response(envelope(data), status=status)


def _is_enveloped(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.keys() >= {"data", "errors"}


class EnvelopeMixin:
    """Wrap plain DRF payloads (generic list/retrieve/create) on the way out.

    Error responses are already shaped by the exception handler and 204s have
    no body, so both pass through untouched.
    """

    def finalize_response(self, request, response, *args, **kwargs):  # type: ignore[override]
        status_code = getattr(response, "status_code", None) or 0
        if status_code < 400 and status_code != 204 and hasattr(response, "data"):
            if not _is_enveloped(response.data):
                response.data = envelope(response.data)
        return super().finalize_response(request, response, *args, **kwargs)  # type: ignore[attr-defined]


class BaseAPIView(EnvelopeMixin, APIView):
    pass


class BaseViewSet(EnvelopeMixin, ModelViewSet):
    pass


class BaseReadOnlyViewSet(EnvelopeMixin, ReadOnlyModelViewSet):
    pass


__all__ = ["BaseAPIView", "BaseReadOnlyViewSet", "BaseViewSet", "api_response", "envelope"]
