"""Domain errors raised by the resource and asset stores."""

from __future__ import annotations

from typing import Any, Mapping

from rest_framework.response import Response
from rest_framework.views import exception_handler


class ResourceError(Exception):
    """Base class for errors with an HTTP mapping."""

    status_code = 500
    code = "resource_error"

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details) if details else None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return {"error": payload}


class NotFound(ResourceError):
    status_code = 404
    code = "not_found"


class Conflict(ResourceError):
    status_code = 409
    code = "conflict"


class ValidationError(ResourceError):
    status_code = 400
    code = "validation_failed"


class Forbidden(ResourceError):
    status_code = 403
    code = "forbidden"


def api_exception_handler(exc, context):
    """DRF exception handler rendering every error as ``{"error": {...}}``."""

    if isinstance(exc, ResourceError):
        return Response(exc.as_payload(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        return None

    detail = response.data
    message = detail.get("detail") if isinstance(detail, dict) else None
    payload: dict[str, Any] = {
        "code": getattr(exc, "default_code", "error"),
        "message": str(message) if message else str(exc),
    }
    if message is None and detail:
        payload["details"] = detail
    response.data = {"error": payload}
    return response
