from collections.abc import Mapping

from .constants import META_APP_ID_KEY, META_MEMBER_ID_KEY, META_TRACE_ID_KEY
from .logging import bind_log_context, clear_log_context


class RequestLogContextMiddleware:
    """Bind request metadata to the logging context for the request lifecycle."""

    _CONTEXT_MAPPING = {
        "trace_id": META_TRACE_ID_KEY,
        "app_id": META_APP_ID_KEY,
        "member_id": META_MEMBER_ID_KEY,
    }

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        clear_log_context()
        context = self._extract_context(request)
        if context:
            bind_log_context(**context)

        try:
            response = self.get_response(request)
        finally:
            clear_log_context()

        return response

    def _extract_context(self, request) -> dict[str, str]:
        context: dict[str, str] = {}
        meta = getattr(request, "META", {})

        for key, header in self._CONTEXT_MAPPING.items():
            value = meta.get(header)
            if value:
                context[key] = self._normalize(value)

        if "app_id" not in context:
            resolver_match = getattr(request, "resolver_match", None)
            app_id = resolver_match.kwargs.get("app_id") if resolver_match else None
            if app_id is not None:
                context["app_id"] = self._normalize(app_id)

        request_meta = getattr(request, "log_context", None)
        if isinstance(request_meta, Mapping):
            for key in self._CONTEXT_MAPPING:
                value = request_meta.get(key)
                if value:
                    context[key] = self._normalize(value)

        return context

    @staticmethod
    def _normalize(value: object) -> str:
        if isinstance(value, str):
            return value.strip()
        return str(value)
