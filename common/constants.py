"""Shared HTTP header and request metadata constants."""

# Canonical header names
X_TRACE_ID_HEADER = "X-Trace-ID"
X_APP_ID_HEADER = "X-App-ID"
X_MEMBER_ID_HEADER = "X-Member-ID"

# Django request.META keys
META_TRACE_ID_KEY = "HTTP_X_TRACE_ID"
META_APP_ID_KEY = "HTTP_X_APP_ID"
META_MEMBER_ID_KEY = "HTTP_X_MEMBER_ID"
