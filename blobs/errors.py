"""Client-side blob submission errors."""

from __future__ import annotations


class TransportFailure(RuntimeError):
    """Raised when an individual blob upload does not yield an identifier."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        destination: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.destination = destination
