# src/xraytrace/client/errors.py — v1
"""Transport failures surfaced by the HTTP client."""

from __future__ import annotations

from xraytrace.core.errors import XRayError


class TransportError(XRayError):
    """A persistence call failed: network error, timeout or non-2xx response.

    ``request_sent`` is False only when the connection could not be opened,
    i.e. the server cannot have seen the request.
    """

    def __init__(
        self,
        method: str,
        path: str,
        message: str,
        status_code: int | None = None,
        request_sent: bool = True,
    ) -> None:
        self.method = method
        self.path = path
        self.status_code = status_code
        self.request_sent = request_sent
        status = f" [{status_code}]" if status_code is not None else ""
        super().__init__(f"{method} {path}{status}: {message}")

    @property
    def is_retryable(self) -> bool:
        """Timeouts, connection failures and 5xx responses may succeed on retry."""
        return self.status_code is None or self.status_code >= 500
