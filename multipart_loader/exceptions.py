"""
Error types for multipart loading.

Parsing never raises; only the transport side of a load can fail:
- Network, timeout and protocol failures
- Error status codes returned by the server
"""

from __future__ import annotations


class MultipartLoadError(Exception):
    """Base load error with the transport's failure details."""

    def __init__(
        self,
        message: str,
        url: str,
        method: str,
        status_code: int | None = None,
        reason_phrase: str | None = None,
        response_text: str | None = None,
        category: str = "unknown_error",
    ):
        super().__init__(message)
        self.url = url
        self.method = method
        self.status_code = status_code
        self.reason_phrase = reason_phrase
        self.response_text = response_text
        self.category = category


class TransportError(MultipartLoadError):
    """The exchange failed before a complete response was received."""
    pass


class ResponseStatusError(MultipartLoadError):
    """The server answered with an error status."""

    def __init__(
        self,
        message: str,
        url: str,
        method: str,
        status_code: int,
        **kwargs,
    ):
        kwargs.setdefault("category", "http_status_error")
        super().__init__(message, url, method, status_code=status_code, **kwargs)
