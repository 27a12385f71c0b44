"""
Incremental loading of HTTP multipart responses.

This package provides:
- Boundary extraction from Content-Type headers
- A line-oriented parser for multipart bodies of HTTP sub-responses
- Incremental re-parsing of partial bodies
- An httpx-based loader reporting progress while the body streams in
"""

from __future__ import annotations

from .boundary import extract_boundary
from .config import Configuration
from .exceptions import MultipartLoadError, ResponseStatusError, TransportError
from .loader import LoadHandle, MultipartLoader, load
from .models import (
    EntryStatus,
    LoadEvent,
    LoadEventType,
    MultipartEntry,
    ParserStats,
)
from .parser import EntryAccumulator, parse_response_body

__all__ = [
    "Configuration",
    "EntryAccumulator",
    "EntryStatus",
    "LoadEvent",
    "LoadEventType",
    "LoadHandle",
    "MultipartEntry",
    "MultipartLoadError",
    "MultipartLoader",
    "ParserStats",
    "ResponseStatusError",
    "TransportError",
    "extract_boundary",
    "load",
    "parse_response_body",
]
