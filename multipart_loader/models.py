"""
Dataclasses for parsed multipart entries and load events.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .exceptions import MultipartLoadError

HeaderValue = str | int | float


class ScanState(Enum):
    """Line classification state while an entry is being built."""
    AWAITING_ENTRY_START = "awaiting_entry_start"
    STATUS_OR_HEADER_EXPECTED = "status_or_header_expected"
    BODY_COLLECTING = "body_collecting"


class LoadEventType(Enum):
    """Events emitted while a multipart response is loading."""
    HEADERS_READY = "headers_ready"
    PROGRESS = "progress"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class EntryStatus:
    """HTTP status line of an entry. Both fields are None when absent."""
    code: int | None = None
    text: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.code is None


@dataclass(frozen=True)
class MultipartEntry:
    """One sub-response of a multipart body. Headers are a read-only view."""
    status: EntryStatus = field(default_factory=EntryStatus)
    headers: Mapping[str, HeaderValue] = field(default_factory=dict)
    body: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.headers, MappingProxyType):
            object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))


@dataclass(frozen=True)
class LoadEvent:
    """Single event from an in-flight load.

    ``delivered`` is the number of entries handed out before this event;
    ``entries`` holds the entries completed by this step (PROGRESS only).
    """
    event_type: LoadEventType
    delivered: int = 0
    entries: list[MultipartEntry] = field(default_factory=list)
    boundary: str = ""
    result: dict[HeaderValue, MultipartEntry] | None = None
    error: MultipartLoadError | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.event_type in (LoadEventType.COMPLETE, LoadEventType.FAILED)


@dataclass
class AccumulatorState:
    """Mutable state owned by a single load."""
    text: str = ""
    delivered: int = 0
    result: dict[HeaderValue, MultipartEntry] = field(default_factory=dict)
    unkeyed_entries: int = 0
    parse_passes: int = 0
    bytes_scanned: int = 0


@dataclass(frozen=True)
class ParserStats:
    """Counters for monitoring incremental parsing cost."""
    parse_passes: int
    entries_delivered: int
    keyed_entries: int
    unkeyed_entries: int
    bytes_scanned: int
