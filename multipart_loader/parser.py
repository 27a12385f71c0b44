"""
Line-oriented multipart response parser with incremental re-parsing.

The parser is stateless: every call scans the full body text again and uses
``skip`` to leave out entries handed out by earlier calls. ``EntryAccumulator``
keeps that running count (and the keyed result) for a single load.
"""

from __future__ import annotations

import re

import structlog

from .models import (
    AccumulatorState,
    EntryStatus,
    HeaderValue,
    MultipartEntry,
    ParserStats,
    ScanState,
)

CRLF = "\r\n"
DEFAULT_KEY_HEADER = "Content-Location"

HTTP_STATUS_PATTERN = re.compile(r"HTTP/1\.[01] (\d{3}) (.+)", re.IGNORECASE)
HTTP_HEADER_PATTERN = re.compile(r"(\S+):[ \t]*(\S.*)")
INTEGER_PATTERN = re.compile(r"[+-]?\d+")
NUMBER_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

logger = structlog.get_logger(__name__)


def coerce_header_value(raw: str) -> HeaderValue:
    """Convert numeric-looking header text to int/float, otherwise keep it."""
    value = raw.strip()
    if INTEGER_PATTERN.fullmatch(value):
        return int(value)
    if NUMBER_PATTERN.fullmatch(value):
        return float(value)
    return value


def parse_status_line(line: str) -> EntryStatus | None:
    match = HTTP_STATUS_PATTERN.fullmatch(line.strip())
    if match is None:
        return None
    return EntryStatus(code=int(match.group(1)), text=match.group(2).strip())


def parse_header_line(line: str) -> tuple[str, HeaderValue] | None:
    match = HTTP_HEADER_PATTERN.fullmatch(line.strip())
    if match is None:
        return None
    return match.group(1), coerce_header_value(match.group(2))


class _EntryBuilder:
    """Entry under construction during one parse call."""

    def __init__(self) -> None:
        self.status = EntryStatus()
        self.headers: dict[str, HeaderValue] = {}
        self.body_lines: list[str] = []
        self.state = ScanState.AWAITING_ENTRY_START

    def feed_line(self, line: str) -> None:
        if self.state is ScanState.BODY_COLLECTING:
            self.body_lines.append(line)
            return

        if self.state is ScanState.AWAITING_ENTRY_START:
            if (status := parse_status_line(line)) is not None:
                self.status = status
                self.state = ScanState.STATUS_OR_HEADER_EXPECTED
            elif (header := parse_header_line(line)) is not None:
                self.headers[header[0]] = header[1]
                self.state = ScanState.STATUS_OR_HEADER_EXPECTED
            else:
                # No status and no headers: the body starts here
                if line.strip():
                    self.body_lines.append(line)
                self.state = ScanState.BODY_COLLECTING
            return

        # STATUS_OR_HEADER_EXPECTED
        if (header := parse_header_line(line)) is not None:
            self.headers[header[0]] = header[1]
        else:
            # Blank separator; any other line is handled the same way
            self.state = ScanState.BODY_COLLECTING

    def build(self) -> MultipartEntry:
        return MultipartEntry(
            status=self.status,
            headers=self.headers,
            body=CRLF.join(self.body_lines),
        )


def parse_response_body(
    body: str, boundary: str, skip: int = 0
) -> list[MultipartEntry]:
    """
    Parse a multipart body with one level of nesting.

    Args:
        body: Response text, possibly truncated
        boundary: Multipart boundary without the leading dashes
        skip: Number of leading sections to leave out

    Returns:
        Entries in body order, minus the skipped ones. Sections after the
        last complete boundary are not returned.
    """
    if not boundary or not body:
        return []
    if not isinstance(skip, int) or skip < 0:
        skip = 0

    delimiter = f"--{boundary}"
    terminator = f"--{boundary}--"
    entries: list[MultipartEntry] = []
    passed = 0
    builder: _EntryBuilder | None = None

    for line in body.split(CRLF):
        if delimiter in line:
            if builder is not None:
                entries.append(builder.build())
                builder = None

            if terminator in line:
                return entries

            if passed < skip:
                passed += 1
            else:
                builder = _EntryBuilder()
        elif builder is not None:
            builder.feed_line(line)

    return entries


class EntryAccumulator:
    """
    Running parse state for one load.

    Text is appended as it arrives; each pass re-parses the whole buffer and
    only the entries completed since the previous pass are returned.
    """

    def __init__(self, boundary: str, key_header: str = DEFAULT_KEY_HEADER):
        self.boundary = boundary
        self.key_header = key_header
        self.state = AccumulatorState()

    @property
    def delivered(self) -> int:
        return self.state.delivered

    @property
    def result(self) -> dict[HeaderValue, MultipartEntry]:
        return dict(self.state.result)

    def feed(self, chunk: str) -> list[MultipartEntry]:
        """Append text and return entries completed by it."""
        self.state.text += chunk
        return self.rescan()

    def rescan(self) -> list[MultipartEntry]:
        """Re-parse the buffered text without adding to it."""
        entries = parse_response_body(
            self.state.text, self.boundary, self.state.delivered
        )
        self.state.parse_passes += 1
        self.state.bytes_scanned += len(self.state.text)

        for entry in entries:
            key = entry.headers.get(self.key_header)
            if key is None:
                self.state.unkeyed_entries += 1
                logger.debug(
                    "Entry without key header not retained",
                    key_header=self.key_header,
                    status_code=entry.status.code,
                )
                continue
            self.state.result[key] = entry

        self.state.delivered += len(entries)
        return entries

    def get_stats(self) -> ParserStats:
        return ParserStats(
            parse_passes=self.state.parse_passes,
            entries_delivered=self.state.delivered,
            keyed_entries=len(self.state.result),
            unkeyed_entries=self.state.unkeyed_entries,
            bytes_scanned=self.state.bytes_scanned,
        )

    def reset(self) -> None:
        self.state = AccumulatorState()
