"""Boundary extraction from ``Content-Type`` header values."""

from __future__ import annotations

import re

QUOTED_BOUNDARY_PATTERN = re.compile(r'\bboundary="([^"]+)"', re.IGNORECASE)
UNQUOTED_BOUNDARY_PATTERN = re.compile(r"\bboundary=([^;]+)", re.IGNORECASE)
BOUNDARY_STRIP_CHARS = ' \t"'


def extract_boundary(header: str | None) -> str:
    """Return the multipart boundary declared in a Content-Type value.

    >>> extract_boundary('multipart/mixed; boundary="eff50704-04ff"')
    'eff50704-04ff'

    Returns an empty string when the value has no boundary parameter.
    """
    if not header:
        return ""

    match = QUOTED_BOUNDARY_PATTERN.search(header) or UNQUOTED_BOUNDARY_PATTERN.search(
        header
    )
    if match is None:
        return ""
    return match.group(1).strip(BOUNDARY_STRIP_CHARS)
