#!/usr/bin/env python3
"""
Multipart Load Demo Script

Loads a multipart URL and prints entries as they arrive.

Usage:
    python load_demo.py URL [METHOD] [--debug]
"""

import asyncio
import sys

from multipart_loader import Configuration, MultipartLoadError, MultipartLoader


def print_progress(delivered, entries):
    for offset, entry in enumerate(entries, start=delivered + 1):
        status = "-" if entry.status.is_empty else f"{entry.status.code} {entry.status.text}"
        location = entry.headers.get("Content-Location", "(no location)")
        print(f"  #{offset}: {status} {location} ({len(entry.body)} chars)")


async def main(argv: list[str]) -> int:
    args = [arg for arg in argv if arg != "--debug"]
    if not args:
        print(__doc__)
        return 2

    url = args[0]
    method = args[1] if len(args) > 1 else None

    config = Configuration()
    config.apply_logging_config()

    print(f"📦 Loading {url}")
    async with MultipartLoader(config) as loader:
        try:
            result = await loader.load(
                url, method, debug="--debug" in argv, on_progress=print_progress
            )
        except MultipartLoadError as e:
            print(f"❌ {e}")
            return 1

    print(f"✅ {len(result)} keyed entries")
    for key, entry in result.items():
        print(f"  • {key}: {entry.body[:60]!r}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
