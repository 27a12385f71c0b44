"""
Incremental multipart loader built on httpx streaming.

A load issues one request and reports progress as body text arrives:
- HEADERS_READY once the boundary is known
- PROGRESS for every body chunk, with the entries it completed
- COMPLETE with the keyed result, or FAILED with the transport error
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncGenerator, Callable
from contextlib import aclosing
from typing import Any

import httpx

from .boundary import extract_boundary
from .config import Configuration
from .logging_utils import (
    ContextualLogger,
    LoadErrorHandler,
    log_operation,
    operation_context,
)
from .models import HeaderValue, LoadEvent, LoadEventType, MultipartEntry
from .parser import EntryAccumulator

ProgressCallback = Callable[[int, list[MultipartEntry]], Any]
LoadResult = dict[HeaderValue, MultipartEntry]


async def _drive_events(
    events: AsyncGenerator[LoadEvent],
    progress_callbacks: list[ProgressCallback],
) -> LoadResult:
    """Consume a load's events, notify progress and return the final result."""
    async with aclosing(events):
        async for event in events:
            if event.event_type is LoadEventType.PROGRESS:
                for callback in list(progress_callbacks):
                    outcome = callback(event.delivered, event.entries)
                    if inspect.isawaitable(outcome):
                        await outcome
            elif event.event_type is LoadEventType.COMPLETE:
                return event.result if event.result is not None else {}
            elif event.event_type is LoadEventType.FAILED:
                raise event.error

    raise RuntimeError("Load event stream ended without COMPLETE or FAILED")


class LoadHandle:
    """
    Awaitable handle for a load that is already running.

    ``await handle`` returns the keyed result or raises the load error.
    Progress callbacks receive ``(delivered, entries)``; callbacks added
    right after ``MultipartLoader.start()`` see every progress event.
    """

    def __init__(self, events: AsyncGenerator[LoadEvent]):
        self._progress_callbacks: list[ProgressCallback] = []
        self._task: asyncio.Task[LoadResult] = asyncio.get_running_loop().create_task(
            _drive_events(events, self._progress_callbacks)
        )

    def on_progress(self, callback: ProgressCallback) -> LoadHandle:
        self._progress_callbacks.append(callback)
        return self

    def cancel(self) -> bool:
        """Stop the load and close the response stream."""
        return self._task.cancel()

    def done(self) -> bool:
        return self._task.done()

    def cancelled(self) -> bool:
        return self._task.cancelled()

    def __await__(self):
        return self._task.__await__()


class MultipartLoader:
    """
    Loads multipart responses and keys their entries by a header value.

    Entries without the key header (Content-Location by default) are parsed
    and reported through progress events but are not part of the result.
    """

    def __init__(
        self,
        config: Configuration | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or Configuration()
        self.settings = self.config.get_loader_config()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self.config.build_client()
        return self._client

    def _request_params(self, debug: bool) -> dict[str, str] | None:
        if not debug:
            return None
        return {self.settings.debug_param: "true"}

    async def iter_events(
        self,
        url: str,
        method: str | None = None,
        *,
        debug: bool = False,
    ) -> AsyncGenerator[LoadEvent]:
        """
        Issue the request and yield load events.

        HEADERS_READY always precedes PROGRESS, and the stream ends with
        exactly one COMPLETE or FAILED event.
        """
        method = (method or self.settings.default_method).upper()
        load_logger = ContextualLogger({"url": url, "method": method})
        load_logger.info("Multipart load started", debug=debug)

        accumulator: EntryAccumulator | None = None
        try:
            async with operation_context(
                "multipart_stream", context={"url": url, "method": method}
            ), self.client.stream(
                method, url, params=self._request_params(debug)
            ) as response:
                if response.is_error:
                    await response.aread()
                    response.raise_for_status()

                content_type = response.headers.get(self.settings.content_type_header)
                boundary = extract_boundary(content_type)
                if not boundary:
                    load_logger.warning(
                        "No multipart boundary in response",
                        content_type=content_type,
                    )
                accumulator = EntryAccumulator(boundary, self.settings.key_header)
                yield LoadEvent(LoadEventType.HEADERS_READY, boundary=boundary)

                async for chunk in response.aiter_text(
                    chunk_size=self.settings.chunk_size
                ):
                    delivered = accumulator.delivered
                    entries = accumulator.feed(chunk)
                    load_logger.debug(
                        "Multipart progress",
                        delivered=delivered,
                        new_entries=len(entries),
                    )
                    yield LoadEvent(
                        LoadEventType.PROGRESS,
                        delivered=delivered,
                        entries=entries,
                        boundary=boundary,
                    )

        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as e:
            delivered = accumulator.delivered if accumulator is not None else 0
            error = LoadErrorHandler.create_load_error(
                e, url, method, context={"delivered": delivered}
            )
            yield LoadEvent(LoadEventType.FAILED, delivered=delivered, error=error)
            return

        stats = accumulator.get_stats()
        load_logger.info(
            "Multipart load complete",
            entries=stats.entries_delivered,
            keyed_entries=stats.keyed_entries,
            unkeyed_entries=stats.unkeyed_entries,
            parse_passes=stats.parse_passes,
        )
        yield LoadEvent(
            LoadEventType.COMPLETE,
            delivered=accumulator.delivered,
            boundary=accumulator.boundary,
            result=accumulator.result,
        )

    @log_operation("multipart_load")
    async def load(
        self,
        url: str,
        method: str | None = None,
        *,
        debug: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> LoadResult:
        """Load ``url`` and return its entries keyed by the key header."""
        callbacks = [on_progress] if on_progress is not None else []
        return await _drive_events(
            self.iter_events(url, method, debug=debug), callbacks
        )

    def start(
        self,
        url: str,
        method: str | None = None,
        *,
        debug: bool = False,
    ) -> LoadHandle:
        """Start a load in the background; must be called with a running loop."""
        return LoadHandle(self.iter_events(url, method, debug=debug))

    async def close(self) -> None:
        """Close the HTTP client if this loader created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> MultipartLoader:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def load(
    url: str,
    method: str | None = None,
    *,
    debug: bool = False,
    on_progress: ProgressCallback | None = None,
    config: Configuration | None = None,
    client: httpx.AsyncClient | None = None,
) -> LoadResult:
    """Load a multipart response with a short-lived loader."""
    async with MultipartLoader(config, client) as loader:
        return await loader.load(
            url, method, debug=debug, on_progress=on_progress
        )
