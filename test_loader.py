"""
Tests for the incremental multipart loader against an in-memory transport.
"""

import asyncio

import httpx
import pytest
import pytest_asyncio

from multipart_loader import (
    Configuration,
    LoadEventType,
    MultipartLoader,
    ResponseStatusError,
    TransportError,
    load,
)

BOUNDARY = "!!!=="
CRLF = "\r\n"
MULTIPART_HEADERS = {"Content-Type": f"multipart/mixed; boundary={BOUNDARY}"}

DATA_BODY = CRLF.join([
    f"--{BOUNDARY}",
    "HTTP/1.1 404 Not Found",
    "Content-Location: /notfound",
    "",
    "NOT FOUND",
    f"--{BOUNDARY}",
    "HTTP/1.0 304 Not Modified",
    "Content-Location: /notmodified",
    "",
    f"--{BOUNDARY}",
    "HTTP/1.1 200 Ok",
    "Content-Location: /ok",
    "",
    "OK",
    f"--{BOUNDARY}",
    "HTTP/1.1 200 Ok",
    "Content-Location: /content",
    "Content-Type: application/json",
    "",
    "[1, 2, 3]",
    f"--{BOUNDARY}--",
])

PARTLY_KEYED_BODY = CRLF.join([
    f"--{BOUNDARY}",
    "HTTP/1.1 404 Not Found",
    "",
    "NOT FOUND",
    f"--{BOUNDARY}",
    "HTTP/1.0 304 Not Modified",
    "",
    f"--{BOUNDARY}",
    "HTTP/1.1 200 Ok",
    "",
    "OK",
    f"--{BOUNDARY}",
    "HTTP/1.1 200 Ok",
    "Content-Location: /content",
    "Content-Type: application/json",
    "",
    "[1, 2, 3]",
    f"--{BOUNDARY}--",
])


def split_bytes(text: str, size: int) -> list[bytes]:
    data = text.encode()
    return [data[i:i + size] for i in range(0, len(data), size)]


async def stream_chunks(chunks: list[bytes]):
    for chunk in chunks:
        await asyncio.sleep(0)
        yield chunk


class FakeMultipartServer:
    """MockTransport handler serving multipart bodies by path."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.stall = asyncio.Event()

    async def stalled_stream(self):
        yield DATA_BODY.encode()[:40]
        await self.stall.wait()
        yield DATA_BODY.encode()[40:]

    async def broken_stream(self):
        first_section_end = DATA_BODY.index("NOT FOUND") + len("NOT FOUND")
        yield DATA_BODY[:first_section_end].encode()
        yield (CRLF + f"--{BOUNDARY}" + CRLF).encode()
        raise httpx.ReadError("connection reset by peer")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/unreachable":
            raise httpx.ConnectError("connection refused", request=request)
        if request.method != "GET":
            return httpx.Response(
                405, headers={"Content-Type": "text/plain"}, text="Method Not Allowed"
            )
        if path == "/data":
            return httpx.Response(200, headers=MULTIPART_HEADERS, text=DATA_BODY)
        if path == "/partly-keyed":
            return httpx.Response(
                200, headers=MULTIPART_HEADERS, text=PARTLY_KEYED_BODY
            )
        if path == "/chunked":
            return httpx.Response(
                200,
                headers=MULTIPART_HEADERS,
                content=stream_chunks(split_bytes(DATA_BODY, 25)),
            )
        if path == "/stalled":
            return httpx.Response(
                200, headers=MULTIPART_HEADERS, content=self.stalled_stream()
            )
        if path == "/broken":
            return httpx.Response(
                200, headers=MULTIPART_HEADERS, content=self.broken_stream()
            )
        if path == "/plain":
            return httpx.Response(
                200, headers={"Content-Type": "text/plain"}, text="just text"
            )
        return httpx.Response(
            404, headers={"Content-Type": "text/plain"}, text="Not Found"
        )


@pytest.fixture
def server():
    return FakeMultipartServer()


@pytest_asyncio.fixture
async def client(server):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(server), base_url="http://testserver"
    ) as client:
        yield client


@pytest.fixture
def loader(client):
    return MultipartLoader(Configuration.from_dict({}), client=client)


class TestLoad:
    """Test MultipartLoader.load."""

    @pytest.mark.asyncio
    async def test_returns_data_on_success(self, loader):
        result = await loader.load("/data")

        assert result["/content"].body == "[1, 2, 3]"
        assert set(result) == {"/notfound", "/notmodified", "/ok", "/content"}
        assert result["/notfound"].status.code == 404
        assert result["/notmodified"].body == ""

    @pytest.mark.asyncio
    async def test_reports_on_not_found(self, loader):
        with pytest.raises(ResponseStatusError) as exc_info:
            await loader.load("/error")

        error = exc_info.value
        assert error.status_code == 404
        assert error.reason_phrase == "Not Found"
        assert error.response_text == "Not Found"
        assert error.category == "http_status_error"
        assert isinstance(error.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_reports_on_wrong_method(self, loader):
        with pytest.raises(ResponseStatusError) as exc_info:
            await loader.load("/data", "POST")

        assert exc_info.value.status_code == 405
        assert exc_info.value.reason_phrase == "Method Not Allowed"
        assert exc_info.value.method == "POST"

    @pytest.mark.asyncio
    async def test_entries_without_location_are_not_retained(self, loader):
        result = await loader.load("/partly-keyed")
        assert list(result) == ["/content"]

    @pytest.mark.asyncio
    async def test_unkeyed_entries_still_reported_as_progress(self, loader):
        seen = []
        await loader.load(
            "/partly-keyed", on_progress=lambda delivered, entries: seen.extend(entries)
        )
        assert [entry.status.code for entry in seen] == [404, 304, 200, 200]

    @pytest.mark.asyncio
    async def test_progress_on_chunked_body(self, loader):
        calls = []
        result = await loader.load(
            "/chunked",
            on_progress=lambda delivered, entries: calls.append((delivered, entries)),
        )

        assert len(calls) > 1
        running = 0
        for delivered, entries in calls:
            assert delivered == running
            running += len(entries)
        assert running == 4

        delivered_entries = [entry for _, step in calls for entry in step]
        assert [entry.headers["Content-Location"] for entry in delivered_entries] == [
            "/notfound",
            "/notmodified",
            "/ok",
            "/content",
        ]
        assert result["/content"].headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_async_progress_callback_is_awaited(self, loader):
        seen = []

        async def on_progress(delivered, entries):
            await asyncio.sleep(0)
            seen.extend(entries)

        await loader.load("/chunked", on_progress=on_progress)
        assert len(seen) == 4

    @pytest.mark.asyncio
    async def test_debug_flag_adds_query_parameter(self, loader, server):
        await loader.load("/data", debug=True)
        assert server.requests[-1].url.params["debug"] == "true"

    @pytest.mark.asyncio
    async def test_no_debug_parameter_by_default(self, loader, server):
        await loader.load("/data")
        assert "debug" not in server.requests[-1].url.params

    @pytest.mark.asyncio
    async def test_default_method_from_config(self, client, server):
        config = Configuration.from_dict({"loader": {"default_method": "post"}})
        loader = MultipartLoader(config, client=client)

        with pytest.raises(ResponseStatusError):
            await loader.load("/data")
        assert server.requests[-1].method == "POST"

    @pytest.mark.asyncio
    async def test_connection_failure(self, loader):
        with pytest.raises(TransportError) as exc_info:
            await loader.load("/unreachable")

        assert exc_info.value.category == "connection_error"
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_failure_mid_stream_keeps_prior_progress(self, loader):
        seen = []
        with pytest.raises(TransportError) as exc_info:
            await loader.load(
                "/broken", on_progress=lambda delivered, entries: seen.extend(entries)
            )

        assert [entry.status.code for entry in seen] == [404]
        assert exc_info.value.category == "connection_error"

    @pytest.mark.asyncio
    async def test_response_without_boundary_yields_empty_result(self, loader):
        assert await loader.load("/plain") == {}

    @pytest.mark.asyncio
    async def test_module_level_load(self, client):
        result = await load("/data", config=Configuration.from_dict({}), client=client)
        assert result["/ok"].body == "OK"


class TestIterEvents:
    """Test the load event stream."""

    @pytest.mark.asyncio
    async def test_event_order(self, loader):
        events = [event async for event in loader.iter_events("/chunked")]

        assert events[0].event_type is LoadEventType.HEADERS_READY
        assert events[0].boundary == BOUNDARY
        assert events[-1].event_type is LoadEventType.COMPLETE
        assert all(
            event.event_type is LoadEventType.PROGRESS for event in events[1:-1]
        )
        assert sum(event.is_terminal for event in events) == 1
        assert events[-1].delivered == 4
        assert set(events[-1].result) == {"/notfound", "/notmodified", "/ok", "/content"}

    @pytest.mark.asyncio
    async def test_failure_is_single_terminal_event(self, loader):
        events = [event async for event in loader.iter_events("/error")]

        assert len(events) == 1
        assert events[0].event_type is LoadEventType.FAILED
        assert events[0].error.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_url_fails_with_single_terminal_event(self, loader):
        events = [event async for event in loader.iter_events("http://[::1")]

        assert len(events) == 1
        assert events[0].event_type is LoadEventType.FAILED
        assert isinstance(events[0].error, TransportError)
        assert events[0].error.category == "transport_error"
        assert isinstance(events[0].error.__cause__, httpx.InvalidURL)

    @pytest.mark.asyncio
    async def test_invalid_url_rejects_load_with_transport_error(self, loader):
        with pytest.raises(TransportError):
            await loader.load("http://[::1")

    @pytest.mark.asyncio
    async def test_empty_boundary_reported_with_headers(self, loader):
        events = [event async for event in loader.iter_events("/plain")]

        assert events[0].event_type is LoadEventType.HEADERS_READY
        assert events[0].boundary == ""
        assert events[-1].result == {}


class TestLoadHandle:
    """Test background loads started with MultipartLoader.start."""

    @pytest.mark.asyncio
    async def test_handle_resolves_with_result(self, loader):
        calls = []
        handle = loader.start("/chunked").on_progress(
            lambda delivered, entries: calls.append(delivered)
        )

        result = await handle

        assert handle.done()
        assert result["/content"].body == "[1, 2, 3]"
        assert calls[0] == 0

    @pytest.mark.asyncio
    async def test_handle_rejects_with_transport_error(self, loader):
        handle = loader.start("/error")
        with pytest.raises(ResponseStatusError):
            await handle

    @pytest.mark.asyncio
    async def test_handle_can_be_cancelled(self, loader):
        first_progress = asyncio.Event()
        handle = loader.start("/stalled").on_progress(
            lambda delivered, entries: first_progress.set()
        )

        await asyncio.wait_for(first_progress.wait(), timeout=5)
        assert handle.cancel()

        with pytest.raises(asyncio.CancelledError):
            await handle
        assert handle.cancelled()
