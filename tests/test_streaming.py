"""Tests for streaming routes: to a file, to a writable object, and to a callback."""

from __future__ import annotations

import io

import httpx
import pytest

from client_api_builder import Router, TransientTransportError, UnexpectedResponseError, route
from client_api_builder import router as router_module


class DownloadClient(Router):
    base_url = "http://files.example.com"

    download = route("/files/:id", stream=True)
    download_to_io = route("/files/:id", stream="io")
    download_chunks = route("/files/:id", stream="block")


class RetryingDownloadClient(DownloadClient):
    max_retries = 2
    retry_sleep = 0


@pytest.fixture
def client(network) -> DownloadClient:
    return DownloadClient(transport=network.transport())


@pytest.fixture
def retrying_client(network) -> RetryingDownloadClient:
    return RetryingDownloadClient(transport=network.transport())


class TestStreamToFile:
    def test_writes_body(self, client: DownloadClient, network, tmp_path) -> None:
        network.queue(httpx.Response(200, content=b"file contents"))
        target = tmp_path / "out.bin"
        response = client.download(id=1, file=str(target))
        assert isinstance(response, httpx.Response)
        assert target.read_bytes() == b"file contents"
        assert str(network.last.url) == "http://files.example.com/files/1"

    def test_append_mode(self, client: DownloadClient, network, tmp_path) -> None:
        target = tmp_path / "log.txt"
        target.write_bytes(b"first\n")
        network.queue(httpx.Response(200, content=b"second\n"))
        client.download(id=1, file=target, connection_options={"file_mode": "a"})
        assert target.read_bytes() == b"first\nsecond\n"

    def test_file_mode_comes_from_connection_options(self, client: DownloadClient, network, tmp_path) -> None:
        network.queue(httpx.Response(200, content=b"x"))
        client.download(id=1, file=tmp_path / "x.bin", connection_options={"file_mode": "wb"})
        assert client.request_context.connection_options == {"file_mode": "wb"}

    @pytest.mark.parametrize("mode", ["r", "rb", "x", "r+"])
    def test_rejects_unsafe_modes(self, client: DownloadClient, network, tmp_path, mode: str) -> None:
        with pytest.raises(ValueError, match="Invalid file mode"):
            client.download(id=1, file=tmp_path / "x.bin", connection_options={"file_mode": mode})
        assert network.requests == []

    def test_rejects_path_traversal(self, client: DownloadClient, network, tmp_path) -> None:
        with pytest.raises(ValueError, match="path traversal"):
            client.download(id=1, file=str(tmp_path / ".." / "escape.bin"))
        assert network.requests == []

    def test_unexpected_status_still_raises(self, client: DownloadClient, network, tmp_path) -> None:
        network.queue(httpx.Response(404, content=b"missing"))
        with pytest.raises(UnexpectedResponseError):
            client.download(id=1, file=tmp_path / "x.bin")

    def test_destination_is_required(self, client: DownloadClient) -> None:
        with pytest.raises(TypeError, match="file"):
            client.download(id=1)


class TestStreamToIo:
    def test_writes_into_buffer(self, client: DownloadClient, network) -> None:
        network.queue(httpx.Response(200, content=b"buffered"))
        buffer = io.BytesIO()
        client.download_to_io(id=2, io=buffer)
        assert buffer.getvalue() == b"buffered"


class TestStreamToCallback:
    def test_chunks_are_yielded(self, client: DownloadClient, network) -> None:
        network.queue(httpx.Response(200, content=b"chunked body"))
        received = []
        response = client.download_chunks(id=3, callback=lambda resp, chunk: received.append((resp.status_code, chunk)))
        assert b"".join(chunk for _, chunk in received) == b"chunked body"
        assert all(status == 200 for status, _ in received)
        assert response.status_code == 200


class TestStreamFailures:
    def test_file_is_closed_when_transfer_fails(self, client, network, tmp_path, monkeypatch) -> None:
        opened = []

        def recording_open(*args, **kwargs):
            handle = open(*args, **kwargs)
            opened.append(handle)
            return handle

        monkeypatch.setattr(router_module, "open", recording_open, raising=False)
        network.queue(network.broken_body(b"par"))
        with pytest.raises(TransientTransportError) as exc_info:
            client.download(id=1, file=tmp_path / "x.bin")
        assert isinstance(exc_info.value.__cause__, httpx.ReadError)
        assert len(opened) == 1
        assert opened[0].closed

    def test_retry_rewinds_buffer(self, retrying_client, network) -> None:
        network.queue(network.broken_body(b"abc"), httpx.Response(200, content=b"abcdef"))
        buffer = io.BytesIO()
        retrying_client.download_to_io(id=1, io=buffer)
        assert buffer.getvalue() == b"abcdef"
        assert len(network.requests) == 2

    def test_retry_keeps_buffer_prefix(self, retrying_client, network) -> None:
        network.queue(network.broken_body(b"abc"), httpx.Response(200, content=b"abcdef"))
        buffer = io.BytesIO()
        buffer.write(b"head:")
        retrying_client.download_to_io(id=1, io=buffer)
        assert buffer.getvalue() == b"head:abcdef"

    def test_retry_truncates_appended_file(self, retrying_client, network, tmp_path) -> None:
        target = tmp_path / "log.txt"
        target.write_bytes(b"first\n")
        network.queue(network.broken_body(b"sec"), httpx.Response(200, content=b"second\n"))
        retrying_client.download(id=1, file=target, connection_options={"file_mode": "ab"})
        assert target.read_bytes() == b"first\nsecond\n"

    def test_retry_rewrites_file(self, retrying_client, network, tmp_path) -> None:
        target = tmp_path / "out.bin"
        network.queue(network.broken_body(b"abc"), httpx.Response(200, content=b"abcdef"))
        retrying_client.download(id=1, file=target)
        assert target.read_bytes() == b"abcdef"

    def test_partial_callback_is_not_retried(self, retrying_client, network) -> None:
        received = []
        network.queue(network.broken_body(b"abc"), httpx.Response(200, content=b"abcdef"))
        with pytest.raises(TransientTransportError):
            retrying_client.download_chunks(id=1, callback=lambda resp, chunk: received.append(chunk))
        assert b"".join(received) == b"abc"
        assert len(network.requests) == 1

    def test_callback_retried_before_any_chunk(self, retrying_client, network) -> None:
        received = []
        network.queue(httpx.ConnectError("refused"), httpx.Response(200, content=b"abcdef"))
        retrying_client.download_chunks(id=1, callback=lambda resp, chunk: received.append(chunk))
        assert b"".join(received) == b"abcdef"
        assert len(network.requests) == 2

    def test_partial_write_to_unseekable_writer_is_not_retried(self, retrying_client, network) -> None:
        class Pipe:
            def __init__(self) -> None:
                self.chunks = []

            def write(self, chunk: bytes) -> int:
                self.chunks.append(chunk)
                return len(chunk)

        pipe = Pipe()
        network.queue(network.broken_body(b"abc"), httpx.Response(200, content=b"abcdef"))
        with pytest.raises(TransientTransportError):
            retrying_client.download_to_io(id=1, io=pipe)
        assert pipe.chunks == [b"abc"]
        assert len(network.requests) == 1
