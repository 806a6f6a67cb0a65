"""Tests for ntftp/endpoint/tftp.py: tftpy bridged onto the event loop.

tftpy.TftpClient is replaced by a fake that runs in the worker thread
exactly like the real one: it writes DATA blocks into the output object
or reads blocks from the input object. TestAgainstTftpServer runs the
same code against a real tftpy server on 127.0.0.1.
"""

from __future__ import annotations

import asyncio
import os
import socket
import threading

import pytest
import tftpy

from ntftp.config import ClientConfig, DEFAULT_BLOCK_SIZE, DEFAULT_WINDOW_SIZE
from ntftp.endpoint import check_remote_path
from ntftp.endpoint.tftp import TftpEndpoint, normalize_config
from ntftp.errors import InvalidRemotePathError, RemoteTransferError
from ntftp.session import Session
from ntftp.transfer import TransferController, TransferOutcome


class FakeClient:
    """Stands in for tftpy.TftpClient."""

    instances = []
    blocks = [b"a" * 512, b"b" * 100]
    error = None
    proceed = None

    def __init__(self, host, port, options=None):
        self.host = host
        self.port = port
        self.options = options or {}
        self.calls = []
        self.uploaded = []
        FakeClient.instances.append(self)

    def download(self, filename, output, timeout=None, retries=None):
        self.calls.append(('download', filename, timeout, retries))
        for index, block in enumerate(self.blocks):
            if index and self.proceed is not None:
                self.proceed.wait(5)
            output.write(block)
        if self.error:
            raise tftpy.TftpException(self.error)
        output.close()

    def upload(self, filename, input, timeout=None, retries=None):
        self.calls.append(('upload', filename, timeout, retries))
        if self.error:
            raise tftpy.TftpException(self.error)
        size = self.options['blksize']
        while True:
            block = input.read(size)
            self.uploaded.append(block)
            if len(block) < size:
                break
        # tftpy closes the input at the end of an upload
        if not input.closed:
            input.close()


@pytest.fixture()
def fake_client(monkeypatch):
    FakeClient.instances = []
    monkeypatch.setattr(tftpy, 'TftpClient', FakeClient)
    yield FakeClient
    FakeClient.error = None
    FakeClient.proceed = None


@pytest.fixture()
def endpoint() -> TftpEndpoint:
    return TftpEndpoint(ClientConfig(address='10.0.0.9', port=6969,
                                     block_size=512, retries=2, timeout=1500))


async def collect(stream) -> bytes:
    data = b""
    async for chunk in stream:
        data += chunk
    return data


def run(coro):
    return asyncio.run(asyncio.wait_for(coro, timeout=5))


class TestNormalizeConfig:
    @pytest.mark.parametrize("block_size", [0, 7, 65465])
    def test_block_size_out_of_range(self, block_size) -> None:
        config = normalize_config(ClientConfig(block_size=block_size))
        assert config.block_size == DEFAULT_BLOCK_SIZE

    @pytest.mark.parametrize("window_size", [0, 65536])
    def test_window_size_out_of_range(self, window_size) -> None:
        config = normalize_config(ClientConfig(window_size=window_size))
        assert config.window_size == DEFAULT_WINDOW_SIZE

    def test_bad_timeout_and_retries(self) -> None:
        config = normalize_config(ClientConfig(timeout=0, retries=-1))
        assert config.timeout == 3000
        assert config.retries == 3

    def test_valid_config_is_unchanged(self) -> None:
        config = ClientConfig(block_size=8, window_size=1)
        assert normalize_config(config) is config


class TestCheckRemotePath:
    def test_plain_name(self) -> None:
        check_remote_path("dir/file.txt")

    @pytest.mark.parametrize("name", ["", "tab\there", "naïve", "z" * 256])
    def test_rejected(self, name) -> None:
        with pytest.raises(InvalidRemotePathError):
            check_remote_path(name)

    def test_endpoint_validates(self, endpoint) -> None:
        with pytest.raises(InvalidRemotePathError):
            endpoint.validate("")


class TestGetStream:
    def test_streams_blocks(self, fake_client, endpoint) -> None:
        progress = []

        async def scenario():
            stream = endpoint.open_get_stream('boot.img', on_progress=progress.append)
            data = await collect(stream)
            await stream.wait_closed()
            return stream, data

        stream, data = run(scenario())

        assert data == b"a" * 512 + b"b" * 100
        assert stream.closed
        assert stream.progress.bytes_transferred == 612
        assert len(progress) == 2

        client = fake_client.instances[0]
        assert (client.host, client.port) == ('10.0.0.9', 6969)
        assert client.options == {'blksize': 512}
        assert client.calls == [('download', 'boot.img', 1.5, 2)]

    def test_library_error_is_remote_error(self, fake_client, endpoint) -> None:
        fake_client.error = "File not found"

        async def scenario():
            stream = endpoint.open_get_stream('missing')
            with pytest.raises(RemoteTransferError, match="File not found"):
                await collect(stream)
            return stream

        assert run(scenario()).closed

    def test_abort_stops_iteration_quietly(self, fake_client, endpoint) -> None:
        fake_client.proceed = threading.Event()

        async def scenario():
            stream = endpoint.open_get_stream('boot.img')
            first = await stream.__anext__()
            stream.abort()
            fake_client.proceed.set()
            rest = await collect(stream)
            await stream.wait_closed()
            stream.abort()
            return first, rest, stream

        first, rest, stream = run(scenario())
        assert first == b"a" * 512
        assert rest == b""
        assert stream.closed


class TestPutStream:
    def test_uploads_full_blocks(self, fake_client, endpoint) -> None:
        async def scenario():
            stream = endpoint.open_put_stream('up.bin')
            await stream.write(b"x" * 300)
            await stream.write(b"y" * 700)
            await stream.finish()
            return stream

        stream = run(scenario())

        client = fake_client.instances[0]
        assert [len(block) for block in client.uploaded] == [512, 488]
        assert b"".join(client.uploaded) == b"x" * 300 + b"y" * 700
        assert client.calls == [('upload', 'up.bin', 1.5, 2)]
        assert stream.closed
        assert stream.progress.bytes_transferred == 1000

    def test_exact_multiple_ends_with_empty_block(self, fake_client, endpoint) -> None:
        async def scenario():
            stream = endpoint.open_put_stream('up.bin')
            await stream.write(b"z" * 1024)
            await stream.finish()

        run(scenario())
        assert [len(b) for b in fake_client.instances[0].uploaded] == [512, 512, 0]

    def test_library_error_raised_from_finish(self, fake_client, endpoint) -> None:
        fake_client.error = "Disk full or allocation exceeded"

        async def scenario():
            stream = endpoint.open_put_stream('up.bin')
            await stream.wait_closed()
            with pytest.raises(RemoteTransferError, match="Disk full"):
                await stream.write(b"data")
            with pytest.raises(RemoteTransferError, match="Disk full"):
                await stream.finish()

        run(scenario())

    def test_abort_unblocks_library_thread(self, fake_client, endpoint) -> None:
        async def scenario():
            stream = endpoint.open_put_stream('up.bin')
            await stream.write(b"partial")
            stream.abort()
            await stream.wait_closed()
            with pytest.raises(RemoteTransferError, match="aborted"):
                await stream.write(b"more")
            await stream.finish()
            return stream

        stream = run(scenario())
        assert stream.closed
        assert fake_client.instances[0].uploaded == []


def free_udp_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


@pytest.fixture()
def tftp_server(tmp_path, monkeypatch):
    """A real tftpy server on localhost; yields (server root, port)."""
    root = tmp_path / 'server'
    root.mkdir()
    local = tmp_path / 'local'
    local.mkdir()
    monkeypatch.chdir(local)

    port = free_udp_port()
    server = tftpy.TftpServer(str(root))
    thread = threading.Thread(target=server.listen, args=('127.0.0.1', port),
                              name='tftp-server', daemon=True)
    thread.start()
    assert server.is_running.wait(5)

    yield root, port

    server.stop(now=True)
    thread.join(timeout=10)


class TestAgainstTftpServer:
    """Full transfers through TransferController, TftpEndpoint and tftpy."""

    PAYLOAD = bytes(range(256)) * 39 + b"tail"  # 9,988 bytes: short last block

    def make_controller(self, port: int) -> TransferController:
        config = ClientConfig(address='127.0.0.1', port=port, block_size=512,
                              timeout=2000, retries=3)
        return TransferController(Session(), TftpEndpoint(config))

    def test_put(self, tftp_server) -> None:
        root, port = tftp_server
        with open('up.bin', 'wb') as f:
            f.write(self.PAYLOAD)
        controller = self.make_controller(port)

        outcome = asyncio.run(asyncio.wait_for(controller.put('up.bin'), timeout=20))

        assert outcome is TransferOutcome.COMPLETED
        assert (root / 'up.bin').read_bytes() == self.PAYLOAD
        assert controller.session.active is None

    def test_get(self, tftp_server) -> None:
        root, port = tftp_server
        (root / 'report.txt').write_bytes(self.PAYLOAD)
        controller = self.make_controller(port)

        outcome = asyncio.run(asyncio.wait_for(controller.get('report.txt'), timeout=20))

        assert outcome is TransferOutcome.COMPLETED
        with open('report.txt', 'rb') as f:
            assert f.read() == self.PAYLOAD

    def test_get_missing_file_removes_partial(self, tftp_server) -> None:
        _, port = tftp_server
        controller = self.make_controller(port)

        with pytest.raises(RemoteTransferError):
            asyncio.run(asyncio.wait_for(controller.get('missing.bin'), timeout=20))

        assert not os.path.exists('missing.bin')
