"""
TFTP Endpoint

Design Decision: Driving a Blocking Client Library
==================================================

Options Considered:
1. asyncio.to_thread() around each download()/upload() call
   - Short, but the default executor is joined at interpreter shutdown,
     so a stuck transfer would keep the process alive
   - No way to stream chunks while the call is running

2. Re-implement TFTP on asyncio datagram endpoints
   - Full control, but the wire protocol is not this client's job

3. One daemon thread per transfer, bridged to the event loop
   - The library runs unmodified
   - Chunks and completion are posted with loop.call_soon_threadsafe()
   - Abort is a threading.Event checked on every data block

Decision: Daemon thread per stream
- Download: tftpy writes each DATA block into a sink object; the sink
  forwards it to an asyncio.Queue and raises once abort is requested,
  which unwinds the library call.
- Upload: tftpy reads blocks from a source object fed through a
  queue.Queue; a semaphore on the loop side bounds the queued chunks.
- Whatever happens in the thread, exactly one completion is posted back.
- An abort is noticed on the next data block, or when the library gives
  up on an unresponsive server (timeout x retries).

Option handling:
- blksize is negotiated through the library's options dict
- timeout is given in milliseconds and handed to the library in seconds
- windowsize (RFC 7440) is not supported by tftpy and is ignored
- out-of-range values silently fall back to the defaults
"""

import asyncio
import logging
import queue
import threading
from dataclasses import replace
from typing import Optional

import tftpy

from .base import RemoteEndpoint, RemoteGetStream, RemotePutStream, ProgressCallback
from ..config import (
    ClientConfig, DEFAULT_BLOCK_SIZE, DEFAULT_RETRIES,
    DEFAULT_TIMEOUT_MS, DEFAULT_WINDOW_SIZE,
)
from ..errors import RemoteTransferError, describe_os_error

logger = logging.getLogger(__name__)

MIN_BLOCK_SIZE = 8
MAX_BLOCK_SIZE = 65464
MIN_WINDOW_SIZE = 1
MAX_WINDOW_SIZE = 65535

# Upload chunks queued ahead of the library thread
PUT_QUEUE_DEPTH = 16

_END = object()


class _Aborted(Exception):
    """Raised inside the library thread to unwind an aborted transfer."""


def normalize_config(config: ClientConfig) -> ClientConfig:
    """Replace out-of-range option values with their defaults."""
    changes = {}

    if not MIN_BLOCK_SIZE <= config.block_size <= MAX_BLOCK_SIZE:
        changes['block_size'] = DEFAULT_BLOCK_SIZE
    if config.retries < 0:
        changes['retries'] = DEFAULT_RETRIES
    if config.timeout <= 0:
        changes['timeout'] = DEFAULT_TIMEOUT_MS
    if not MIN_WINDOW_SIZE <= config.window_size <= MAX_WINDOW_SIZE:
        changes['window_size'] = DEFAULT_WINDOW_SIZE

    if changes:
        logger.debug(f"Using defaults for out-of-range options: {sorted(changes)}")
        return replace(config, **changes)
    return config


class _ThreadedStream:
    """Thread plumbing shared by get and put streams."""

    def __init__(self, endpoint: 'TftpEndpoint', remote_path: str, kind: str):
        self._endpoint = endpoint
        self._loop = asyncio.get_running_loop()
        self._abort_requested = threading.Event()
        self._closed = asyncio.Event()
        self._error: Optional[RemoteTransferError] = None
        self._thread = threading.Thread(
            target=self._worker,
            args=(remote_path,),
            name=f"tftp-{kind}",
            daemon=True,
        )

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def abort(self):
        if self.closed or self._abort_requested.is_set():
            return
        logger.debug(f"Abort requested for {self.remote_path}")
        self._abort_requested.set()
        self._on_abort()

    async def wait_closed(self):
        await self._closed.wait()

    def _on_abort(self):
        pass

    def _call(self, client: 'tftpy.TftpClient', remote_path: str):
        raise NotImplementedError

    # === Library thread ===

    def _worker(self, remote_path: str):
        error = None
        try:
            config = self._endpoint.config
            client = tftpy.TftpClient(
                config.address,
                config.port,
                options={'blksize': config.block_size},
            )
            self._call(client, remote_path)
        except _Aborted:
            logger.debug(f"Transfer of {remote_path} aborted")
        except tftpy.TftpException as exc:
            error = RemoteTransferError(str(exc) or exc.__class__.__name__)
        except OSError as exc:
            error = RemoteTransferError(describe_os_error(exc))
        except Exception as exc:
            logger.exception(f"Unexpected failure transferring {remote_path}")
            error = RemoteTransferError(str(exc) or exc.__class__.__name__)

        if error is not None and self._abort_requested.is_set():
            logger.debug(f"Error after abort ignored: {error}")
            error = None

        self._loop.call_soon_threadsafe(self._complete, error)

    def _check_abort(self):
        if self._abort_requested.is_set():
            raise _Aborted()

    # === Event loop side ===

    def _complete(self, error: Optional[RemoteTransferError]):
        self._error = error
        self._closed.set()


class _BlockSink:
    """File-like object tftpy writes downloaded blocks into."""

    def __init__(self, stream: 'TftpGetStream'):
        self._stream = stream
        self.closed = False

    def write(self, data: bytes):
        self._stream._deliver(data)

    def close(self):
        self.closed = True


class TftpGetStream(_ThreadedStream, RemoteGetStream):
    """Download running on a tftpy client thread."""

    def __init__(self, endpoint: 'TftpEndpoint', remote_path: str,
                 on_progress: Optional[ProgressCallback] = None):
        RemoteGetStream.__init__(self, remote_path, on_progress)
        _ThreadedStream.__init__(self, endpoint, remote_path, 'get')
        self._queue: asyncio.Queue = asyncio.Queue()
        self._finished = False
        self._thread.start()

    def _call(self, client, remote_path):
        config = self._endpoint.config
        client.download(
            remote_path,
            _BlockSink(self),
            timeout=config.timeout / 1000,
            retries=config.retries,
        )

    def _deliver(self, data: bytes):
        # Library thread
        self._check_abort()
        self._loop.call_soon_threadsafe(self._queue.put_nowait, bytes(data))

    def _complete(self, error):
        super()._complete(error)
        self._queue.put_nowait(_END)

    async def __anext__(self) -> bytes:
        while not self._finished:
            item = await self._queue.get()

            if item is _END:
                self._finished = True
                break

            if self._abort_requested.is_set():
                continue

            self._report_progress(len(item))
            return item

        if self._error is not None:
            raise self._error
        raise StopAsyncIteration


class _BlockSource:
    """File-like object tftpy reads upload blocks from."""

    def __init__(self, stream: 'TftpPutStream'):
        self._stream = stream
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        return self._stream._take(size)

    def close(self):
        self.closed = True


class TftpPutStream(_ThreadedStream, RemotePutStream):
    """Upload running on a tftpy client thread."""

    def __init__(self, endpoint: 'TftpEndpoint', remote_path: str,
                 on_progress: Optional[ProgressCallback] = None):
        RemotePutStream.__init__(self, remote_path, on_progress)
        _ThreadedStream.__init__(self, endpoint, remote_path, 'put')
        self._chunks: queue.Queue = queue.Queue()
        self._room = asyncio.Semaphore(PUT_QUEUE_DEPTH)
        self._pending = bytearray()
        self._eof = False
        self._thread.start()

    def _call(self, client, remote_path):
        config = self._endpoint.config
        client.upload(
            remote_path,
            _BlockSource(self),
            timeout=config.timeout / 1000,
            retries=config.retries,
        )

    def _on_abort(self):
        # Wake the library thread if it is waiting for data
        self._chunks.put(_END)

    def _take(self, size: int) -> bytes:
        # Library thread; short reads only at end of data
        while not self._eof and (size < 0 or len(self._pending) < size):
            self._check_abort()
            item = self._chunks.get()
            self._check_abort()
            if item is _END:
                self._eof = True
                break
            self._pending.extend(item)
            self._loop.call_soon_threadsafe(self._chunk_taken, len(item))

        if size < 0:
            size = len(self._pending)
        block = bytes(self._pending[:size])
        del self._pending[:size]
        return block

    def _chunk_taken(self, nbytes: int):
        self._room.release()
        self._report_progress(nbytes)

    def _complete(self, error):
        super()._complete(error)
        # Unblock writers waiting for room
        for _ in range(PUT_QUEUE_DEPTH):
            self._room.release()

    async def write(self, data: bytes):
        await self._room.acquire()
        if self._abort_requested.is_set():
            raise RemoteTransferError("Transfer aborted")
        if self.closed:
            raise self._error or RemoteTransferError("Remote side closed the transfer")
        self._chunks.put(bytes(data))

    async def finish(self):
        if not self._abort_requested.is_set():
            self._chunks.put(_END)
        await self._closed.wait()
        if self._error is not None:
            raise self._error


class TftpEndpoint(RemoteEndpoint):
    """RemoteEndpoint speaking TFTP through tftpy."""

    def __init__(self, config: ClientConfig):
        self.config = normalize_config(config)
        if self.config.window_size != DEFAULT_WINDOW_SIZE:
            logger.debug("windowsize is not negotiated by this endpoint; ignored")

    def open_get_stream(self, remote_path: str,
                        on_progress: Optional[ProgressCallback] = None) -> TftpGetStream:
        logger.info(f"GET {remote_path} from {self.config.server}")
        return TftpGetStream(self, remote_path, on_progress)

    def open_put_stream(self, remote_path: str,
                        on_progress: Optional[ProgressCallback] = None) -> TftpPutStream:
        logger.info(f"PUT {remote_path} to {self.config.server}")
        return TftpPutStream(self, remote_path, on_progress)
