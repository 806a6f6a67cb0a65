"""
In-Memory Endpoint

A RemoteEndpoint backed by a dict of file contents. Streams can be told
to fail after a number of bytes or to stall until aborted, which makes
every terminal path of a transfer reproducible without a network.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from .base import (
    RemoteEndpoint, RemoteGetStream, RemotePutStream, ProgressCallback
)
from ..errors import RemoteTransferError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 512


class MemoryGetStream(RemoteGetStream):
    """Serves bytes from memory in chunk_size pieces."""

    def __init__(self, remote_path: str, data: Optional[bytes],
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 fail_after: Optional[int] = None,
                 stall_after: Optional[int] = None,
                 error_message: str = "Remote error",
                 on_progress: Optional[ProgressCallback] = None):
        super().__init__(remote_path, on_progress)
        self.data = data
        self.chunk_size = chunk_size
        self.fail_after = fail_after
        self.stall_after = stall_after
        self.error_message = error_message

        self.abort_calls = 0
        self._offset = 0
        self._aborted = asyncio.Event()
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def abort(self):
        self.abort_calls += 1
        if self.closed:
            return
        self._aborted.set()
        self._closed.set()

    async def wait_closed(self):
        await self._closed.wait()

    async def __anext__(self) -> bytes:
        # Yield to the loop like real I/O would
        await asyncio.sleep(0)

        if self._aborted.is_set() or self.closed:
            raise StopAsyncIteration

        if self.data is None:
            self._closed.set()
            raise RemoteTransferError(f"File not found: {self.remote_path}")

        if self.fail_after is not None and self._offset >= self.fail_after:
            self._closed.set()
            raise RemoteTransferError(self.error_message)

        if self.stall_after is not None and self._offset >= self.stall_after:
            await self._aborted.wait()
            raise StopAsyncIteration

        if self._offset >= len(self.data):
            self._closed.set()
            raise StopAsyncIteration

        end = self._offset + self.chunk_size
        for limit in (self.fail_after, self.stall_after):
            if limit is not None and self._offset < limit:
                end = min(end, limit)

        chunk = self.data[self._offset:end]
        self._offset += len(chunk)
        self._report_progress(len(chunk))
        return chunk


class MemoryPutStream(RemotePutStream):
    """Collects uploaded bytes; stores them in the endpoint on finish()."""

    def __init__(self, endpoint: 'MemoryEndpoint', remote_path: str,
                 fail_after: Optional[int] = None,
                 stall_after: Optional[int] = None,
                 error_message: str = "Remote error",
                 on_progress: Optional[ProgressCallback] = None):
        super().__init__(remote_path, on_progress)
        self.endpoint = endpoint
        self.fail_after = fail_after
        self.stall_after = stall_after
        self.error_message = error_message

        self.abort_calls = 0
        self.buffer = bytearray()
        self._aborted = asyncio.Event()
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def abort(self):
        self.abort_calls += 1
        if self.closed:
            return
        self._aborted.set()
        self._closed.set()

    async def wait_closed(self):
        await self._closed.wait()

    async def write(self, data: bytes):
        await asyncio.sleep(0)

        if self._aborted.is_set():
            raise RemoteTransferError("Transfer aborted")
        if self.closed:
            raise RemoteTransferError("Stream closed")

        if self.fail_after is not None and len(self.buffer) + len(data) > self.fail_after:
            self._closed.set()
            raise RemoteTransferError(self.error_message)

        if self.stall_after is not None and len(self.buffer) >= self.stall_after:
            await self._aborted.wait()
            raise RemoteTransferError("Transfer aborted")

        self.buffer.extend(data)
        self._report_progress(len(data))

    async def finish(self):
        await asyncio.sleep(0)
        if self._aborted.is_set():
            return
        if self.closed:
            raise RemoteTransferError("Stream closed")

        self.endpoint.files[self.remote_path] = bytes(self.buffer)
        self._closed.set()


class MemoryEndpoint(RemoteEndpoint):
    """
    Fake endpoint.

    Args:
        files: remote file name -> contents
        chunk_size: size of chunks served by get streams
        fail_after: streams fail once this many bytes have moved
        stall_after: streams stop moving data after this many bytes until aborted
    """

    def __init__(self, files: Dict[str, bytes] = None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 fail_after: Optional[int] = None,
                 stall_after: Optional[int] = None,
                 error_message: str = "Remote error"):
        self.files = dict(files or {})
        self.chunk_size = chunk_size
        self.fail_after = fail_after
        self.stall_after = stall_after
        self.error_message = error_message

        self.get_streams: List[MemoryGetStream] = []
        self.put_streams: List[MemoryPutStream] = []

    def open_get_stream(self, remote_path: str,
                        on_progress: Optional[ProgressCallback] = None) -> MemoryGetStream:
        stream = MemoryGetStream(
            remote_path,
            self.files.get(remote_path),
            chunk_size=self.chunk_size,
            fail_after=self.fail_after,
            stall_after=self.stall_after,
            error_message=self.error_message,
            on_progress=on_progress,
        )
        self.get_streams.append(stream)
        logger.debug(f"Opened memory get stream for {remote_path}")
        return stream

    def open_put_stream(self, remote_path: str,
                        on_progress: Optional[ProgressCallback] = None) -> MemoryPutStream:
        stream = MemoryPutStream(
            self,
            remote_path,
            fail_after=self.fail_after,
            stall_after=self.stall_after,
            error_message=self.error_message,
            on_progress=on_progress,
        )
        self.put_streams.append(stream)
        logger.debug(f"Opened memory put stream for {remote_path}")
        return stream
