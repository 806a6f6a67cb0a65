"""
Remote Endpoint Interface

Design Decision: Endpoint Contract
==================================

Options Considered:
1. Call the TFTP library directly from the transfer controller
   - Least code
   - Impossible to test without a server on the network

2. Callback/event-emitter streams (on_error, on_end, ...)
   - Mirrors evented I/O libraries
   - Callbacks scattered over closures, hard to reason about ordering

3. Abstract streams consumed with async iteration / awaitable writes
   - Errors arrive as exceptions at the point of use
   - Completion is the end of iteration (get) or the return of finish() (put)
   - A fake endpoint plugs in for tests

Decision: Abstract base classes with async streams
- RemoteEndpoint: validate(), open_get_stream(), open_put_stream()
- RemoteGetStream: async iterator of byte chunks
- RemotePutStream: write() / finish()
- Both: abort() and wait_closed()

Stream contract:
- Errors surface as RemoteTransferError.
- abort() asks the remote side to stop. After abort() a get stream stops
  iterating, write() on a put stream raises and finish() returns quietly.
- abort() on a stream that already ended does nothing.
- wait_closed() returns once the remote side has stopped for good.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..errors import InvalidRemotePathError

MAX_REMOTE_PATH_BYTES = 255


@dataclass
class TransferProgress:
    """Bytes moved so far by one remote stream."""
    remote_path: str
    bytes_transferred: int = 0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def elapsed_seconds(self) -> float:
        """Time elapsed since the stream was opened."""
        return time.monotonic() - self.start_time

    @property
    def speed_bytes_per_sec(self) -> float:
        """Average transfer speed in bytes/second."""
        elapsed = self.elapsed_seconds
        if elapsed == 0:
            return 0
        return self.bytes_transferred / elapsed


# Progress callback type
ProgressCallback = Callable[[TransferProgress], None]


def check_remote_path(remote_path: str):
    """
    Validate a remote file name for a TFTP request.

    Raises:
        InvalidRemotePathError: empty, non-ASCII, control characters or
            longer than MAX_REMOTE_PATH_BYTES
    """
    if not remote_path:
        raise InvalidRemotePathError("Empty remote file name")

    try:
        encoded = remote_path.encode('ascii')
    except UnicodeEncodeError:
        raise InvalidRemotePathError(
            f"Invalid remote file name (non-ASCII characters): {remote_path}"
        ) from None

    if any(byte < 0x20 or byte == 0x7f for byte in encoded):
        raise InvalidRemotePathError(
            f"Invalid remote file name (control characters): {remote_path!r}"
        )

    if len(encoded) > MAX_REMOTE_PATH_BYTES:
        raise InvalidRemotePathError(
            f"Remote file name too long ({len(encoded)} > {MAX_REMOTE_PATH_BYTES} bytes)"
        )


class RemoteStream(ABC):
    """Common part of get and put streams."""

    def __init__(self, remote_path: str, on_progress: Optional[ProgressCallback] = None):
        self.remote_path = remote_path
        self.progress = TransferProgress(remote_path=remote_path)
        self._on_progress = on_progress

    def _report_progress(self, nbytes: int):
        self.progress.bytes_transferred += nbytes
        if self._on_progress:
            self._on_progress(self.progress)

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the remote side has stopped (success, error or abort)."""

    @abstractmethod
    def abort(self):
        """Ask the remote side to stop. Never raises."""

    @abstractmethod
    async def wait_closed(self):
        """Wait until the remote side has stopped."""


class RemoteGetStream(RemoteStream):
    """Readable remote stream: `async for chunk in stream`."""

    def __aiter__(self):
        return self

    @abstractmethod
    async def __anext__(self) -> bytes:
        """Next chunk; StopAsyncIteration at the end or after abort()."""


class RemotePutStream(RemoteStream):
    """Writable remote stream."""

    @abstractmethod
    async def write(self, data: bytes):
        """Queue bytes for the remote side."""

    @abstractmethod
    async def finish(self):
        """Signal end of data and wait for the remote side to acknowledge it."""


class RemoteEndpoint(ABC):
    """A remote file-transfer peer."""

    def validate(self, remote_path: str):
        """Raise InvalidRemotePathError if the name cannot be requested."""
        check_remote_path(remote_path)

    @abstractmethod
    def open_get_stream(self, remote_path: str,
                        on_progress: Optional[ProgressCallback] = None) -> RemoteGetStream:
        """Start downloading remote_path."""

    @abstractmethod
    def open_put_stream(self, remote_path: str,
                        on_progress: Optional[ProgressCallback] = None) -> RemotePutStream:
        """Start uploading to remote_path."""
