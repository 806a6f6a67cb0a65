"""
Transfer Controller

Runs one get or put at a time: checks the arguments, opens the local and
remote streams, pumps bytes between them and resolves every way the
transfer can end to exactly one outcome.

Download (get) flow:
1. Reject if another transfer is active
2. Validate the remote name with the endpoint
3. Refuse a destination that is a directory
4. Return CANCELLED if Ctrl-C arrived during these checks
5. Register the transfer in the session
6. Open the local file, open the remote stream, copy chunks
7. Feed the terminal event to the state machine, clean up, clear the slot

Cleanup per outcome (get):
- completed: nothing
- local error: abort the remote stream, wait for it to stop, delete the file
- remote error: the local file is already closed, delete it
- cancelled: the remote stream was aborted and the local file closed
  once no more data came in, delete it

Upload (put) is the mirror image. The local source is never deleted; the
only cleanup is stopping the remote stream.

Failed transfers raise their error after the slot has been cleared, so
the caller reports it exactly once. Cancelled transfers return
TransferOutcome.CANCELLED and report nothing.

A partial file that cannot be deleted is logged. A failed transfer still
raises its own error; a cancelled one raises LocalFileError naming the
leftover file.
"""

import os
import stat
import logging
from enum import Enum
from typing import Optional, Tuple

from .state import TransferEvent, TransferOutcome, TransferState, TransferStateMachine
from ..endpoint import RemoteEndpoint, ProgressCallback
from ..errors import (
    LocalFileError, NtftpError, RemoteTransferError, describe_os_error
)
from ..file import LocalFiles
from ..session import Session

logger = logging.getLogger(__name__)


class TransferKind(Enum):
    """Which way the bytes flow."""
    READ = "get"
    WRITE = "put"


def _local_error(exc: OSError) -> LocalFileError:
    error = LocalFileError(describe_os_error(exc))
    error.__cause__ = exc
    return error


class Transfer:
    """
    One get or put.

    run() executes the transfer to its terminal state; abort() may be
    called at any time from outside (the session loop on Ctrl-C).
    """

    kind: TransferKind

    def __init__(self, endpoint: RemoteEndpoint, files: LocalFiles,
                 remote_path: str, local_path: str,
                 on_progress: Optional[ProgressCallback] = None):
        self.endpoint = endpoint
        self.files = files
        self.remote_path = remote_path
        self.local_path = local_path
        self.on_progress = on_progress

        self.remote = None
        self.cleanup_error: Optional[LocalFileError] = None
        self.machine = TransferStateMachine(name=f"{self.kind.value} {remote_path}")

    def __repr__(self) -> str:
        return (f"<{self.__class__.__name__} {self.remote_path!r} "
                f"local={self.local_path!r} state={self.machine.state.value}>")

    @property
    def state(self) -> TransferState:
        return self.machine.state

    @property
    def outcome(self) -> Optional[TransferOutcome]:
        return self.machine.outcome

    @property
    def error(self) -> Optional[NtftpError]:
        return self.machine.error

    @property
    def bytes_transferred(self) -> int:
        return self.remote.progress.bytes_transferred if self.remote else 0

    def abort(self) -> bool:
        """
        Request cancellation.

        Only the remote stream is told to stop; the local stream ends on
        its own once the remote side stops.

        Returns:
            True if the request was accepted, False if the transfer was
            already aborting or finishing
        """
        if not self.machine.handle(TransferEvent.ABORT):
            return False
        if self.remote is not None:
            self.remote.abort()
        return True

    async def run(self) -> TransferOutcome:
        """Execute the transfer; returns once cleanup is complete."""
        event, error = await self._pump()
        self.machine.handle(event, error)

        if self.machine.state is TransferState.CLEANING_UP:
            await self._clean_up()
            self.machine.handle(TransferEvent.CLEANED)

        return self.machine.outcome

    def _opened(self, remote):
        self.remote = remote
        self.machine.handle(TransferEvent.OPENED)
        if self.machine.state is TransferState.ABORTING:
            # Abort arrived while the streams were being opened
            remote.abort()

    async def _stop_remote(self):
        if self.remote is None:
            return
        if not self.remote.closed:
            self.remote.abort()
        await self.remote.wait_closed()

    async def _pump(self) -> Tuple[TransferEvent, Optional[NtftpError]]:
        raise NotImplementedError

    async def _clean_up(self):
        raise NotImplementedError


class ReadTransfer(Transfer):
    """Remote file -> local file."""

    kind = TransferKind.READ
    local_created = False

    async def _pump(self) -> Tuple[TransferEvent, Optional[NtftpError]]:
        try:
            async with self.files.open_write(self.local_path) as local:
                self.local_created = True
                self._opened(self.endpoint.open_get_stream(
                    self.remote_path, on_progress=self.on_progress
                ))
                async for chunk in self.remote:
                    await local.write(chunk)
        except RemoteTransferError as exc:
            return TransferEvent.REMOTE_ERROR, exc
        except OSError as exc:
            return TransferEvent.LOCAL_ERROR, _local_error(exc)

        return TransferEvent.FINISHED, None

    async def _clean_up(self):
        # The remote side must stop before the partial file goes away
        await self._stop_remote()
        if not self.local_created:
            return
        try:
            await self.files.unlink(self.local_path)
        except OSError as exc:
            logger.warning(f"Could not remove partial file {self.local_path}: {exc}")
            self.cleanup_error = LocalFileError(
                f"Could not remove partial file: {describe_os_error(exc)}"
            )
            self.cleanup_error.__cause__ = exc


class WriteTransfer(Transfer):
    """Local file -> remote file."""

    kind = TransferKind.WRITE

    async def _pump(self) -> Tuple[TransferEvent, Optional[NtftpError]]:
        try:
            async with self.files.open_read(self.local_path) as local:
                self._opened(self.endpoint.open_put_stream(
                    self.remote_path, on_progress=self.on_progress
                ))
                while True:
                    chunk = await local.read(self.files.read_chunk_size)
                    if not chunk:
                        break
                    await self.remote.write(chunk)
            await self.remote.finish()
        except RemoteTransferError as exc:
            return TransferEvent.REMOTE_ERROR, exc
        except OSError as exc:
            return TransferEvent.LOCAL_ERROR, _local_error(exc)

        return TransferEvent.FINISHED, None

    async def _clean_up(self):
        await self._stop_remote()


class TransferController:
    """
    Executes get/put commands against the session's single transfer slot.

    Args:
        session: Shared session state
        endpoint: Remote endpoint to transfer with
        files: Local file access (default: LocalFiles())
        on_progress: Called with TransferProgress as bytes move
    """

    def __init__(self, session: Session, endpoint: RemoteEndpoint,
                 files: Optional[LocalFiles] = None,
                 on_progress: Optional[ProgressCallback] = None):
        self.session = session
        self.endpoint = endpoint
        self.files = files or LocalFiles()
        self.on_progress = on_progress

    async def get(self, remote_path: str, local_path: Optional[str] = None) -> TransferOutcome:
        """
        Download remote_path to local_path (default: the remote name).

        Returns:
            COMPLETED, or CANCELLED (also when interrupted before any
            stream was opened)

        Raises:
            TransferInProgressError: another transfer is active
            InvalidRemotePathError: the endpoint rejected remote_path
            LocalFileError: unusable destination, or local I/O failed
            RemoteTransferError: the remote side failed the transfer
        """
        self.session.ensure_idle()
        interrupts = self.session.interrupt_count
        self.endpoint.validate(remote_path)

        local_path = local_path or remote_path

        # Check the destination before anything is opened or truncated
        try:
            stats = await self.files.stat(local_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise _local_error(exc) from exc
        else:
            if stat.S_ISDIR(stats.st_mode):
                raise LocalFileError("The local file is a directory")

        if self._interrupted_since(interrupts):
            return TransferOutcome.CANCELLED

        transfer = ReadTransfer(
            self.endpoint, self.files, remote_path, local_path,
            on_progress=self.on_progress,
        )
        return await self._execute(transfer)

    async def put(self, local_path: str, remote_path: Optional[str] = None) -> TransferOutcome:
        """
        Upload local_path to remote_path (default: the local file name).

        Returns:
            COMPLETED, or CANCELLED (also when interrupted before any
            stream was opened)

        Raises:
            TransferInProgressError: another transfer is active
            InvalidRemotePathError: the endpoint rejected remote_path
            LocalFileError: missing or unreadable source, or local I/O failed
            RemoteTransferError: the remote side failed the transfer
        """
        self.session.ensure_idle()
        interrupts = self.session.interrupt_count

        remote_path = remote_path or os.path.basename(os.path.normpath(local_path))
        self.endpoint.validate(remote_path)

        try:
            stats = await self.files.stat(local_path)
        except FileNotFoundError:
            raise LocalFileError(f"No such file: '{local_path}'") from None
        except OSError as exc:
            raise _local_error(exc) from exc

        if stat.S_ISDIR(stats.st_mode):
            raise LocalFileError("The local file is a directory")

        if self._interrupted_since(interrupts):
            return TransferOutcome.CANCELLED

        transfer = WriteTransfer(
            self.endpoint, self.files, remote_path, local_path,
            on_progress=self.on_progress,
        )
        return await self._execute(transfer)

    def abort(self) -> bool:
        """Abort the active transfer, if any."""
        transfer = self.session.active
        if transfer is None:
            return False
        return transfer.abort()

    def _interrupted_since(self, count: int) -> bool:
        # Ctrl-C while the arguments were being checked: nothing to abort yet
        if self.session.interrupt_count == count:
            return False
        logger.debug("Interrupted before the transfer started")
        return True

    async def _execute(self, transfer: Transfer) -> TransferOutcome:
        self.session.begin(transfer)
        logger.debug(f"Starting {transfer}")
        try:
            outcome = await transfer.run()
        finally:
            self.session.end(transfer)

        logger.info(f"{transfer.kind.value} {transfer.remote_path}: {outcome.value} "
                    f"({transfer.bytes_transferred:,} bytes)")

        if outcome is TransferOutcome.FAILED:
            raise transfer.error or RemoteTransferError("Transfer failed")
        if transfer.cleanup_error is not None:
            # Cancelled, but the partial file is still there
            raise transfer.cleanup_error
        return outcome
