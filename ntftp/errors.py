"""
Error Types

Every failure the client reports to the user derives from NtftpError.
The session loop turns any NtftpError into a single "Error: ..." line
followed by the prompt; nothing here ever ends the process.
"""


class NtftpError(Exception):
    """Base class for all client errors."""


class CommandError(NtftpError):
    """Unknown command or wrong number of arguments."""


class InvalidRemotePathError(NtftpError):
    """The endpoint rejected a remote file name."""


class LocalFileError(NtftpError):
    """A local stat/open/read/write failed, or the path is unusable."""


class RemoteTransferError(NtftpError):
    """The remote endpoint failed the transfer (timeout, error packet, ...)."""


class TransferInProgressError(NtftpError):
    """A command was issued while another transfer owns the session."""

    def __init__(self, message: str = "A transfer is already in progress"):
        super().__init__(message)


def describe_os_error(exc: OSError) -> str:
    """Short one-line description of an OSError for the user."""
    if exc.strerror and exc.filename:
        return f"{exc.strerror}: '{exc.filename}'"
    return exc.strerror or str(exc)
