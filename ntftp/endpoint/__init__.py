"""
Endpoint Module - Remote File-Transfer Peers

The abstract stream interface used by the transfer controller, the TFTP
implementation and an in-memory implementation.
"""

from .base import (
    RemoteEndpoint,
    RemoteGetStream,
    RemotePutStream,
    TransferProgress,
    ProgressCallback,
    check_remote_path,
)
from .memory import MemoryEndpoint
from .tftp import TftpEndpoint

__all__ = [
    'RemoteEndpoint',
    'RemoteGetStream',
    'RemotePutStream',
    'TransferProgress',
    'ProgressCallback',
    'check_remote_path',
    'MemoryEndpoint',
    'TftpEndpoint',
]
