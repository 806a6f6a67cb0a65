"""
File Module - Local File Access

Async local streams used on the local side of a transfer.
"""

from .local import LocalFiles, READ_CHUNK_SIZE

__all__ = [
    'LocalFiles',
    'READ_CHUNK_SIZE',
]
