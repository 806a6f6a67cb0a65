"""
Local File Access

Thin async wrapper over aiofiles used by the transfer controller. All
operations raise plain OSError; the controller decides what they mean.
"""

import os
import logging
from pathlib import Path
from typing import Union

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Size of reads from a local source file
READ_CHUNK_SIZE = 64 * 1024


class LocalFiles:
    """
    Local filesystem operations.

    Provides:
    - stat of a destination/source path
    - async byte streams for reading and writing
    - removal of partial downloads
    """

    def __init__(self, read_chunk_size: int = READ_CHUNK_SIZE):
        self.read_chunk_size = read_chunk_size

    async def stat(self, path: PathLike) -> os.stat_result:
        """Stat a path (raises FileNotFoundError if it does not exist)."""
        return await aiofiles.os.stat(path)

    def open_write(self, path: PathLike):
        """Async context manager yielding a binary writer; truncates the file."""
        return aiofiles.open(path, 'wb')

    def open_read(self, path: PathLike):
        """Async context manager yielding a binary reader."""
        return aiofiles.open(path, 'rb')

    async def unlink(self, path: PathLike) -> bool:
        """
        Delete a file.

        Returns:
            True if removed, False if it was already gone
        """
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        logger.debug(f"Removed {path}")
        return True
