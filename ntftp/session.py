"""
Client Session

The state shared by the session loop and the transfer controller. One
Session exists per process and is passed to both explicitly.

The active-transfer slot holds either nothing, a ReadTransfer or a
WriteTransfer. A single slot means a get and a put can never be active at
the same time. Only the controller fills and clears the slot; only the
session loop changes the interrupt state.
"""

import asyncio
import logging
from typing import Optional, TYPE_CHECKING

from .errors import TransferInProgressError

if TYPE_CHECKING:
    from .transfer.controller import Transfer

logger = logging.getLogger(__name__)


class Session:
    """Process-wide client state."""

    def __init__(self):
        self.active: Optional['Transfer'] = None

        # Interrupt protocol
        self.interrupt_armed = False
        self.interrupt_timer: Optional[asyncio.TimerHandle] = None
        # Incremented on every first interrupt. A command compares it before
        # and after its checks to notice a Ctrl-C that came before the slot
        # was filled.
        self.interrupt_count = 0

    @property
    def busy(self) -> bool:
        """True while a transfer owns the slot."""
        return self.active is not None

    def ensure_idle(self):
        """Raise TransferInProgressError if a transfer is active."""
        if self.active is not None:
            raise TransferInProgressError()

    def begin(self, transfer: 'Transfer'):
        """Register transfer as the active one."""
        self.ensure_idle()
        self.active = transfer
        logger.debug(f"Active transfer: {transfer}")

    def end(self, transfer: 'Transfer'):
        """Clear the slot; transfer must be the active one."""
        if self.active is not transfer:
            raise RuntimeError(f"{transfer} is not the active transfer")
        self.active = None
        logger.debug(f"Transfer slot cleared: {transfer}")
