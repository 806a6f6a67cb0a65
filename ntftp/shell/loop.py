"""
Session Loop

Design Decision: Interrupt Handling
===================================

Ctrl-C reaches the client two different ways:
- at the prompt, prompt_toolkit reads it as a key and raises
  KeyboardInterrupt from read_line()
- while a command runs there is no prompt, so the terminal delivers
  SIGINT; a loop signal handler is installed for exactly that window

Both end up in on_interrupt(), which implements the two-stage protocol:

1. First interrupt: arm, start the grace timer, print the hint, and ask
   the active transfer (if any) to abort. The prompt comes back when the
   interrupted command returns, which for a transfer is after its cleanup.
2. Interrupt while the grace timer runs: terminate the process at once.

The timer is fire-once: it either expires and disarms, or a second
interrupt arrives first.
"""

import os
import sys
import signal
import asyncio
import logging
from contextlib import contextmanager
from typing import Callable

from .commands import CommandDispatcher, tokenize
from ..errors import NtftpError
from ..session import Session

logger = logging.getLogger(__name__)

GRACE_PERIOD = 3.0  # seconds
INTERRUPT_HINT = "(^C again to quit)"


def exit_process():
    """Leave immediately, without waiting for cleanup or library threads."""
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(0)


class SessionLoop:
    """
    The read-eval-print cycle.

    Args:
        session: Shared session state
        dispatcher: Routes commands to the transfer controller
        terminal: Prompt and output (see Terminal)
        grace_period: Seconds during which a second interrupt quits
        exit_process: Called to terminate the process
    """

    def __init__(self, session: Session, dispatcher: CommandDispatcher, terminal,
                 grace_period: float = GRACE_PERIOD,
                 exit_process: Callable[[], None] = exit_process):
        self.session = session
        self.dispatcher = dispatcher
        self.terminal = terminal
        self.grace_period = grace_period
        self._exit_process = exit_process

    async def run(self):
        """Read and execute lines until end of input."""
        try:
            with self.terminal.patch_output():
                while True:
                    try:
                        line = await self.terminal.read_line()
                    except KeyboardInterrupt:
                        self.on_interrupt()
                        continue
                    except EOFError:
                        break

                    await self.execute(line)
        finally:
            self._disarm()

        logger.debug("End of input")

    async def execute(self, line: str):
        """Execute one line; errors are reported, never raised."""
        tokens = tokenize(line)
        if not tokens:
            return

        with self._sigint_handler():
            try:
                with self.terminal.transfer_display():
                    await self.dispatcher.dispatch(tokens)
            except NtftpError as exc:
                logger.debug(f"{tokens[0]} failed: {exc!r}")
                self.terminal.error(str(exc))

    def on_interrupt(self):
        """Handle one Ctrl-C."""
        if self.session.interrupt_timer is not None:
            logger.debug("Second interrupt within the grace period, exiting")
            self._exit_process()
            return

        self.session.interrupt_count += 1
        loop = asyncio.get_running_loop()
        self.session.interrupt_armed = True
        self.session.interrupt_timer = loop.call_later(self.grace_period, self._disarm)
        self.terminal.hint(INTERRUPT_HINT)

        transfer = self.session.active
        if transfer is not None:
            logger.debug(f"Aborting {transfer}")
            transfer.abort()

    def _disarm(self):
        if self.session.interrupt_timer is not None:
            self.session.interrupt_timer.cancel()
        self.session.interrupt_timer = None
        self.session.interrupt_armed = False

    @contextmanager
    def _sigint_handler(self):
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.on_interrupt)
            installed = True
        except (NotImplementedError, RuntimeError, ValueError):
            # Platform without loop signal handlers, or not the main thread
            installed = False

        try:
            yield
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)
