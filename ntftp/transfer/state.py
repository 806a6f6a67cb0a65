"""
Transfer State Machine

Design Decision: Arbitrating Terminal Events
============================================

A transfer has several independent ways to end: the local stream fails,
the remote stream fails, the local stream finishes, or the user asks to
abort. Any of them may happen first and several may happen back to back
(an abort followed by the remote end, a local error followed by the
remote error it provokes, ...). Exactly one of them must decide the
outcome, and cleanup must run exactly once.

Options Considered:
1. Boolean flags checked in each completion handler
   - Every handler has to know about every other one
   - Easy to notify twice or not at all

2. Explicit state machine with one transition function
   - Each event is looked up in a table from the current state
   - Events without a transition are ignored
   - The outcome is fixed on the first terminal transition

Decision: Explicit state machine

States:
```
OPENING --OPENED--> ACTIVE --FINISHED--> DONE (completed)
   |                  |
   |                  +--ABORT--> ABORTING --(any end)--> CLEANING_UP (cancelled)
   |                  |
   |                  +--LOCAL_ERROR / REMOTE_ERROR--> CLEANING_UP (failed)
   |
   +--ABORT--> ABORTING
   |
   +--LOCAL_ERROR / REMOTE_ERROR--> CLEANING_UP (failed)

CLEANING_UP --CLEANED--> DONE
```
"""

import logging
from enum import Enum
from typing import Dict, Optional, Tuple

from ..errors import NtftpError

logger = logging.getLogger(__name__)


class TransferState(Enum):
    """Lifecycle state of a transfer."""
    OPENING = "opening"
    ACTIVE = "active"
    ABORTING = "aborting"
    CLEANING_UP = "cleaning_up"
    DONE = "done"


class TransferEvent(Enum):
    """Events fed to the state machine."""
    OPENED = "opened"
    ABORT = "abort"
    LOCAL_ERROR = "local_error"
    FINISHED = "finished"
    REMOTE_ERROR = "remote_error"
    CLEANED = "cleaned"


class TransferOutcome(Enum):
    """How a transfer ended."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# (state, event) -> (next state, outcome decided by this transition)
TRANSITIONS: Dict[Tuple[TransferState, TransferEvent],
                  Tuple[TransferState, Optional[TransferOutcome]]] = {
    (TransferState.OPENING, TransferEvent.OPENED): (TransferState.ACTIVE, None),
    (TransferState.OPENING, TransferEvent.ABORT): (TransferState.ABORTING, None),
    (TransferState.OPENING, TransferEvent.LOCAL_ERROR): (TransferState.CLEANING_UP, TransferOutcome.FAILED),
    (TransferState.OPENING, TransferEvent.REMOTE_ERROR): (TransferState.CLEANING_UP, TransferOutcome.FAILED),

    (TransferState.ACTIVE, TransferEvent.ABORT): (TransferState.ABORTING, None),
    (TransferState.ACTIVE, TransferEvent.LOCAL_ERROR): (TransferState.CLEANING_UP, TransferOutcome.FAILED),
    (TransferState.ACTIVE, TransferEvent.REMOTE_ERROR): (TransferState.CLEANING_UP, TransferOutcome.FAILED),
    (TransferState.ACTIVE, TransferEvent.FINISHED): (TransferState.DONE, TransferOutcome.COMPLETED),

    # Once aborting, whatever ends the pump is a consequence of the abort
    (TransferState.ABORTING, TransferEvent.LOCAL_ERROR): (TransferState.CLEANING_UP, TransferOutcome.CANCELLED),
    (TransferState.ABORTING, TransferEvent.REMOTE_ERROR): (TransferState.CLEANING_UP, TransferOutcome.CANCELLED),
    (TransferState.ABORTING, TransferEvent.FINISHED): (TransferState.CLEANING_UP, TransferOutcome.CANCELLED),

    (TransferState.CLEANING_UP, TransferEvent.CLEANED): (TransferState.DONE, None),
}


class TransferStateMachine:
    """
    Consumes transfer events one at a time.

    The first transition that decides an outcome also records the error
    that caused it (if any); later events cannot change either.
    """

    def __init__(self, name: str = ''):
        self.name = name
        self.state = TransferState.OPENING
        self.outcome: Optional[TransferOutcome] = None
        self.error: Optional[NtftpError] = None

    @property
    def done(self) -> bool:
        return self.state is TransferState.DONE

    def handle(self, event: TransferEvent, error: Optional[NtftpError] = None) -> bool:
        """
        Apply an event.

        Returns:
            True if the event caused a transition, False if it was ignored
        """
        transition = TRANSITIONS.get((self.state, event))
        if transition is None:
            logger.debug(f"[{self.name}] {event.value} ignored in {self.state.value}")
            return False

        next_state, outcome = transition
        logger.debug(f"[{self.name}] {self.state.value} --{event.value}--> {next_state.value}")
        self.state = next_state

        if outcome is not None:
            self.outcome = outcome
            if outcome is TransferOutcome.FAILED:
                self.error = error

        return True
