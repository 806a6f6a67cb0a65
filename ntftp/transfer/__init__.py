"""
Transfer Module - Get/Put Lifecycle

Runs one transfer at a time and resolves every way it can end to a
single outcome.
"""

from .state import TransferState, TransferEvent, TransferOutcome, TransferStateMachine
from .controller import (
    Transfer,
    TransferKind,
    ReadTransfer,
    WriteTransfer,
    TransferController,
)

__all__ = [
    'TransferState',
    'TransferEvent',
    'TransferOutcome',
    'TransferStateMachine',
    'Transfer',
    'TransferKind',
    'ReadTransfer',
    'WriteTransfer',
    'TransferController',
]
