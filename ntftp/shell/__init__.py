"""
Shell Module - Interactive Prompt

The session loop, its command dispatcher and the terminal it talks to.
"""

from .commands import CommandDispatcher, ParsedCommand, create_dispatcher, tokenize
from .loop import SessionLoop, GRACE_PERIOD, INTERRUPT_HINT
from .terminal import Terminal, TransferDisplay, CommandCompleter

__all__ = [
    'CommandDispatcher',
    'ParsedCommand',
    'create_dispatcher',
    'tokenize',
    'SessionLoop',
    'GRACE_PERIOD',
    'INTERRUPT_HINT',
    'Terminal',
    'TransferDisplay',
    'CommandCompleter',
]
