"""
Command Dispatcher

Turns the tokens of one input line into a call to a registered handler.

Grammar:
    get <remote> [<local>]
    put <local> [<remote>]

Tokens starting with '-' are options. No command defines any, so they are
dropped (and logged) instead of being rejected; '--' ends option
processing so a file named '-x' can still be given.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List

from ..errors import CommandError

logger = logging.getLogger(__name__)

# Type for command handlers
CommandHandler = Callable[..., Awaitable[Any]]


@dataclass
class CommandSpec:
    """A registered command."""
    name: str
    handler: CommandHandler
    min_args: int = 1
    max_args: int = 2
    usage: str = ''


@dataclass
class ParsedCommand:
    """Result of parsing one line."""
    name: str
    args: List[str] = field(default_factory=list)
    ignored_options: List[str] = field(default_factory=list)


def tokenize(line: str) -> List[str]:
    """Split a line into whitespace-separated tokens."""
    return line.split()


class CommandDispatcher:
    """Routes parsed commands to their handlers."""

    def __init__(self):
        self._commands: Dict[str, CommandSpec] = {}

    @property
    def names(self) -> List[str]:
        """Registered command names, in registration order."""
        return list(self._commands)

    def command(self, name: str, min_args: int = 1, max_args: int = 2, usage: str = ''):
        """Decorator to register a command handler."""
        def decorator(handler: CommandHandler):
            self.set_handler(name, handler, min_args, max_args, usage)
            return handler
        return decorator

    def set_handler(self, name: str, handler: CommandHandler,
                    min_args: int = 1, max_args: int = 2, usage: str = ''):
        """Register a command handler."""
        self._commands[name] = CommandSpec(name, handler, min_args, max_args, usage)

    def parse(self, tokens: List[str]) -> ParsedCommand:
        """
        Parse tokens into a command.

        Raises:
            CommandError: unknown command or wrong number of arguments
        """
        if not tokens or tokens[0] not in self._commands:
            raise CommandError("Invalid command")

        spec = self._commands[tokens[0]]
        parsed = ParsedCommand(name=spec.name)

        options_done = False
        for token in tokens[1:]:
            if not options_done and token == '--':
                options_done = True
            elif not options_done and token.startswith('-') and token != '-':
                parsed.ignored_options.append(token)
            else:
                parsed.args.append(token)

        if len(parsed.args) < spec.min_args:
            raise CommandError(_with_usage("Missing argument", spec))
        if len(parsed.args) > spec.max_args:
            raise CommandError(_with_usage("Too many arguments", spec))

        if parsed.ignored_options:
            logger.debug(f"Ignoring options for {spec.name}: {parsed.ignored_options}")

        return parsed

    async def dispatch(self, tokens: List[str]) -> Any:
        """Parse tokens and await the matching handler."""
        parsed = self.parse(tokens)
        return await self._commands[parsed.name].handler(*parsed.args)


def _with_usage(message: str, spec: CommandSpec) -> str:
    if spec.usage:
        return f"{message} (usage: {spec.usage})"
    return message


def create_dispatcher(controller) -> CommandDispatcher:
    """Dispatcher with the get and put commands bound to a TransferController."""
    dispatcher = CommandDispatcher()
    dispatcher.set_handler('get', controller.get, usage='get <remote> [<local>]')
    dispatcher.set_handler('put', controller.put, usage='put <local> [<remote>]')
    return dispatcher
