"""
Terminal

Line input with prompt_toolkit, output with rich.

prompt_toolkit reads Ctrl-C at the prompt as a key and raises
KeyboardInterrupt from read_line(); Ctrl-D on an empty line raises
EOFError. While output is patched, anything printed during a prompt is
drawn above the input line instead of through it.
"""

import logging
from typing import Iterable, List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.progress import DownloadColumn, Progress, SpinnerColumn, TextColumn

from ..endpoint import TransferProgress

logger = logging.getLogger(__name__)

PROMPT = '> '


class CommandCompleter(Completer):
    """Completes command names at the start of the line."""

    def __init__(self, commands: Iterable[str]):
        self.candidates: List[str] = [f"{command} " for command in commands]

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor
        for candidate in self.candidates:
            if candidate.startswith(text):
                yield Completion(candidate, start_position=-len(text))


class TransferDisplay:
    """
    Transient rich progress line for one command.

    Nothing is drawn until the first progress update, so commands that
    fail their checks print only their error. The line is removed when
    the context exits, before the error (if any) and the next prompt.
    """

    def __init__(self, console: Console):
        self.console = console
        self._progress: Optional[Progress] = None
        self._task = None
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self._closed = True
        if self._progress is not None:
            self._progress.stop()
            self._progress = None

    @property
    def running(self) -> bool:
        """True while the progress line is on screen."""
        return self._progress is not None

    def update(self, progress: TransferProgress):
        if self._closed:
            return

        if self._progress is None:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("{task.description}", style="progress.description", markup=False),
                DownloadColumn(),
                TextColumn("{task.fields[speed]}"),
                console=self.console,
                transient=True,
            )
            logger.debug(f"Showing progress for {progress.remote_path}")
            self._progress.start()
            self._task = self._progress.add_task(progress.remote_path, total=None, speed='')

        self._progress.update(
            self._task,
            completed=progress.bytes_transferred,
            speed=f"{progress.speed_bytes_per_sec / 1024:.1f} KB/s",
        )


class Terminal:
    """
    Interactive terminal.

    Args:
        commands: command names offered by tab completion
        console: rich console for regular output
    """

    def __init__(self, commands: Iterable[str], console: Console = None,
                 prompt: str = PROMPT):
        self.prompt = prompt
        self.console = console or Console()
        self.err_console = Console(stderr=True)
        self._display: Optional[TransferDisplay] = None
        self._session = PromptSession(
            completer=CommandCompleter(commands),
            complete_while_typing=False,
        )

    def patch_output(self):
        """Context manager keeping prints from corrupting the prompt line."""
        return patch_stdout()

    async def read_line(self) -> str:
        """Show the prompt and wait for a line."""
        return await self._session.prompt_async(self.prompt)

    def error(self, message: str):
        """Report an error on one line."""
        self.err_console.print(f"Error: {message}", style="red", markup=False, highlight=False)

    def hint(self, message: str):
        """Print an informational line."""
        self.console.print(message, style="dim", markup=False, highlight=False)

    def transfer_display(self) -> TransferDisplay:
        """Context manager showing progress for the command about to run."""
        self._display = TransferDisplay(self.console)
        return self._display

    def progress(self, progress: TransferProgress):
        """Progress of the running transfer (informational only)."""
        if self._display is not None:
            self._display.update(progress)
