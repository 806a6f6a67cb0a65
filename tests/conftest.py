"""Shared fixtures: a scripted terminal and a fully wired client."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Any, List

import pytest

from ntftp.endpoint import MemoryEndpoint
from ntftp.session import Session
from ntftp.shell import SessionLoop, create_dispatcher
from ntftp.transfer import TransferController


class ExitCalled(Exception):
    """Raised by the fake exit_process so tests can observe termination."""


class ScriptedTerminal:
    """Terminal replacement driven by a list of lines.

    Each script item is a line, an exception (class or instance) to raise
    from read_line(), or an async callable whose result is used instead.
    An exhausted script raises EOFError.
    """

    def __init__(self, script: List[Any]):
        self.script = list(script)
        self.prompts = 0
        self.errors: List[str] = []
        self.hints: List[str] = []
        self.progress_updates = 0
        self.displays = 0

    def patch_output(self):
        return contextlib.nullcontext()

    def transfer_display(self):
        self.displays += 1
        return contextlib.nullcontext()

    async def read_line(self) -> str:
        self.prompts += 1
        await asyncio.sleep(0)
        if not self.script:
            raise EOFError
        item = self.script.pop(0)
        if callable(item) and not isinstance(item, type):
            item = await item()
        if isinstance(item, BaseException) or (
            isinstance(item, type) and issubclass(item, BaseException)
        ):
            raise item
        return item

    def error(self, message: str):
        self.errors.append(message)

    def hint(self, message: str):
        self.hints.append(message)

    def progress(self, progress):
        self.progress_updates += 1


@dataclass
class Client:
    session: Session
    endpoint: MemoryEndpoint
    controller: TransferController
    terminal: ScriptedTerminal
    loop: SessionLoop
    exits: List[int]


def make_client(script=(), endpoint: MemoryEndpoint = None,
                grace_period: float = 3.0) -> Client:
    session = Session()
    endpoint = endpoint or MemoryEndpoint()
    terminal = ScriptedTerminal(list(script))
    controller = TransferController(session, endpoint, on_progress=terminal.progress)
    dispatcher = create_dispatcher(controller)
    exits: List[int] = []

    def fake_exit():
        exits.append(0)
        raise ExitCalled()

    loop = SessionLoop(session, dispatcher, terminal,
                       grace_period=grace_period, exit_process=fake_exit)
    return Client(session, endpoint, controller, terminal, loop, exits)


@pytest.fixture()
def workdir(tmp_path, monkeypatch):
    """Run the test inside an empty temporary directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path
