"""
Mock sandbox — test double for sandboxed execution.

Used in tests and dry runs to simulate builds without docker. By
default every command succeeds; callers can queue custom outcomes and
a side effect (e.g. writing the files cargo would have produced).
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from docbuilder.adapters.base import CommandOutput, Sandbox, SandboxCommand
from docbuilder.core.observability.logging_config import SANDBOX_LOGGER

output_logger = logging.getLogger(SANDBOX_LOGGER)

SideEffect = Callable[[SandboxCommand], CommandOutput | None]


class MockSandbox(Sandbox):
    """Records every command and answers with configured outcomes.

    A side effect runs for every command; if it returns a CommandOutput
    that output is used, otherwise the next queued response (or a
    success) is returned.
    """

    def __init__(self, available: bool = True, side_effect: SideEffect | None = None):
        self._available = available
        self._side_effect = side_effect
        self._responses: list[CommandOutput] = []
        self._call_log: list[SandboxCommand] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[SandboxCommand]:
        """All commands this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def is_available(self) -> bool:
        return self._available

    def set_side_effect(self, side_effect: SideEffect | None) -> None:
        self._side_effect = side_effect

    def queue_response(self, output: CommandOutput) -> None:
        """Answer the next un-overridden command with ``output``."""
        self._responses.append(output)

    def queue_failure(self, returncode: int = 101, stderr: str = "error: could not compile") -> None:
        self._responses.append(
            CommandOutput(returncode=returncode, stderr_lines=[stderr])
        )

    def run(self, command: SandboxCommand) -> CommandOutput:
        self._call_log.append(command)

        output = self._side_effect(command) if self._side_effect else None
        if output is None:
            output = self._responses.pop(0) if self._responses else CommandOutput(returncode=0)

        output = output.model_copy(update={"argv": list(command.argv)})
        for line in output.stdout_lines + output.stderr_lines:
            output_logger.info(line)
        return output

    def reset(self) -> None:
        """Clear call log and queued responses."""
        self._call_log.clear()
        self._responses.clear()
