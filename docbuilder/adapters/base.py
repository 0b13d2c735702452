"""
Sandbox base — the protocol contract between the builder and sandboxes.

The executor only talks to sandboxes through this protocol, never
directly to docker. A sandbox runs one command with the limits it was
given and reports the outcome as a CommandOutput.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, Field


class Mount(BaseModel):
    """A host directory made visible inside the sandbox."""

    host_path: Path
    sandbox_path: str
    read_only: bool = False


class SandboxCommand(BaseModel):
    """Everything a sandbox needs to run one command.

    This is the sandbox's view of the world: what to run, where, with
    which environment, and under which resource limits.
    """

    argv: list[str]
    workdir: str = "/opt/docbuilder/workdir"
    env: dict[str, str] = Field(default_factory=dict)
    mounts: list[Mount] = Field(default_factory=list)
    memory_bytes: int | None = None
    network_enabled: bool = False
    timeout: float | None = None        # seconds, None = no limit
    name: str = ""                      # label for logs / container name


class CommandOutput(BaseModel):
    """Result of running a command on the host or in a sandbox."""

    argv: list[str] = Field(default_factory=list)
    returncode: int | None = None
    stdout_lines: list[str] = Field(default_factory=list)
    stderr_lines: list[str] = Field(default_factory=list)
    timed_out: bool = False
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self.stderr_lines[-20:])


class CommandError(Exception):
    """A host command that must succeed did not."""

    def __init__(self, output: CommandOutput, message: str = ""):
        self.output = output
        detail = message or f"command {' '.join(output.argv)!r} failed"
        if output.timed_out:
            detail += " (timed out)"
        elif output.returncode is not None:
            detail += f" (exit {output.returncode})"
        if output.stderr_lines:
            detail += f": {output.stderr_tail}"
        super().__init__(detail)


class Sandbox(ABC):
    """Abstract base class for isolated build environments.

    Sandboxes NEVER raise on command failure or timeout; those are
    captured in the CommandOutput. They raise only when the sandbox
    itself cannot be started.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The sandbox identifier (e.g., 'docker', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the sandbox backend can be used. Never raises."""

    @abstractmethod
    def run(self, command: SandboxCommand) -> CommandOutput:
        """Run the command under its limits and return the outcome.

        Every output line is also logged on the sandbox logger so an
        active LogStorage captures it as it arrives.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
