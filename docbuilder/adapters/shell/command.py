"""
Shell command adapter — run host commands and capture their output.

This is the most fundamental adapter: toolchain management, cargo
metadata, git and the docker sandbox are all built on it. Output is
streamed line by line so a timed-out command still reports everything
it printed before it was killed.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import IO

from docbuilder.adapters.base import CommandError, CommandOutput
from docbuilder.core.observability.logging_config import SANDBOX_LOGGER

logger = logging.getLogger(__name__)
output_logger = logging.getLogger(SANDBOX_LOGGER)


class CommandRunner:
    """Execute commands and capture output.

    Args:
        base_env: Variables overlaid on ``os.environ`` for every command
            (e.g. RUSTUP_HOME / CARGO_HOME of the managed toolchain).
    """

    def __init__(self, base_env: dict[str, str] | None = None):
        self._base_env = dict(base_env or {})

    @staticmethod
    def is_available(program: str) -> bool:
        return shutil.which(program) is not None

    def run(
        self,
        argv: list[str],
        *,
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
        log_output: bool = False,
        on_timeout: Callable[[], None] | None = None,
    ) -> CommandOutput:
        """Run ``argv`` to completion or until ``timeout`` seconds pass.

        Never raises for command failure: a non-zero exit, a timeout or a
        missing executable all come back in the CommandOutput.

        Args:
            log_output: Emit every output line on the sandbox logger.
            on_timeout: Called before the process is killed on timeout
                (used to stop containers the process does not own).
        """
        full_env = os.environ.copy()
        full_env.update(self._base_env)
        if env:
            full_env.update(env)

        logger.debug("Executing: %s (cwd=%s)", " ".join(argv), cwd)
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                env=full_env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as e:
            return CommandOutput(argv=argv, stderr_lines=[f"failed to start {argv[0]}: {e}"])

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        pumps = [
            threading.Thread(target=_pump, args=(proc.stdout, stdout_lines, log_output), daemon=True),
            threading.Thread(target=_pump, args=(proc.stderr, stderr_lines, log_output), daemon=True),
        ]
        for pump in pumps:
            pump.start()

        timed_out = False
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            logger.warning("Command timed out after %ss: %s", timeout, argv[0])
            if log_output:
                output_logger.error("timeout of %s seconds exceeded, killing the build", timeout)
            if on_timeout is not None:
                on_timeout()
            proc.kill()
            proc.wait()

        for pump in pumps:
            pump.join(timeout=5)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        return CommandOutput(
            argv=argv,
            returncode=proc.returncode,
            stdout_lines=stdout_lines,
            stderr_lines=stderr_lines,
            timed_out=timed_out,
            duration_ms=elapsed_ms,
        )

    def run_checked(self, argv: list[str], **kwargs) -> CommandOutput:
        """Like run(), but raise CommandError unless the command succeeded."""
        output = self.run(argv, **kwargs)
        if not output.success:
            raise CommandError(output)
        return output


def _pump(stream: IO[str] | None, sink: list[str], log_output: bool) -> None:
    if stream is None:
        return
    with stream:
        for line in stream:
            line = line.rstrip("\n")
            sink.append(line)
            if log_output:
                output_logger.info(line)
