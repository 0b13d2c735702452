"""
Docker sandbox — run one build command in a throwaway container.

Uses the docker CLI — never the Docker API directly. Limits map onto
``docker run`` flags:

    memory_bytes      →  --memory / --memory-swap (no swap headroom)
    network_enabled   →  default bridge network, else --network none
    timeout           →  wall clock on the CLI process, then docker kill
"""

from __future__ import annotations

import logging
import uuid

from docbuilder.adapters.base import CommandOutput, Sandbox, SandboxCommand
from docbuilder.adapters.shell.command import CommandRunner

logger = logging.getLogger(__name__)

DEFAULT_IMAGE = "rustops/crates-build-env"


class DockerSandbox(Sandbox):
    """Run SandboxCommands inside a docker container.

    Args:
        image: Build environment image with system libraries installed.
        runner: Host command runner used to drive the docker CLI.
    """

    def __init__(self, image: str = DEFAULT_IMAGE, runner: CommandRunner | None = None):
        self._image = image
        self._runner = runner or CommandRunner()

    @property
    def name(self) -> str:
        return "docker"

    @property
    def image(self) -> str:
        return self._image

    def is_available(self) -> bool:
        return self._runner.is_available("docker")

    def run(self, command: SandboxCommand) -> CommandOutput:
        container = self.container_name(command)
        argv = self.build_argv(command, container)
        logger.info("Running %s in container %s", command.argv[0], container)

        output = self._runner.run(
            argv,
            timeout=command.timeout,
            log_output=True,
            on_timeout=lambda: self._kill(container),
        )
        if output.timed_out:
            logger.warning("Container %s killed after %ss", container, command.timeout)
        return output

    def build_argv(self, command: SandboxCommand, container: str) -> list[str]:
        """Translate a SandboxCommand into a ``docker run`` argv."""
        argv = ["docker", "run", "--rm", "--name", container]

        if command.memory_bytes is not None:
            argv += ["--memory", str(command.memory_bytes), "--memory-swap", str(command.memory_bytes)]
        if not command.network_enabled:
            argv += ["--network", "none"]

        for mount in command.mounts:
            spec = f"{mount.host_path}:{mount.sandbox_path}"
            if mount.read_only:
                spec += ":ro"
            argv += ["-v", spec]

        argv += ["-w", command.workdir]
        for key, value in sorted(command.env.items()):
            argv += ["-e", f"{key}={value}"]

        argv.append(self._image)
        argv.extend(command.argv)
        return argv

    @staticmethod
    def container_name(command: SandboxCommand) -> str:
        label = command.name or "build"
        safe = "".join(c if c.isalnum() or c in "-_." else "-" for c in label)
        return f"docbuilder-{safe}-{uuid.uuid4().hex[:8]}"

    def _kill(self, container: str) -> None:
        result = self._runner.run(["docker", "kill", container], timeout=30)
        if not result.success:
            logger.warning("Failed to kill container %s: %s", container, result.stderr_tail)
