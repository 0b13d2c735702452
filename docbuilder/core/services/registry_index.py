"""
Registry index reader — the local git checkout of the package index.

The index holds one file per package; every line of a file is a JSON
document describing one published version::

    {"name": "serde", "vers": "1.0.0", "yanked": false, ...}

Changes are discovered by diffing the fetched head against the last
commit this builder has seen (kept as a git ref inside the checkout).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

from docbuilder.adapters.shell.command import CommandRunner
from docbuilder.core.models.registry import ChangeKind, RegistryChange

logger = logging.getLogger(__name__)

LAST_SEEN_REF = "refs/docbuilder/last-seen"

_SKIPPED = {".git", "config.json"}


def parse_index_line(line: str) -> RegistryChange | None:
    """Parse one index line. Returns None for anything that is not a release."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or "name" not in data or "vers" not in data:
        return None
    kind = ChangeKind.YANKED if data.get("yanked") else ChangeKind.ADDED
    return RegistryChange(name=data["name"], version=data["vers"], kind=kind)


class RegistryIndex:
    """Reads releases and release changes from an index checkout.

    Args:
        path: Root of the git checkout.
        remote: Remote to fetch from.
        branch: Branch of the remote holding the index.
    """

    def __init__(
        self,
        path: Path,
        runner: CommandRunner | None = None,
        remote: str = "origin",
        branch: str = "master",
    ):
        self.path = path
        self._runner = runner or CommandRunner()
        self._remote = remote
        self._branch = branch

    def crates(self) -> Iterator[tuple[str, str]]:
        """Every (name, version) pair in the checkout."""
        for file in sorted(self.path.rglob("*")):
            relative = file.relative_to(self.path)
            if _SKIPPED.intersection(relative.parts) or not file.is_file():
                continue
            with file.open("r", encoding="utf-8") as f:
                for line in f:
                    change = parse_index_line(line)
                    if change is not None:
                        yield change.name, change.version

    def fetch_changes(self) -> list[RegistryChange]:
        """Fetch the remote and return the changes since the last call.

        Returns:
            Changes newest-first.

        Raises:
            CommandError: If git fails.
        """
        self._git("fetch", self._remote, self._branch)
        head = self._git("rev-parse", "FETCH_HEAD").stdout_lines[0].strip()

        last_seen = self._runner.run(
            ["git", "-C", str(self.path), "rev-parse", "--verify", "--quiet", LAST_SEEN_REF]
        )
        revisions = head
        if last_seen.success and last_seen.stdout_lines:
            revisions = f"{last_seen.stdout_lines[0].strip()}..{head}"
        else:
            logger.info("No last seen commit, reading the whole index history")

        log = self._git("log", "-p", "--unified=0", "--no-color", "--format=commit %H", revisions)
        changes = self._parse_log(log.stdout_lines)

        self._git("update-ref", LAST_SEEN_REF, head)
        logger.info("Fetched %d index changes (head=%s)", len(changes), head[:12])
        return changes

    @staticmethod
    def _parse_log(lines: list[str]) -> list[RegistryChange]:
        """Added lines of a newest-first ``git log -p`` become changes."""
        commits: list[list[RegistryChange]] = []
        for line in lines:
            if line.startswith("commit "):
                commits.append([])
                continue
            if not line.startswith("+") or line.startswith("+++"):
                continue
            change = parse_index_line(line[1:])
            if change is not None and commits:
                commits[-1].append(change)

        # Newest commit first, and within a commit the last added line first
        changes = []
        for commit in commits:
            changes.extend(reversed(commit))
        return changes

    def _git(self, *args: str):
        return self._runner.run_checked(["git", "-C", str(self.path), *args], timeout=10 * 60)
