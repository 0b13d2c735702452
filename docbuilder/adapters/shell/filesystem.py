"""
Filesystem helpers — purge and copy operations used by the builder.

Failures raise OSError; the pipeline treats them as infrastructure
errors and lets them propagate to the worker.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def purge(path: Path) -> None:
    """Remove a directory tree (or file) if it exists."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        logger.debug("Purged %s", path)
    elif path.exists() or path.is_symlink():
        path.unlink()
        logger.debug("Removed %s", path)


def list_files(root: Path) -> list[str]:
    """All regular files under ``root`` as sorted POSIX relative paths."""
    if not root.is_dir():
        return []
    return sorted(
        p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()
    )


def shared_file_pattern(toolchain_version: str) -> re.Pattern[str]:
    """Top-level doc files served from the shared essential-files prefix."""
    version = re.escape(toolchain_version)
    return re.compile(
        rf"(\.lock|\.txt|\.woff|jquery\.js|playpen\.js|main\.js|{version}\.css|{version}\.js)$"
    )


def copy_doc_dir(doc_dir: Path, destination: Path, toolchain_version: str) -> list[str]:
    """Copy a generated ``doc`` directory into ``destination``.

    Subdirectories are copied whole. Top-level files that every
    documentation set shares (fonts, search locks, versioned CSS/JS) are
    skipped: they are published once by the essential files refresher.

    Returns:
        Names of the top-level entries that were copied.
    """
    destination.mkdir(parents=True, exist_ok=True)
    skip = shared_file_pattern(toolchain_version)

    copied = []
    for entry in sorted(doc_dir.iterdir()):
        target = destination / entry.name
        if entry.is_dir():
            shutil.copytree(entry, target, dirs_exist_ok=True)
        elif skip.search(entry.name):
            continue
        else:
            shutil.copy2(entry, target)
        copied.append(entry.name)
    return copied
