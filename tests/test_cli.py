"""
Tests for CLI commands — database, queue, worker lock, and direct builds.
"""

import logging
from pathlib import Path

import pytest
from click.testing import CliRunner

from docbuilder.adapters.mock import MockSandbox
from docbuilder.core.services import docs_builder
from docbuilder.main import cli

from tests.fakes import FakeFetcher, FakeRustdoc, FakeToolchain


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    """Keep CLI logging setup and env config from leaking between tests."""
    for var in ("DOCBUILDER_CONFIG", "DOCBUILDER_PREFIX", "DOCBUILDER_TOOLCHAIN",
                "DOCBUILDER_WORKSPACE", "DOCBUILDER_LOG_FILE"):
        monkeypatch.delenv(var, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config(tmp_path: Path) -> Path:
    """A docbuilder.yml with its prefix and required directories."""
    prefix = tmp_path / "prefix"
    (prefix / "documentations").mkdir(parents=True)
    (prefix / "crates.io-index").mkdir()
    path = tmp_path / "docbuilder.yml"
    path.write_text(f"docbuilder:\n  prefix: {prefix}\n")
    return path


def _invoke(config: Path, *args: str):
    return CliRunner().invoke(cli, ["--config", str(config), *args])


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "queue and build package documentation" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_config_file(self, tmp_path: Path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.yml"), "queue", "count"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestDatabaseCommand:
    def test_init(self, config: Path, tmp_path: Path):
        result = _invoke(config, "database", "init")
        assert result.exit_code == 0
        assert (tmp_path / "prefix" / "docbuilder.db").is_file()


class TestQueueCommands:
    def test_add_count_list(self, config: Path):
        assert _invoke(config, "queue", "add", "foo", "1.0.0").exit_code == 0
        result = _invoke(config, "queue", "add", "bar", "0.1.0", "--priority", "1")
        assert "bar-0.1.0 queued (priority 1)" in result.output

        count = _invoke(config, "queue", "count")
        assert count.output.strip() == "2"

        listing = _invoke(config, "queue", "list").output.splitlines()
        assert "bar-0.1.0" in listing[0]
        assert "foo-1.0.0" in listing[1]
        assert "priority=5" in listing[1]

    def test_duplicate(self, config: Path):
        _invoke(config, "queue", "add", "foo", "1.0.0")
        result = _invoke(config, "queue", "add", "foo", "1.0.0")
        assert result.exit_code == 0
        assert "already queued" in result.output

    def test_empty_list(self, config: Path):
        assert "Queue is empty" in _invoke(config, "queue", "list").output


class TestWorkerCommands:
    def test_lock_and_unlock(self, config: Path, tmp_path: Path):
        lock_file = tmp_path / "prefix" / "docbuilder.lock"

        result = _invoke(config, "worker", "lock")
        assert result.exit_code == 0
        assert lock_file.exists()

        result = _invoke(config, "worker", "unlock")
        assert result.exit_code == 0
        assert not lock_file.exists()


class TestBuildCommands:
    @pytest.fixture
    def fakes(self, monkeypatch):
        """Swap the real toolchain, fetcher and docker for fakes."""
        real = docs_builder.DocsBuilder
        rustdoc = FakeRustdoc()

        def factory(options):
            return real(
                options,
                sandbox=MockSandbox(side_effect=rustdoc),
                toolchain=FakeToolchain(),
                fetcher=FakeFetcher(),
                prepare_dependencies=False,
            )

        monkeypatch.setattr(docs_builder, "DocsBuilder", factory)
        return rustdoc

    def test_build_crate(self, config: Path, tmp_path: Path, fakes):
        result = _invoke(config, "build", "crate", "foo", "1.0.0")
        assert result.exit_code == 0
        assert "Built foo-1.0.0" in result.output
        assert (tmp_path / "prefix" / "documentations" / "foo" / "1.0.0" / "foo" / "index.html").is_file()
        assert "foo-1.0.0" in (tmp_path / "prefix" / "cache").read_text()

    def test_unwritable_cache_is_not_fatal(self, config: Path, tmp_path: Path, fakes):
        # a directory where the cache file belongs makes every save fail
        (tmp_path / "prefix" / "cache").mkdir()

        result = _invoke(config, "build", "crate", "foo", "1.0.0")
        assert result.exit_code == 0
        assert "Built foo-1.0.0" in result.output

        _invoke(config, "queue", "add", "bar", "1.0.0")
        result = _invoke(config, "worker", "run-once")
        assert result.exit_code == 0

    def test_build_crate_failure(self, config: Path, fakes):
        fakes.broken.add("foo")
        result = _invoke(config, "build", "crate", "foo", "1.0.0")
        assert result.exit_code == 1
        assert "failed or was skipped" in result.output

    def test_run_once_empty_queue(self, config: Path, fakes):
        result = _invoke(config, "worker", "run-once")
        assert result.exit_code == 0
        assert "Nothing to build" in result.output

    def test_run_once_builds_queued_package(self, config: Path, tmp_path: Path, fakes):
        _invoke(config, "queue", "add", "foo", "1.0.0")
        result = _invoke(config, "worker", "run-once")
        assert result.exit_code == 0
        assert _invoke(config, "queue", "count").output.strip() == "0"

    def test_missing_destination(self, config: Path, tmp_path: Path, fakes):
        (tmp_path / "prefix" / "documentations").rmdir()
        result = _invoke(config, "build", "crate", "foo", "1.0.0")
        assert result.exit_code == 1
        assert "destination path" in result.output
