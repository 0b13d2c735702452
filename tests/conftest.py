"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from docbuilder.adapters.mock import MockSandbox
from docbuilder.core.config.loader import BuilderOptions
from docbuilder.core.persistence.database import connect
from docbuilder.core.services.docs_builder import DocsBuilder

from tests.fakes import FakeFetcher, FakeRustdoc, FakeToolchain


# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def conn(tmp_path_factory: pytest.TempPathFactory):
    """A fresh builder database."""
    connection = connect(tmp_path_factory.mktemp("db") / "docbuilder.db")
    yield connection
    connection.close()


@pytest.fixture
def options(tmp_path: Path) -> BuilderOptions:
    """Options rooted at a temporary prefix with the required paths present."""
    opts = BuilderOptions.from_prefix(tmp_path / "prefix")
    opts.destination.mkdir(parents=True)
    opts.registry_index_path.mkdir(parents=True)
    return opts


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def rustdoc() -> FakeRustdoc:
    return FakeRustdoc()


@pytest.fixture
def sandbox(rustdoc: FakeRustdoc) -> MockSandbox:
    return MockSandbox(side_effect=rustdoc)


@pytest.fixture
def builder(options, conn, sandbox, toolchain, fetcher) -> DocsBuilder:
    """Every component wired together around the fakes."""
    return DocsBuilder(
        options,
        conn=conn,
        sandbox=sandbox,
        toolchain=toolchain,
        fetcher=fetcher,
        prepare_dependencies=False,
    )
