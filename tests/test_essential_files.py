"""
Tests for the essential files refresher.
"""

import pytest

from docbuilder.adapters.base import CommandOutput
from docbuilder.core.persistence.database import get_config
from docbuilder.core.services.essential_files import (
    DUMMY_CRATE_NAME,
    ESSENTIAL_FILES,
    TOOLCHAIN_VERSION_KEY,
    AssetFile,
    EssentialFilesError,
)

from tests.fakes import DEFAULT_VERSION_LINE

PARSED = "20191001-1.40.0-nightly-abcdef123"


class TestAssetFile:
    def test_versioned_name(self):
        assert AssetFile("rustdoc", "css", True).file_name("1.1-def") == "rustdoc-1.1-def.css"

    def test_unversioned_name(self):
        asset = AssetFile("SourceSerifPro-Bold.ttf", "woff", False)
        assert asset.file_name("1.1-def") == "SourceSerifPro-Bold.ttf.woff"

    def test_manifest_has_both_kinds(self):
        assert any(a.versioned for a in ESSENTIAL_FILES)
        assert any(not a.versioned for a in ESSENTIAL_FILES)


class TestRefresh:
    def test_stores_assets_at_root(self, builder):
        stored = builder.add_essential_files()

        assert "rustdoc-" + PARSED + ".css" in stored
        assert "FiraSans-Regular.woff" in stored
        assert len(stored) == len(ESSENTIAL_FILES)
        for name in stored:
            assert builder.store.exists(name)
        mime, content = builder.store.get(f"main-{PARSED}.js")
        assert mime == "application/javascript"
        assert content == b"main"

    def test_records_toolchain_version(self, builder, conn):
        builder.add_essential_files()
        assert get_config(conn, TOOLCHAIN_VERSION_KEY) == DEFAULT_VERSION_LINE

    def test_builds_dummy_crate_in_sandbox(self, builder, sandbox, fetcher):
        builder.add_essential_files()
        assert fetcher.calls == [(DUMMY_CRATE_NAME, "0.0.0")]
        assert sandbox.call_count == 1
        assert sandbox.call_log[0].name == f"essential-files-{PARSED}"

    def test_purges_build_dir_and_cache(self, builder):
        builder.add_essential_files()
        assert list(builder.workspace.builds_dir.iterdir()) == []
        assert list(builder.workspace.cache_dir.iterdir()) == []

    def test_stale_build_dir_is_purged_first(self, builder):
        stale = builder.workspace.builds_dir / f"essential-files-{PARSED}" / "target" / "stale"
        stale.mkdir(parents=True)
        builder.add_essential_files()
        assert not stale.exists()

    def test_failed_dummy_build(self, builder, sandbox, conn):
        sandbox.set_side_effect(lambda cmd: CommandOutput(returncode=101))
        with pytest.raises(EssentialFilesError):
            builder.add_essential_files()
        assert get_config(conn, TOOLCHAIN_VERSION_KEY) is None
        assert list(builder.workspace.builds_dir.iterdir()) == []

    def test_missing_asset_aborts(self, builder, rustdoc, conn):
        def without_logo(command):
            output = rustdoc(command)
            doc = command.mounts[1].host_path / "x86_64-unknown-linux-gnu" / "doc"
            (doc / f"rust-logo-{PARSED}.png").unlink()
            return output

        builder.sandbox.set_side_effect(without_logo)
        with pytest.raises(EssentialFilesError, match="rust-logo"):
            builder.add_essential_files()
        assert builder.store.list_paths() == []
        assert get_config(conn, TOOLCHAIN_VERSION_KEY) is None
        assert list(builder.workspace.builds_dir.iterdir()) == []

    def test_version_change_renames_assets(self, builder, toolchain):
        toolchain.version_line = "1.0 (abc)"
        builder.pipeline.build_package("foo", "1.0.0")
        toolchain.version_line = "1.1 (def)"
        builder.pipeline.build_package("foo", "1.0.1")

        assert builder.store.exists("rustdoc-1.0-abc.css")
        assert builder.store.exists("rustdoc-1.1-def.css")
        assert builder.store.exists("FiraSans-Medium.woff")
        dummy_builds = [c for c in builder.sandbox.call_log if c.name.startswith("essential-files-")]
        assert [c.name for c in dummy_builds] == ["essential-files-1.0-abc", "essential-files-1.1-def"]
