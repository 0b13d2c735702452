"""
Tests for persistence — database records, artifact store, completion cache, lock file.
"""

import json
from pathlib import Path

import pytest

from docbuilder.core.models.build import BuildResult
from docbuilder.core.models.cargo import CargoMetadata
from docbuilder.core.persistence.completion_cache import CompletionCache
from docbuilder.core.persistence.database import (
    add_build_into_database,
    add_package_into_database,
    get_config,
    recorded_releases,
    set_config,
)
from docbuilder.core.persistence.lock_file import QueueLock
from docbuilder.core.persistence.storage import ArtifactStore, guess_mime
from docbuilder.core.services.limits import limits_for, set_override

from tests.fakes import cargo_metadata_json


def _result(name="foo", version="1.0.0", successful=True):
    return BuildResult(
        toolchain_version="rustc 1.40.0-nightly (abcdef123 2019-10-01)",
        service_version="docbuilder 0.1.0",
        build_log="[INFO] ok\n",
        successful=successful,
        target="x86_64-unknown-linux-gnu",
        cargo_metadata=CargoMetadata.from_json(cargo_metadata_json(name, version, [("libc", "0.2.62")])),
    )


class TestConfig:
    def test_upsert(self, conn):
        set_config(conn, "rustc_version", "1.0 (abc)")
        set_config(conn, "rustc_version", "1.1 (def)")
        assert get_config(conn, "rustc_version") == "1.1 (def)"

    def test_missing(self, conn):
        assert get_config(conn, "nope") is None


class TestRecords:
    def test_add_package(self, conn, tmp_path: Path):
        result = _result()
        release_id = add_package_into_database(
            conn, result.cargo_metadata.root(), tmp_path, result,
            ["Cargo.toml"], ["i686-pc-windows-msvc"], True, False,
        )

        row = conn.execute("SELECT * FROM releases WHERE id = ?", (release_id,)).fetchone()
        assert row["description"] == "The foo crate"
        assert row["target_name"] == "foo"
        assert row["rustdoc_status"] == 1
        assert json.loads(row["dependencies"]) == [["libc", "^0.2.62", "normal"]]
        assert json.loads(row["doc_targets"]) == ["i686-pc-windows-msvc"]
        crate = conn.execute("SELECT * FROM crates WHERE name = 'foo'").fetchone()
        assert crate["latest_version"] == "1.0.0"

    def test_rerecord_keeps_release_id(self, conn, tmp_path: Path):
        result = _result()
        package = result.cargo_metadata.root()
        first = add_package_into_database(conn, package, tmp_path, result, None, [], False, False)
        second = add_package_into_database(conn, package, tmp_path, result, ["a"], [], True, False)
        assert first == second
        assert conn.execute("SELECT COUNT(*) FROM releases").fetchone()[0] == 1

    def test_latest_version(self, conn, tmp_path: Path):
        for version in ("1.2.0", "1.10.0", "1.9.0", "2.0.0-beta.1"):
            result = _result(version=version)
            add_package_into_database(conn, result.cargo_metadata.root(), tmp_path, result, None, [], True, False)
        crate = conn.execute("SELECT latest_version FROM crates WHERE name = 'foo'").fetchone()
        assert crate["latest_version"] == "2.0.0-beta.1"
        assert len(recorded_releases(conn)) == 4

    def test_add_build(self, conn, tmp_path: Path):
        result = _result(successful=False)
        release_id = add_package_into_database(
            conn, result.cargo_metadata.root(), tmp_path, result, None, [], False, False
        )
        add_build_into_database(conn, release_id, result)
        row = conn.execute("SELECT * FROM builds").fetchone()
        assert row["rid"] == release_id
        assert row["build_status"] == 0
        assert row["docbuilder_version"] == "docbuilder 0.1.0"
        assert row["output"] == "[INFO] ok\n"


class TestArtifactStore:
    def test_put_tree(self, conn, tmp_path: Path):
        (tmp_path / "src" / "a").mkdir(parents=True)
        (tmp_path / "src" / "a" / "lib.rs").write_text("fn main() {}")
        (tmp_path / "src" / "Cargo.toml").write_text("[package]")
        store = ArtifactStore(conn)

        stored = store.put_tree("sources/foo/1.0.0", tmp_path / "src")

        assert stored == ["Cargo.toml", "a/lib.rs"]
        assert store.get("sources/foo/1.0.0/a/lib.rs") == ("text/rust", b"fn main() {}")
        assert store.list_paths("sources/foo/") == [
            "sources/foo/1.0.0/Cargo.toml",
            "sources/foo/1.0.0/a/lib.rs",
        ]

    def test_empty_prefix(self, conn, tmp_path: Path):
        (tmp_path / "rustdoc-1.0-abc.css").write_text("body {}")
        store = ArtifactStore(conn)
        assert store.put_tree("", tmp_path) == ["rustdoc-1.0-abc.css"]
        assert store.exists("rustdoc-1.0-abc.css")

    def test_reupload_replaces(self, conn, tmp_path: Path):
        (tmp_path / "f.txt").write_text("one")
        store = ArtifactStore(conn)
        store.put_tree("p", tmp_path)
        (tmp_path / "f.txt").write_text("two")
        store.put_tree("p", tmp_path)
        assert store.get("p/f.txt")[1] == b"two"

    def test_missing_directory(self, conn, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            ArtifactStore(conn).put_tree("p", tmp_path / "nope")

    def test_like_wildcards_are_literal(self, conn, tmp_path: Path):
        (tmp_path / "x").write_text("x")
        store = ArtifactStore(conn)
        store.put_tree("a_b", tmp_path)
        store.put_tree("axb", tmp_path)
        assert store.list_paths("a_b/") == ["a_b/x"]

    @pytest.mark.parametrize("name,mime", [
        ("index.html", "text/html"),
        ("main.js", "application/javascript"),
        ("font.woff", "application/font-woff"),
        ("lib.rs", "text/rust"),
        ("blob.unknownext", "application/octet-stream"),
    ])
    def test_guess_mime(self, name, mime):
        assert guess_mime(Path(name)) == mime


class TestCompletionCache:
    def test_save_and_load(self, tmp_path: Path):
        path = tmp_path / "cache"
        cache = CompletionCache(path)
        cache.add_to_cache("foo", "1.0.0")
        cache.add_to_cache("bar", "0.1.0")
        cache.save_cache()

        assert path.read_text() == "bar-0.1.0\nfoo-1.0.0\n"
        loaded = CompletionCache(path)
        loaded.load()
        assert "foo-1.0.0" in loaded
        assert len(loaded) == 2

    def test_missing_file_is_empty(self, tmp_path: Path):
        cache = CompletionCache(tmp_path / "nope")
        cache.load()
        assert len(cache) == 0

    def test_should_build_defaults_to_true(self, tmp_path: Path):
        cache = CompletionCache(tmp_path / "cache")
        cache.add_to_cache("foo", "1.0.0")
        assert cache.should_build("foo", "1.0.0")

    def test_skip_if_log_exists(self, tmp_path: Path):
        cache = CompletionCache(tmp_path / "cache", skip_if_log_exists=True)
        cache.add_to_cache("foo", "1.0.0")
        assert not cache.should_build("foo", "1.0.0")
        assert cache.should_build("foo", "1.0.1")

    def test_skip_if_exists(self, conn, tmp_path: Path):
        result = _result()
        add_package_into_database(conn, result.cargo_metadata.root(), tmp_path, result, None, [], True, False)
        cache = CompletionCache(tmp_path / "cache", skip_if_exists=True)
        cache.load_database(conn)
        assert not cache.should_build("foo", "1.0.0")
        assert cache.should_build("bar", "1.0.0")

    def test_save_leaves_no_temp_files(self, tmp_path: Path):
        cache = CompletionCache(tmp_path / "state" / "cache")
        cache.add_to_cache("foo", "1.0.0")
        cache.save_cache()
        assert [p.name for p in (tmp_path / "state").iterdir()] == ["cache"]


class TestQueueLock:
    def test_lock_cycle(self, tmp_path: Path):
        lock = QueueLock(tmp_path / "docbuilder.lock")
        assert not lock.is_locked()
        lock.lock()
        assert lock.is_locked()
        lock.unlock()
        assert not lock.is_locked()

    def test_unlock_when_unlocked(self, tmp_path: Path):
        QueueLock(tmp_path / "docbuilder.lock").unlock()


class TestLimits:
    def test_defaults(self, conn):
        limits = limits_for(conn, "foo")
        assert limits.memory_bytes == 3 * 1024 * 1024 * 1024
        assert limits.network_enabled is False
        assert limits.timeout == 15 * 60
        assert limits.max_log_bytes == 100 * 1024

    def test_partial_override(self, conn):
        set_override(conn, "foo", timeout=3600)
        limits = limits_for(conn, "foo")
        assert limits.timeout == 3600
        assert limits.memory_bytes == 3 * 1024 * 1024 * 1024
        assert limits_for(conn, "bar").timeout == 15 * 60
