"""
Tests for the doc publisher and the documentation copy filter.
"""

from pathlib import Path

from docbuilder.adapters.shell.filesystem import copy_doc_dir, list_files, purge
from docbuilder.core.persistence.storage import ArtifactStore
from docbuilder.core.services.doc_publisher import DocPublisher, rustdoc_prefix

VERSION = "20191001-1.40.0-nightly-abcdef123"


def _doc_tree(target_dir: Path, target: str) -> Path:
    doc = target_dir / target / "doc"
    (doc / "foo").mkdir(parents=True)
    (doc / "foo" / "index.html").write_text("<h1>foo</h1>")
    (doc / "src" / "foo").mkdir(parents=True)
    (doc / "src" / "foo" / "lib.rs.html").write_text("source")
    for shared in (".lock", "COPYRIGHT.txt", "FiraSans-Regular.woff", "jquery.js", "playpen.js",
                   "main.js", f"rustdoc-{VERSION}.css", f"storage-{VERSION}.js"):
        (doc / shared).write_text("shared")
    (doc / "search-index.js").write_text("var searchIndex = {};")
    (doc / "rustdoc.css").write_text("unversioned")
    return doc


class TestCopyDocDir:
    def test_skips_shared_files(self, tmp_path: Path):
        doc = _doc_tree(tmp_path / "target", "x86_64-unknown-linux-gnu")
        dest = tmp_path / "out"

        copy_doc_dir(doc, dest, VERSION)

        assert list_files(dest) == [
            "foo/index.html",
            "rustdoc.css",
            "search-index.js",
            "src/foo/lib.rs.html",
        ]

    def test_directories_copied_whole(self, tmp_path: Path):
        doc = _doc_tree(tmp_path / "target", "x86_64-unknown-linux-gnu")
        (doc / "foo" / "main.js").write_text("nested files are kept")
        dest = tmp_path / "out"
        copy_doc_dir(doc, dest, VERSION)
        assert (dest / "foo" / "main.js").is_file()


class TestDocPublisher:
    def test_default_target_has_no_target_segment(self, tmp_path: Path, conn):
        publisher = DocPublisher(tmp_path / "dest", ArtifactStore(conn))
        assert publisher.destination_for("foo", "1.0.0", "x86_64-unknown-linux-gnu", True) == (
            tmp_path / "dest" / "foo" / "1.0.0"
        )
        assert publisher.destination_for("foo", "1.0.0", "i686-pc-windows-msvc", False) == (
            tmp_path / "dest" / "foo" / "1.0.0" / "i686-pc-windows-msvc"
        )

    def test_publish_and_upload(self, tmp_path: Path, conn):
        store = ArtifactStore(conn)
        publisher = DocPublisher(tmp_path / "dest", store)
        target_dir = tmp_path / "target"
        _doc_tree(target_dir, "x86_64-unknown-linux-gnu")
        _doc_tree(target_dir, "i686-pc-windows-msvc")

        publisher.publish(target_dir, "foo", "1.0.0", "x86_64-unknown-linux-gnu", True, VERSION)
        publisher.publish(target_dir, "foo", "1.0.0", "i686-pc-windows-msvc", False, VERSION)
        stored = publisher.upload("foo", "1.0.0")

        assert "foo/index.html" in stored
        assert "i686-pc-windows-msvc/foo/index.html" in stored
        assert store.exists(f"{rustdoc_prefix('foo', '1.0.0')}/foo/index.html")
        assert store.exists("rustdoc/foo/1.0.0/i686-pc-windows-msvc/foo/index.html")
        assert store.get("rustdoc/foo/1.0.0/foo/index.html") == ("text/html", b"<h1>foo</h1>")


class TestPurge:
    def test_purge_directory_and_file(self, tmp_path: Path):
        (tmp_path / "dir" / "sub").mkdir(parents=True)
        (tmp_path / "file").write_text("x")
        purge(tmp_path / "dir")
        purge(tmp_path / "file")
        purge(tmp_path / "missing")
        assert list(tmp_path.iterdir()) == []
