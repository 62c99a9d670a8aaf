"""Tests for the SiteStore filesystem layer."""

import pytest

from sitedrop.errors import Conflict


class TestRecursiveSize:
    """Tests for SiteStore.recursive_size."""

    def test_missing_directory_is_zero(self, store, tmp_path):
        """A directory that does not exist has size 0."""
        assert store.recursive_size(tmp_path / "nope") == 0

    def test_sums_nested_files(self, store, tmp_path):
        """Sizes of files at every depth are summed."""
        root = tmp_path / "tree"
        (root / "a" / "b").mkdir(parents=True)
        (root / "top.txt").write_bytes(b"12345")
        (root / "a" / "mid.txt").write_bytes(b"123")
        (root / "a" / "b" / "deep.txt").write_bytes(b"1")
        assert store.recursive_size(root) == 9

    def test_empty_directory(self, store, tmp_path):
        (tmp_path / "empty").mkdir()
        assert store.recursive_size(tmp_path / "empty") == 0


class TestRecursiveDelete:
    """Tests for SiteStore.recursive_delete."""

    def test_removes_tree(self, store, tmp_path):
        """Directory and all descendants are removed."""
        root = tmp_path / "tree"
        (root / "x").mkdir(parents=True)
        (root / "x" / "f.txt").write_text("hi")
        store.recursive_delete(root)
        assert not root.exists()

    def test_absent_is_noop(self, store, tmp_path):
        """Deleting a missing directory does nothing."""
        store.recursive_delete(tmp_path / "missing")
        store.recursive_delete(tmp_path / "missing")


class TestMove:
    """Tests for SiteStore.move."""

    def test_move_relocates(self, store, tmp_path):
        """Source moves to destination with contents."""
        src = tmp_path / "src"
        src.mkdir()
        (src / "f.txt").write_text("data")
        dst = tmp_path / "dst"

        store.move(src, dst)

        assert not src.exists()
        assert (dst / "f.txt").read_text() == "data"

    def test_existing_destination_replaced(self, store, tmp_path):
        """A stale destination is destroyed first, not merged."""
        src = tmp_path / "src"
        src.mkdir()
        (src / "new.txt").write_text("new")
        dst = tmp_path / "dst"
        dst.mkdir()
        (dst / "stale.txt").write_text("stale")

        store.move(src, dst)

        assert (dst / "new.txt").exists()
        assert not (dst / "stale.txt").exists()

    def test_missing_source_is_noop(self, store, tmp_path):
        """Moving a missing source leaves the destination untouched."""
        dst = tmp_path / "dst"
        dst.mkdir()
        store.move(tmp_path / "missing", dst)
        assert dst.exists()


class TestSiteDirs:
    """Tests for slug directory helpers."""

    def test_roots_created(self, store):
        """Both roots exist after construction."""
        assert store.sites_dir.is_dir()
        assert store.deleted_dir.is_dir()

    def test_create_site_dir(self, store):
        """A new slug directory is created under the active root."""
        site_dir = store.create_site_dir("fresh")
        assert site_dir == store.active_dir("fresh")
        assert site_dir.is_dir()

    def test_create_existing_conflicts(self, store):
        """An existing directory is never reused."""
        store.create_site_dir("taken")
        with pytest.raises(Conflict):
            store.create_site_dir("taken")

    def test_list_entries_sorted(self, store):
        site_dir = store.create_site_dir("listing")
        (site_dir / "b.txt").write_text("b")
        (site_dir / "a.txt").write_text("a")
        assert store.list_entries(site_dir) == ["a.txt", "b.txt"]
