"""Tests for stale folder cleanup, size measurement and key propagation."""

import pytest

from workshop_sync.cleanup import (
    compute_stale,
    copy_keys,
    directory_size,
    list_disk_ids,
    remove_stale,
)


class TestComputeStale:
    pytestmark = pytest.mark.unit

    def test_only_undesired_numeric_folders(self):
        assert compute_stale({"1", "3"}, {"1", "2", "3"}) == ["2"]

    def test_non_numeric_never_stale(self):
        assert compute_stale(set(), {"@ace", "keys", "12a", "1.5", "42"}) == ["42"]

    def test_unicode_digits_are_not_ids(self):
        assert compute_stale(set(), {"١٢"}) == []

    def test_nothing_stale(self):
        assert compute_stale({"1"}, {"1"}) == []


class TestRemoveStale:
    def test_removes_recursively(self, tmp_path):
        (tmp_path / "2" / "addons").mkdir(parents=True)
        (tmp_path / "2" / "addons" / "x.pbo").write_bytes(b"x")
        (tmp_path / "1").mkdir()

        report = remove_stale(tmp_path, ["2"])

        assert report.done == ["2"]
        assert report.errors == []
        assert not (tmp_path / "2").exists()
        assert (tmp_path / "1").exists()

    def test_failure_does_not_stop_the_rest(self, tmp_path, monkeypatch):
        (tmp_path / "2").mkdir()
        (tmp_path / "3").mkdir()

        import shutil as real_shutil
        real_rmtree = real_shutil.rmtree

        def flaky_rmtree(path, *args, **kwargs):
            if path.name == "2":
                raise PermissionError("denied")
            return real_rmtree(path, *args, **kwargs)

        monkeypatch.setattr("workshop_sync.cleanup.shutil.rmtree", flaky_rmtree)

        report = remove_stale(tmp_path, ["2", "3"])

        assert report.done == ["3"]
        assert len(report.errors) == 1
        assert "denied" in report.errors[0]
        assert (tmp_path / "2").exists()
        assert not (tmp_path / "3").exists()


class TestDiskHelpers:
    def test_list_disk_ids_only_directories(self, tmp_path):
        (tmp_path / "1").mkdir()
        (tmp_path / "2.txt").write_text("x")

        assert list_disk_ids(tmp_path) == {"1"}

    def test_list_disk_ids_missing_root(self, tmp_path):
        assert list_disk_ids(tmp_path / "nope") == set()

    def test_directory_size_recursive(self, tmp_path):
        (tmp_path / "a" / "b").mkdir(parents=True)
        (tmp_path / "a" / "one.bin").write_bytes(b"\0" * 100)
        (tmp_path / "a" / "b" / "two.bin").write_bytes(b"\0" * 50)

        assert directory_size(tmp_path / "a") == 150

    def test_directory_size_missing(self, tmp_path):
        assert directory_size(tmp_path / "missing") == 0


class TestCopyKeys:
    def test_copies_and_overwrites(self, tmp_path):
        mods = tmp_path / "mods"
        keys = tmp_path / "keys"
        (mods / "1" / "keys").mkdir(parents=True)
        (mods / "1" / "keys" / "ace.bikey").write_text("new")
        (mods / "2").mkdir()
        keys.mkdir()
        (keys / "ace.bikey").write_text("old")

        report = copy_keys(mods, keys)

        assert report.done == ["ace.bikey"]
        assert (keys / "ace.bikey").read_text() == "new"

    def test_creates_destination(self, tmp_path):
        (tmp_path / "mods" / "1" / "keys").mkdir(parents=True)
        (tmp_path / "mods" / "1" / "keys" / "cba.bikey").write_text("k")

        copy_keys(tmp_path / "mods", tmp_path / "server" / "keys")

        assert (tmp_path / "server" / "keys" / "cba.bikey").exists()

    def test_missing_mods_root_is_noop(self, tmp_path):
        report = copy_keys(tmp_path / "nope", tmp_path / "keys")

        assert report.done == []
        assert report.errors == []

    def test_per_file_error_is_collected(self, tmp_path, monkeypatch):
        (tmp_path / "mods" / "1" / "keys").mkdir(parents=True)
        (tmp_path / "mods" / "1" / "keys" / "a.bikey").write_text("a")
        (tmp_path / "mods" / "1" / "keys" / "b.bikey").write_text("b")

        import shutil as real_shutil
        real_copyfile = real_shutil.copyfile

        def flaky_copyfile(src, dest, *args, **kwargs):
            if src.name == "a.bikey":
                raise OSError("read-only file system")
            return real_copyfile(src, dest, *args, **kwargs)

        monkeypatch.setattr("workshop_sync.cleanup.shutil.copyfile", flaky_copyfile)

        report = copy_keys(tmp_path / "mods", tmp_path / "keys")

        assert report.done == ["b.bikey"]
        assert len(report.errors) == 1
