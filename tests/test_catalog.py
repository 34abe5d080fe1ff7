"""Tests for catalog entries and the catalog file."""

import json

import pytest

from workshop_sync.catalog import (
    Catalog,
    CatalogEntry,
    CatalogError,
    CatalogLocked,
    CatalogStore,
    FailureRecord,
)


class TestCatalogEntry:
    pytestmark = pytest.mark.unit

    def test_roundtrip_preserves_everything(self):
        entry = CatalogEntry(
            "450814997",
            name="CBA_A3",
            local_version=1700,
            up_to_date=True,
            blacklisted=True,
            failure=FailureRecord("Access Denied", failed_at="2026-01-01T00:00:00+00:00"),
            remote_metadata={"result": 1, "time_updated": 1700, "file_size": "2048"},
        )

        assert CatalogEntry.from_dict(entry.to_dict()) == entry

    def test_default_url(self):
        assert CatalogEntry("12").url.endswith("?id=12")

    def test_remote_fields(self):
        entry = CatalogEntry("1", remote_metadata={"result": 1, "time_updated": 5, "file_size": "2048"})

        assert entry.remote_version == 5
        assert entry.expected_size == 2048
        assert entry.remote_missing is False

    def test_remote_fields_absent(self):
        entry = CatalogEntry("1")

        assert entry.remote_version is None
        assert entry.expected_size is None
        assert entry.remote_missing is False

    def test_zero_size_is_unknown(self):
        assert CatalogEntry("1", remote_metadata={"file_size": "0"}).expected_size is None

    def test_not_found_result(self):
        assert CatalogEntry("1", remote_metadata={"result": 9}).remote_missing is True

    def test_fallback_entry(self):
        entry = CatalogEntry.fallback("77")

        assert entry.name.startswith("Unknown Mod")
        assert entry.local_version == 0
        assert entry.up_to_date is False


class TestCatalogStore:
    def test_missing_file_is_empty_catalog(self, tmp_path):
        assert len(CatalogStore(tmp_path).load()) == 0

    def test_save_and_load(self, tmp_path):
        store = CatalogStore(tmp_path / "data")
        catalog = Catalog([CatalogEntry("2", name="B"), CatalogEntry("1", name="A")])

        store.save(catalog)
        loaded = store.load()

        assert [e.mod_id for e in loaded] == ["2", "1"]
        assert loaded.get("2").name == "B"

    def test_file_is_json_array(self, tmp_path):
        store = CatalogStore(tmp_path)
        store.save(Catalog([CatalogEntry("1")]))

        data = json.loads(store.catalog_file.read_text())

        assert isinstance(data, list)
        assert data[0]["id"] == "1"

    def test_save_is_deterministic(self, tmp_path):
        store = CatalogStore(tmp_path)
        catalog = Catalog([CatalogEntry("1", remote_metadata={"b": 1, "a": 2})])

        store.save(catalog)
        first = store.catalog_file.read_bytes()
        store.save(store.load())

        assert store.catalog_file.read_bytes() == first

    def test_no_temp_file_left(self, tmp_path):
        store = CatalogStore(tmp_path)
        store.save(Catalog([CatalogEntry("1")]))

        assert sorted(p.name for p in tmp_path.iterdir()) == ["masterlist.json"]

    def test_invalid_json(self, tmp_path):
        store = CatalogStore(tmp_path)
        store.catalog_file.write_text("{not json")

        with pytest.raises(CatalogError, match="Invalid catalog"):
            store.load()

    def test_not_an_array(self, tmp_path):
        store = CatalogStore(tmp_path)
        store.catalog_file.write_text("{}")

        with pytest.raises(CatalogError, match="JSON array"):
            store.load()

    def test_entry_without_id(self, tmp_path):
        store = CatalogStore(tmp_path)
        store.catalog_file.write_text('[{"name": "x"}]')

        with pytest.raises(CatalogError, match="Malformed"):
            store.load()

    def test_second_lock_fails_fast(self, tmp_path):
        store = CatalogStore(tmp_path)
        other = CatalogStore(tmp_path)

        with store.lock():
            with pytest.raises(CatalogLocked):
                with other.lock():
                    pass

        with other.lock():
            pass
