"""Tests for selecting mods that need an install attempt."""

import pytest

from workshop_sync.catalog import Catalog, CatalogEntry
from workshop_sync.outdated import (
    REASON_MISSING,
    REASON_NO_METADATA,
    REASON_OUTDATED,
    resolve_outdated,
)

pytestmark = pytest.mark.unit


def entry(mod_id: str, local: int = 100, remote: int | None = 100, **kwargs) -> CatalogEntry:
    meta = {"result": 1, "time_updated": remote} if remote is not None else None
    return CatalogEntry(mod_id, local_version=local, remote_metadata=meta, **kwargs)


class TestResolveOutdated:
    def test_current_mod_on_disk_is_skipped(self):
        catalog = Catalog([entry("1", local=100, remote=100)])

        assert resolve_outdated(catalog, {"1"}) == []

    def test_older_remote_is_skipped(self):
        catalog = Catalog([entry("1", local=200, remote=100)])

        assert resolve_outdated(catalog, {"1"}) == []

    def test_newer_remote_selected_with_target_version(self):
        catalog = Catalog([entry("1", local=100, remote=150)])

        work = resolve_outdated(catalog, {"1"})

        assert len(work) == 1
        assert work[0].mod_id == "1"
        assert work[0].target_version == 150
        assert work[0].reason == REASON_OUTDATED

    def test_missing_on_disk_always_selected(self):
        catalog = Catalog([entry("1", local=200, remote=100, up_to_date=True)])

        work = resolve_outdated(catalog, set())

        assert [w.reason for w in work] == [REASON_MISSING]
        assert work[0].target_version == 100

    def test_no_metadata_selected(self):
        catalog = Catalog([entry("1", remote=None, up_to_date=True)])

        work = resolve_outdated(catalog, {"1"})

        assert [w.reason for w in work] == [REASON_NO_METADATA]
        assert work[0].target_version is None

    def test_metadata_without_version_selected(self):
        catalog = Catalog([CatalogEntry("1", local_version=100, remote_metadata={"result": 9})])

        assert [w.reason for w in resolve_outdated(catalog, {"1"})] == [REASON_NO_METADATA]

    def test_blacklisted_never_selected(self):
        catalog = Catalog([entry("1", remote=None, blacklisted=True)])

        assert resolve_outdated(catalog, set()) == []

    def test_catalog_order_preserved(self):
        catalog = Catalog([entry("3", remote=None), entry("1", remote=None), entry("2", remote=None)])

        assert [w.mod_id for w in resolve_outdated(catalog, set())] == ["3", "1", "2"]

    def test_string_time_updated_is_compared_numerically(self):
        catalog = Catalog([CatalogEntry("1", local_version=99,
                                        remote_metadata={"time_updated": "100"})])

        assert [w.target_version for w in resolve_outdated(catalog, {"1"})] == [100]
