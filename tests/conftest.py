"""Shared fixtures: a throwaway server layout and settings pointing at it."""

import pytest

from workshop_sync.catalog import CatalogStore
from workshop_sync.config import Settings

from tests.helpers import modlist_html


@pytest.fixture
def layout(tmp_path):
    """Server folders: modlists, workshop content, keys and data."""
    paths = {
        "modlists": tmp_path / "mpmissions",
        "mods": tmp_path / "workshop" / "content" / "107410",
        "keys": tmp_path / "keys",
        "data": tmp_path / "data",
    }
    paths["modlists"].mkdir(parents=True)
    paths["mods"].mkdir(parents=True)
    return paths


@pytest.fixture
def settings(layout):
    return Settings(
        modlist_dir=layout["modlists"],
        data_dir=layout["data"],
        mods_dir=layout["mods"],
        keys_dir=layout["keys"],
        steam_user="user",
        steam_pass="secret",
        steam_api_key="key",
    )


@pytest.fixture
def store(layout):
    return CatalogStore(layout["data"])


@pytest.fixture
def write_modlist(layout):
    def _write(name: str, mods: list[tuple[str, str]]):
        path = layout["modlists"] / f"{name}.html"
        path.write_text(modlist_html(mods), encoding="utf-8")
        return path

    return _write
