"""Test doubles for the Steam endpoints and modlist fixtures."""

from pathlib import Path

from workshop_sync.steamcmd import InstallResult

MB = 1_000_000


def modlist_html(mods: list[tuple[str, str]]) -> str:
    """Render a launcher preset export with (mod_id, display name) rows."""
    rows = "\n".join(
        f"""
        <tr data-type="ModContainer">
          <td data-type="DisplayName">{name}</td>
          <td><span class="from-steam">Steam</span></td>
          <td><a href="https://steamcommunity.com/sharedfiles/filedetails/?id={mod_id}"
                 data-type="Link">https://steamcommunity.com/sharedfiles/filedetails/?id={mod_id}</a></td>
        </tr>"""
        for mod_id, name in mods
    )
    return f"""<?xml version="1.0" encoding="utf-8"?>
<html>
  <head><meta name="arma:Type" content="preset" /></head>
  <body>
    <h1>Arma 3 Mods</h1>
    <div class="mod-list"><table>{rows}
    </table></div>
  </body>
</html>"""


def details(mod_id: str, time_updated: int = 1_700_000_000, file_size: int = 0, result: int = 1) -> dict:
    data = {"publishedfileid": mod_id, "result": result}
    if result == 1:
        data.update({"title": f"Mod {mod_id}", "time_updated": time_updated, "file_size": str(file_size)})
    return data


class FakeFetcher:
    """Stands in for MetadataFetcher with canned details per id."""

    def __init__(self, metadata: dict[str, dict | None] | None = None):
        self.metadata = metadata or {}
        self.calls: list[str] = []

    def fetch(self, mod_id: str) -> dict | None:
        self.calls.append(mod_id)
        return self.metadata.get(mod_id)


class FakeInstaller:
    """
    Stands in for SteamCmd. Successful installs write ``size`` bytes into
    ``<mods_dir>/<id>`` so the size check has something to measure.
    """

    def __init__(self, mods_dir: Path, sizes: dict[str, int] | None = None,
                 errors: dict[str, str] | None = None):
        self.mods_dir = mods_dir
        self.sizes = sizes or {}
        self.errors = errors or {}
        self.calls: list[str] = []

    def install(self, mod_id: str, validate: bool = True) -> InstallResult:
        self.calls.append(mod_id)
        if mod_id in self.errors:
            text = self.errors[mod_id]
            return InstallResult(output=text, returncode=1, error=text)

        target = self.mods_dir / mod_id
        (target / "addons").mkdir(parents=True, exist_ok=True)
        (target / "addons" / "data.pbo").write_bytes(b"\0" * self.sizes.get(mod_id, 10))
        return InstallResult(output=f"Success. Downloaded item {mod_id}", returncode=0)


