"""Arma 3 launcher modlist parsing and mod-parameter generation."""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from bs4 import BeautifulSoup

from .catalog import PLACEHOLDER_NAME

log = logging.getLogger(__name__)

MODPARAMS_FILENAME = "modParameters.json"

# Literal tokens consumed by the server launcher: "mods/<id>" paths joined by
# a backslash-semicolon pair.
MOD_PATH_PREFIX = "mods/"
MOD_PARAM_DELIMITER = "\\;"

# Checked in order; the first keyword found in the lowercased modlist name wins
CREATOR_DLC_KEYWORDS = [
    ("vn", ("vietnam", "prairie", "sog")),
    ("gm", ("gm", "mobilization", "germany", "coldwar")),
    ("csla", ("csla", "ironcurtain", "iron")),
    ("ws", ("ws", "sahara", "western")),
    ("spe", ("spearhead", "spe", "1944")),
    ("rf", ("rf", "reaction")),
    ("ef", ("ef", "expeditionary")),
]

_ID_RE = re.compile(r"id=(\d+)")


@dataclass
class ModCandidate:
    """One mod row parsed out of a modlist."""

    mod_id: str
    name: str
    url: str


@dataclass
class Modlist:
    """A parsed modlist file."""

    name: str
    path: Path
    mods: list[ModCandidate] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def mod_ids(self) -> list[str]:
        return [m.mod_id for m in self.mods]


class ModlistError(Exception):
    """Raised when the modlist source cannot be read."""

    pass


def parse_modlist_html(html: str) -> list[ModCandidate]:
    """
    Extract mods from a launcher preset export.

    Every table row with a link carrying ``id=<digits>`` is a mod. The name
    comes from the row's DisplayName cell, or the placeholder when empty.
    """
    soup = BeautifulSoup(html, "html.parser")
    mods = []
    for row in soup.select("table tr"):
        link = row.select_one("td a")
        if link is None:
            continue

        href = link.get("href") or ""
        match = _ID_RE.search(href)
        if not match:
            continue

        name_cell = row.select_one('td[data-type="DisplayName"]')
        name = name_cell.get_text().strip() if name_cell else ""
        mods.append(
            ModCandidate(mod_id=match.group(1), name=name or PLACEHOLDER_NAME, url=href)
        )
    return mods


def parse_modlist_file(path: Path) -> Modlist:
    """Parse a single ``.html`` modlist file."""
    try:
        html = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ModlistError(f"Cannot read modlist {path}: {e}")
    return Modlist(name=Path(path).stem, path=Path(path), mods=parse_modlist_html(html))


def parse_modlist_dir(source_dir: Path) -> list[Modlist]:
    """Parse every ``.html`` file in the source directory, sorted by filename."""
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise ModlistError(f"Modlist directory not found: {source_dir}")

    modlists = []
    for path in sorted(source_dir.iterdir()):
        if not path.is_file() or path.suffix.lower() != ".html":
            continue
        modlist = parse_modlist_file(path)
        dlc = detect_creator_dlc(modlist.key)
        if dlc:
            log.info("Parsed modlist %s (%d mods, Creator DLC: %s)", modlist.name, len(modlist.mods), dlc)
        else:
            log.info("Parsed modlist %s (%d mods)", modlist.name, len(modlist.mods))
        modlists.append(modlist)
    return modlists


def detect_creator_dlc(modlist_name: str) -> str | None:
    """Return the Creator DLC mount prefix a modlist name implies, if any."""
    name = modlist_name.lower()
    for prefix, keywords in CREATOR_DLC_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return prefix
    return None


def build_mod_parameter(modlist: Modlist) -> str:
    """Launcher ``-mod=`` value for one modlist."""
    parts = [f"{MOD_PATH_PREFIX}{mod_id}" for mod_id in modlist.mod_ids]
    dlc = detect_creator_dlc(modlist.key)
    if dlc:
        parts.insert(0, dlc)
    return MOD_PARAM_DELIMITER.join(parts)


def build_mod_parameters(modlists: list[Modlist]) -> dict[str, str]:
    return {modlist.key: build_mod_parameter(modlist) for modlist in modlists}


def write_mod_parameters(path: Path, params: dict[str, str]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(params, f, indent=2)
        f.write("\n")
