"""On-disk housekeeping for the workshop content directory."""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

log = logging.getLogger(__name__)

KEYS_DIRNAME = "keys"


@dataclass
class CleanupReport:
    done: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def list_disk_ids(mods_root: Path) -> set[str]:
    """Names of the folders directly under the workshop content directory."""
    mods_root = Path(mods_root)
    if not mods_root.is_dir():
        return set()
    return {p.name for p in mods_root.iterdir() if p.is_dir()}


def compute_stale(desired_ids: Iterable[str], disk_entries: Iterable[str]) -> list[str]:
    """
    Folders to delete: purely numeric names that are not desired.

    Anything else in the content directory is left alone.
    """
    desired = {str(i) for i in desired_ids}
    return sorted(
        name for name in disk_entries
        if name.isascii() and name.isdigit() and name not in desired
    )


def remove_stale(mods_root: Path, stale_ids: Iterable[str]) -> CleanupReport:
    """Recursively delete stale folders. One failure does not stop the rest."""
    report = CleanupReport()
    for mod_id in stale_ids:
        path = Path(mods_root) / mod_id
        try:
            shutil.rmtree(path)
            log.info("Deleted stale mod folder %s", path)
            report.done.append(mod_id)
        except FileNotFoundError:
            report.done.append(mod_id)
        except OSError as e:
            log.error("Failed to delete %s: %s", path, e)
            report.errors.append(f"{path}: {e}")
    return report


def directory_size(path: Path) -> int:
    """Total size in bytes of all regular files below ``path``."""
    path = Path(path)
    if not path.is_dir():
        return 0
    total = 0
    for item in path.rglob("*"):
        try:
            if item.is_file() and not item.is_symlink():
                total += item.stat().st_size
        except OSError:
            # vanished mid-scan
            continue
    return total


def copy_keys(mods_root: Path, keys_dir: Path) -> CleanupReport:
    """Copy every installed mod's ``keys/*`` files into ``keys_dir``, overwriting."""
    report = CleanupReport()
    mods_root = Path(mods_root)
    keys_dir = Path(keys_dir)

    if not mods_root.is_dir():
        log.info("Workshop folder not found, skipping key copy: %s", mods_root)
        return report

    try:
        keys_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        log.error("Cannot create keys folder %s: %s", keys_dir, e)
        report.errors.append(f"{keys_dir}: {e}")
        return report

    for mod_dir in sorted(mods_root.iterdir()):
        src_dir = mod_dir / KEYS_DIRNAME
        if not src_dir.is_dir():
            continue
        for src in sorted(src_dir.iterdir()):
            if not src.is_file():
                continue
            dest = keys_dir / src.name
            try:
                # content only, the keys folder may be a FUSE mount
                shutil.copyfile(src, dest)
                report.done.append(src.name)
            except OSError as e:
                log.error("Error copying %s to %s: %s", src, dest, e)
                report.errors.append(f"{src}: {e}")

    log.info("Copied %d key file(s) to %s", len(report.done), keys_dir)
    return report
