"""Catalog persistence for tracked workshop mods."""

import fcntl
import json
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

CATALOG_FILENAME = "masterlist.json"

WORKSHOP_URL = "https://steamcommunity.com/sharedfiles/filedetails/?id={mod_id}"

PLACEHOLDER_NAME = "Unknown Mod"
FALLBACK_NAME = "Unknown Mod (added by install)"
PLACEHOLDER_NAMES = frozenset({PLACEHOLDER_NAME, FALLBACK_NAME})


class CatalogError(Exception):
    """Raised when catalog file operations fail."""

    pass


class CatalogLocked(CatalogError):
    """Raised when another process already owns the catalog."""

    pass


# Steam EResult code returned for deleted or never-existing workshop items
RESULT_FILE_NOT_FOUND = 9


def _as_int(metadata: dict[str, Any] | None, key: str) -> int | None:
    if not metadata:
        return None
    value = metadata.get(key)
    # Steam returns some numeric fields as strings
    if isinstance(value, str):
        value = value.strip()
        return int(value) if value.isdigit() else None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def is_placeholder_name(name: str | None) -> bool:
    return not name or name in PLACEHOLDER_NAMES


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FailureRecord:
    """Why an entry was blacklisted."""

    def __init__(self, error: str, failed_at: str | None = None):
        self.error = error
        self.failed_at = failed_at or utc_now_iso()

    @staticmethod
    def timestamp(epoch: float) -> str:
        return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()

    def to_dict(self) -> dict[str, str]:
        return {"failed_at": self.failed_at, "error": self.error}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FailureRecord":
        return cls(error=data.get("error", ""), failed_at=data.get("failed_at"))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FailureRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"FailureRecord(error={self.error!r}, failed_at={self.failed_at!r})"


class CatalogEntry:
    """Represents the tracked state of one workshop mod."""

    def __init__(
        self,
        mod_id: str,
        name: str = PLACEHOLDER_NAME,
        url: str = "",
        local_version: int = 0,
        up_to_date: bool = False,
        blacklisted: bool = False,
        failure: FailureRecord | None = None,
        remote_metadata: dict[str, Any] | None = None,
    ):
        self.mod_id = str(mod_id)
        self.name = name
        self.url = url or WORKSHOP_URL.format(mod_id=self.mod_id)
        self.local_version = local_version
        self.up_to_date = up_to_date
        self.blacklisted = blacklisted
        self.failure = failure
        self.remote_metadata = remote_metadata

    @classmethod
    def fallback(cls, mod_id: str) -> "CatalogEntry":
        """Entry for an id requested for install before any modlist named it."""
        return cls(mod_id=mod_id, name=FALLBACK_NAME)

    def copy(self) -> "CatalogEntry":
        return CatalogEntry.from_dict(self.to_dict())

    @property
    def remote_version(self) -> int | None:
        """Remote ``time_updated`` from the last metadata fetch, if known."""
        return _as_int(self.remote_metadata, "time_updated")

    @property
    def expected_size(self) -> int | None:
        """Remote payload size in bytes, if known."""
        size = _as_int(self.remote_metadata, "file_size")
        return size if size else None

    @property
    def remote_missing(self) -> bool:
        """True when Steam reported the item as not found."""
        return _as_int(self.remote_metadata, "result") == RESULT_FILE_NOT_FOUND

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.mod_id,
            "name": self.name,
            "url": self.url,
            "local_version": self.local_version,
            "up_to_date": self.up_to_date,
            "blacklisted": self.blacklisted,
            "failure": self.failure.to_dict() if self.failure else None,
            "remote_metadata": self.remote_metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CatalogEntry":
        failure = data.get("failure")
        return cls(
            mod_id=str(data["id"]),
            name=data.get("name") or PLACEHOLDER_NAME,
            url=data.get("url", ""),
            local_version=int(data.get("local_version") or 0),
            up_to_date=bool(data.get("up_to_date", False)),
            blacklisted=bool(data.get("blacklisted", False)),
            failure=FailureRecord.from_dict(failure) if failure else None,
            remote_metadata=data.get("remote_metadata"),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CatalogEntry):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"CatalogEntry(mod_id={self.mod_id!r}, name={self.name!r})"


class Catalog:
    """Ordered set of catalog entries, unique by mod id."""

    def __init__(self, entries: list[CatalogEntry] | None = None):
        self.entries: dict[str, CatalogEntry] = {}
        for entry in entries or []:
            self.entries[entry.mod_id] = entry

    def __contains__(self, mod_id: object) -> bool:
        return mod_id in self.entries

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(list(self.entries.values()))

    def __len__(self) -> int:
        return len(self.entries)

    def ids(self) -> set[str]:
        return set(self.entries)

    def get(self, mod_id: str) -> CatalogEntry | None:
        return self.entries.get(str(mod_id))

    def add(self, entry: CatalogEntry) -> None:
        """Add or replace an entry."""
        self.entries[entry.mod_id] = entry

    def remove(self, mod_id: str) -> CatalogEntry | None:
        """Explicitly drop an entry. The reconciliation engine never calls this."""
        return self.entries.pop(str(mod_id), None)

    def to_list(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries.values()]

    @classmethod
    def from_list(cls, data: list[dict[str, Any]]) -> "Catalog":
        return cls([CatalogEntry.from_dict(item) for item in data])


class CatalogStore:
    """Reads and overwrites the catalog file as a whole.

    One reconciliation process owns the catalog at a time. Callers that
    mutate it should hold ``lock()`` for the duration of their run; a second
    holder fails fast with CatalogLocked instead of interleaving writes.
    """

    def __init__(self, data_dir: Path, filename: str = CATALOG_FILENAME):
        self.data_dir = Path(data_dir)
        self.catalog_file = self.data_dir / filename
        self.lock_file = self.catalog_file.with_name(self.catalog_file.name + ".lock")

    def exists(self) -> bool:
        """Check if catalog file exists."""
        return self.catalog_file.exists()

    def load(self) -> Catalog:
        """Load the catalog. A missing file is an empty catalog."""
        if not self.catalog_file.exists():
            return Catalog()

        try:
            with open(self.catalog_file, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise CatalogError(f"Invalid catalog file {self.catalog_file}: {e}")
        except OSError as e:
            raise CatalogError(f"Cannot read catalog file {self.catalog_file}: {e}")

        if not isinstance(data, list):
            raise CatalogError(f"Catalog file {self.catalog_file} must hold a JSON array")

        try:
            return Catalog.from_list(data)
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Malformed catalog entry in {self.catalog_file}: {e}")

    def save(self, catalog: Catalog) -> None:
        """Overwrite the catalog file with the full catalog."""
        tmp_path = self.catalog_file.with_name(f".{self.catalog_file.name}.tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(catalog.to_list(), f, indent=2)
                f.write("\n")
            os.replace(tmp_path, self.catalog_file)
        except OSError as e:
            raise CatalogError(f"Cannot write catalog file {self.catalog_file}: {e}")

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold exclusive ownership of the catalog."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_file, os.O_CREAT | os.O_WRONLY, 0o600)
        except OSError as e:
            raise CatalogError(f"Cannot open lock file {self.lock_file}: {e}")

        try:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                raise CatalogLocked(
                    f"Catalog {self.catalog_file} is in use by another process"
                )
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
