"""Service layer - the reconciliation run, usable from the CLI or programmatically."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

from .api import MetadataFetcher, SteamWorkshopAPI
from .catalog import Catalog, CatalogEntry, CatalogError, CatalogStore
from .classify import InstallAttempt, Outcome, OutcomeKind, apply_outcome, classify, precheck
from .cleanup import compute_stale, copy_keys, directory_size, list_disk_ids, remove_stale
from .config import ConfigError, Settings
from .merge import merge_catalog
from .modlist import (
    MODPARAMS_FILENAME,
    Modlist,
    ModlistError,
    build_mod_parameters,
    parse_modlist_dir,
    write_mod_parameters,
)
from .outdated import REASON_OUTDATED, resolve_outdated
from .steamcmd import InstallResult, SteamCmd

log = logging.getLogger(__name__)

# progress callback: (event_type, percentage 0-1, message)
ProgressCallback = Callable[[str, float, str], None]


class Installer(Protocol):
    def install(self, mod_id: str, validate: bool = True) -> InstallResult: ...


class ReconciliationError(Exception):
    """Raised when a run cannot proceed at all."""

    pass


@dataclass
class RunResult:
    modlists: int = 0
    tracked: int = 0
    attempted: int = 0
    succeeded: list[str] = field(default_factory=list)
    permanent_failures: list[str] = field(default_factory=list)
    retryable_failures: list[str] = field(default_factory=list)
    skipped_blacklisted: list[str] = field(default_factory=list)
    not_attempted: list[str] = field(default_factory=list)
    stale_removed: list[str] = field(default_factory=list)
    keys_copied: int = 0
    errors: list[str] = field(default_factory=list)
    deadline_reached: bool = False

    @property
    def exit_code(self) -> int:
        if self.permanent_failures:
            return 2
        if self.retryable_failures or self.errors or self.not_attempted:
            return 1
        return 0

    def record(self, mod_id: str, outcome: Outcome) -> None:
        if outcome.succeeded:
            self.succeeded.append(mod_id)
        elif outcome.kind is OutcomeKind.PERMANENT:
            self.permanent_failures.append(mod_id)
        else:
            self.retryable_failures.append(mod_id)


def _noop_progress(event: str, pct: float, msg: str) -> None:
    pass


class ReconciliationEngine:
    """
    Keeps the catalog, Steam and the workshop folder in agreement.

    The catalog is written after every step that changes it, and after every
    single install, so an interrupted run only loses the mod in flight.
    """

    def __init__(
        self,
        settings: Settings,
        store: CatalogStore | None = None,
        fetcher: MetadataFetcher | None = None,
        installer: Installer | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.store = store or CatalogStore(settings.data_dir)
        self._fetcher = fetcher
        self._installer = installer
        self.clock = clock

    @property
    def fetcher(self) -> MetadataFetcher | None:
        if self._fetcher is None and self.settings.can_fetch_metadata:
            self._fetcher = MetadataFetcher(SteamWorkshopAPI(self.settings.steam_api_key))
        return self._fetcher

    @property
    def installer(self) -> Installer | None:
        if self._installer is None and self.settings.can_install:
            self._installer = SteamCmd(
                username=self.settings.steam_user,
                password=self.settings.steam_pass,
                steamcmd_path=self.settings.steamcmd_path,
                app_id=self.settings.app_id,
                timeout=self.settings.install_timeout,
            )
        return self._installer

    def run(
        self,
        deadline: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> RunResult:
        """
        Full reconciliation pass.

        Args:
            deadline: Optional budget in seconds. Once spent, no further
                      installs are started; the catalog stays consistent.
        """
        progress = on_progress or _noop_progress
        result = RunResult()
        stop_at = self.clock() + deadline if deadline is not None else None

        with self.store.lock():
            progress("parse", 0.0, "Parsing modlists...")
            catalog, modlists = self._parse_and_merge()
            result.modlists = len(modlists)
            result.tracked = len(catalog)

            if not len(catalog):
                log.info("No mods found after parsing")
                progress("done", 1.0, "Nothing to do")
                return result

            progress("metadata", 0.1, f"Fetching Steam details for {len(catalog)} mods...")
            self._refresh_metadata(catalog)

            progress("cleanup", 0.3, "Removing stale mod folders...")
            disk_ids = self._cleanup_stale(catalog, result)

            work = resolve_outdated(catalog, disk_ids)
            result.skipped_blacklisted = [e.mod_id for e in catalog if e.blacklisted]

            stale_flags = False
            for item in work:
                entry = catalog.get(item.mod_id)
                if item.reason == REASON_OUTDATED and entry.up_to_date:
                    entry.up_to_date = False
                    stale_flags = True
            if stale_flags:
                self.store.save(catalog)

            if not work:
                log.info("All mods are up-to-date!")
            else:
                log.info("Found %d outdated mod(s). Updating...", len(work))

            installer = self.installer
            if work and installer is None:
                log.warning("No Steam credentials configured, skipping installs")

            for i, item in enumerate(work):
                if stop_at is not None and self.clock() >= stop_at:
                    log.warning("Run deadline reached, %d mod(s) left for next run", len(work) - i)
                    result.deadline_reached = True
                    result.not_attempted.extend(w.mod_id for w in work[i:])
                    break

                entry = catalog.get(item.mod_id)
                pct = 0.35 + 0.55 * (i / len(work))
                progress("install", pct, f"Installing {entry.name} ({entry.mod_id})...")

                outcome = precheck(entry)
                if outcome is None:
                    if installer is None:
                        result.not_attempted.append(entry.mod_id)
                        continue
                    try:
                        outcome = self._attempt(installer, entry, item.target_version)
                    except Exception as e:
                        # per-item failures never abort the run
                        log.exception("Unexpected error installing mod %s", entry.mod_id)
                        outcome = Outcome(OutcomeKind.UNKNOWN, error=f"Unexpected error: {e}")
                    result.attempted += 1

                apply_outcome(entry, outcome, now=self.clock())
                result.record(entry.mod_id, outcome)
                self.store.save(catalog)

            progress("keys", 0.9, "Copying key files...")
            self._copy_keys(result)

        progress("done", 1.0, "Reconciliation complete")
        return result

    def parse(self) -> tuple[Catalog, list[Modlist]]:
        """Parse modlists, write mod parameters and merge into the catalog. No network."""
        with self.store.lock():
            return self._parse_and_merge()

    def install_one(self, mod_id: str, target_version: int | None = None) -> Outcome:
        """Install a single mod by id, tracking it as a fallback entry if unknown."""
        mod_id = str(mod_id).strip()
        if not mod_id.isdigit():
            raise ReconciliationError(f"Invalid workshop id: {mod_id!r}")

        installer = self.installer
        if installer is None:
            raise ReconciliationError("No Steam credentials configured. Set STEAM_USER and STEAM_PASS.")

        with self.store.lock():
            catalog = self.store.load()
            entry = catalog.get(mod_id)
            if entry is None:
                entry = CatalogEntry.fallback(mod_id)
                catalog.add(entry)

            log.info("Installing/updating mod [%s] (%s)...", mod_id, entry.name)
            outcome = precheck(entry) or self._attempt(installer, entry, target_version)
            apply_outcome(entry, outcome, now=self.clock())
            self.store.save(catalog)
        return outcome

    def load_catalog(self) -> Catalog:
        return self.store.load()

    def unblacklist(self, mod_id: str) -> CatalogEntry:
        """Explicitly clear the sticky blacklist flag and failure record."""
        with self.store.lock():
            catalog = self.store.load()
            entry = catalog.get(mod_id)
            if entry is None:
                raise CatalogError(f"Mod {mod_id} is not in the catalog")
            entry.blacklisted = False
            entry.failure = None
            self.store.save(catalog)
        return entry

    def forget(self, mod_id: str) -> CatalogEntry:
        """Explicitly drop a catalog entry."""
        with self.store.lock():
            catalog = self.store.load()
            entry = catalog.remove(mod_id)
            if entry is None:
                raise CatalogError(f"Mod {mod_id} is not in the catalog")
            self.store.save(catalog)
        return entry

    # -- internal helpers --

    def _parse_and_merge(self) -> tuple[Catalog, list[Modlist]]:
        try:
            source_dir = self.settings.require_modlist_dir()
            modlists = parse_modlist_dir(source_dir)
        except (ConfigError, ModlistError) as e:
            raise ReconciliationError(str(e))

        params_path = self.settings.data_dir / MODPARAMS_FILENAME
        try:
            write_mod_parameters(params_path, build_mod_parameters(modlists))
        except OSError as e:
            raise ReconciliationError(f"Cannot write {params_path}: {e}")
        log.info("Mod parameters written to %s", params_path)

        old_catalog = self.store.load()
        catalog = merge_catalog(old_catalog, [m.mods for m in modlists])
        self.store.save(catalog)
        log.info("Catalog updated at %s (%d mods)", self.store.catalog_file, len(catalog))
        return catalog, modlists

    def _refresh_metadata(self, catalog: Catalog) -> None:
        fetcher = self.fetcher
        if fetcher is None:
            log.warning("No STEAM_API_KEY configured, keeping previously fetched mod details")
            return

        for entry in catalog:
            entry.remote_metadata = fetcher.fetch(entry.mod_id)
        self.store.save(catalog)

    def _cleanup_stale(self, catalog: Catalog, result: RunResult) -> set[str]:
        """Delete stale folders and return the ids left on disk."""
        mods_dir = self.settings.mods_dir
        if mods_dir is None:
            # disk state unknown: decide on versions alone
            log.warning("No mods folder configured, skipping cleanup")
            return catalog.ids()
        if not mods_dir.is_dir():
            log.info("Mods folder not found, skipping cleanup: %s", mods_dir)
            return set()

        disk_ids = list_disk_ids(mods_dir)
        stale = compute_stale(catalog.ids(), disk_ids)
        if not stale:
            log.info("No stale mods to delete.")
            return disk_ids

        log.info("Deleting %d stale mod folder(s) not present in the catalog...", len(stale))
        report = remove_stale(mods_dir, stale)
        result.stale_removed.extend(report.done)
        result.errors.extend(report.errors)
        return list_disk_ids(mods_dir)

    def _attempt(
        self, installer: Installer, entry: CatalogEntry, target_version: int | None
    ) -> Outcome:
        raw = installer.install(entry.mod_id)
        attempt = InstallAttempt(
            output=raw.output,
            failed=raw.failed,
            error=raw.error,
            expected_size=entry.expected_size,
            target_version=target_version,
        )
        if attempt.expected_size and not attempt.failed and self.settings.mods_dir is not None:
            attempt.actual_size = directory_size(self.settings.mods_dir / entry.mod_id)
        return classify(entry, attempt)

    def _copy_keys(self, result: RunResult) -> None:
        if self.settings.keys_dir is None:
            log.warning("No keys folder configured, skipping key files copy")
            return
        if self.settings.mods_dir is None:
            log.warning("No mods folder configured, skipping key files copy")
            return

        log.info("Copying key files to %s", self.settings.keys_dir)
        report = copy_keys(self.settings.mods_dir, self.settings.keys_dir)
        result.keys_copied = len(report.done)
        result.errors.extend(report.errors)
