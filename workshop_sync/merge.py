"""Merge freshly parsed modlist candidates into the stored catalog."""

from typing import Iterable

from .catalog import Catalog, CatalogEntry, is_placeholder_name
from .modlist import ModCandidate


def _group_candidates(
    candidate_batches: Iterable[Iterable[ModCandidate]],
) -> dict[str, ModCandidate]:
    """
    Flatten batches into one candidate per id.

    A later sighting replaces an earlier one unless it would swap a real name
    for the placeholder. The id keeps its first-seen position.
    """
    grouped: dict[str, ModCandidate] = {}
    for batch in candidate_batches:
        for candidate in batch:
            existing = grouped.get(candidate.mod_id)
            if (
                existing is not None
                and is_placeholder_name(candidate.name)
                and not is_placeholder_name(existing.name)
            ):
                continue
            grouped[candidate.mod_id] = candidate
    return grouped


def merge_entry(candidate: ModCandidate, old: CatalogEntry | None) -> CatalogEntry:
    """Build the catalog entry for a parsed candidate, carrying old state forward."""
    entry = CatalogEntry(mod_id=candidate.mod_id, name=candidate.name, url=candidate.url)
    if old is None:
        return entry

    entry.local_version = old.local_version
    entry.up_to_date = old.up_to_date
    if old.remote_metadata is not None:
        entry.remote_metadata = old.remote_metadata

    if old.blacklisted:
        entry.blacklisted = True
        entry.failure = old.failure

    if is_placeholder_name(entry.name) and not is_placeholder_name(old.name):
        entry.name = old.name

    return entry


def merge_catalog(
    old_catalog: Catalog,
    candidate_batches: Iterable[Iterable[ModCandidate]],
) -> Catalog:
    """
    Combine parsed candidates with the existing catalog.

    Install state and remote metadata survive re-parses. Entries missing from
    every batch are retained verbatim: dropping a mod from a modlist never
    deletes its tracked state. Neither input is mutated.

    Returns a new Catalog: candidates in first-seen order, then retained
    entries in their previous order.
    """
    merged = Catalog()
    for mod_id, candidate in _group_candidates(candidate_batches).items():
        old = old_catalog.get(mod_id)
        merged.add(merge_entry(candidate, old.copy() if old else None))

    for old in old_catalog:
        if old.mod_id not in merged:
            merged.add(old.copy())

    return merged
