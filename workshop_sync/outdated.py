"""Selection of catalog entries that need an install attempt."""

import logging
from dataclasses import dataclass
from typing import Iterable

from .catalog import Catalog

log = logging.getLogger(__name__)

REASON_MISSING = "missing"
REASON_NO_METADATA = "no-metadata"
REASON_OUTDATED = "outdated"


@dataclass
class WorkItem:
    mod_id: str
    target_version: int | None
    reason: str


def resolve_outdated(catalog: Catalog, disk_ids: Iterable[str]) -> list[WorkItem]:
    """
    Compute the install work list, in catalog order.

    Blacklisted entries are never selected. Otherwise an entry is selected
    when its folder is missing on disk, when its remote version is unknown,
    or when the remote version is strictly newer than the installed one.
    """
    on_disk = {str(i) for i in disk_ids}
    work: list[WorkItem] = []

    for entry in catalog:
        if entry.blacklisted:
            log.info("Skipping blacklisted mod %s (%s)", entry.mod_id, entry.name)
            continue

        remote_version = entry.remote_version

        if entry.mod_id not in on_disk:
            reason = REASON_MISSING
        elif remote_version is None:
            reason = REASON_NO_METADATA
        elif remote_version > entry.local_version:
            reason = REASON_OUTDATED
        else:
            continue

        work.append(WorkItem(entry.mod_id, remote_version, reason))

    return work
