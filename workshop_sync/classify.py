"""Install outcome classification.

Decides what an install attempt means for a catalog entry: success, a
permanent failure that blacklists the mod, or a retryable failure. steamcmd
only reports errors as free text, so failures are matched against an ordered
rule list. Permanent rules are checked before transient ones; text matching
neither is treated as retryable so unexpected wording never bans a mod.
"""

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum

from .catalog import CatalogEntry, FailureRecord

log = logging.getLogger(__name__)

SIZE_TOLERANCE_PERCENT = 10
SIZE_MISMATCH = "size mismatch"
REMOTE_NOT_FOUND = "item not found on Steam Workshop (result 9)"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    PERMANENT = "permanent"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in (OutcomeKind.TRANSIENT, OutcomeKind.UNKNOWN)


@dataclass(frozen=True)
class ErrorRule:
    pattern: re.Pattern
    kind: OutcomeKind
    label: str


def _rule(pattern: str, kind: OutcomeKind, label: str) -> ErrorRule:
    return ErrorRule(re.compile(pattern, re.IGNORECASE), kind, label)


# Evaluated top to bottom, first match wins
ERROR_RULES: list[ErrorRule] = [
    _rule(r"file not found", OutcomeKind.PERMANENT, "item missing"),
    _rule(r"item not found", OutcomeKind.PERMANENT, "item missing"),
    _rule(r"access denied", OutcomeKind.PERMANENT, "access denied"),
    _rule(r"invalid (item|published ?file)", OutcomeKind.PERMANENT, "invalid item"),
    _rule(r"\bbanned\b", OutcomeKind.PERMANENT, "item banned"),
    _rule(r"\(failure\)", OutcomeKind.PERMANENT, "unrecoverable failure"),
    _rule(r"login failure|invalid password|not logged on|steam ?guard|two-factor",
          OutcomeKind.TRANSIENT, "authentication"),
    _rule(r"connection", OutcomeKind.TRANSIENT, "connection"),
    _rule(r"time(d)? ?out", OutcomeKind.TRANSIENT, "timeout"),
    _rule(r"rate ?limit", OutcomeKind.TRANSIENT, "rate limit"),
    _rule(r"service unavailable", OutcomeKind.TRANSIENT, "service unavailable"),
    _rule(r"locking failed|disk write failure", OutcomeKind.TRANSIENT, "local disk"),
    _rule(SIZE_MISMATCH, OutcomeKind.TRANSIENT, "size mismatch"),
]


@dataclass
class InstallAttempt:
    """What the installer and the size check reported for one mod."""

    output: str = ""
    failed: bool = False
    error: str | None = None
    actual_size: int | None = None
    expected_size: int | None = None
    target_version: int | None = None

    @property
    def message(self) -> str:
        return self.error or self.output


@dataclass
class Outcome:
    kind: OutcomeKind
    error: str | None = None
    label: str | None = None
    target_version: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS


def match_error(text: str) -> ErrorRule | None:
    for rule in ERROR_RULES:
        if rule.pattern.search(text):
            return rule
    return None


def size_within_tolerance(actual: int, expected: int) -> bool:
    """Whether ``actual`` is within +/-10% of ``expected`` (bounds inclusive)."""
    low = 100 - SIZE_TOLERANCE_PERCENT
    high = 100 + SIZE_TOLERANCE_PERCENT
    return expected * low <= actual * 100 <= expected * high


def precheck(entry: CatalogEntry) -> Outcome | None:
    """Fail fast for mods Steam already reports as gone."""
    if entry.remote_missing:
        return Outcome(OutcomeKind.PERMANENT, error=REMOTE_NOT_FOUND, label="item missing")
    return None


def classify_failure(message: str) -> Outcome:
    rule = match_error(message)
    if rule is None:
        return Outcome(OutcomeKind.UNKNOWN, error=message)
    return Outcome(rule.kind, error=message, label=rule.label)


def classify(entry: CatalogEntry, attempt: InstallAttempt) -> Outcome:
    """Decide the next state of ``entry`` from an install attempt."""
    early = precheck(entry)
    if early is not None:
        return early

    if attempt.failed:
        return classify_failure(attempt.message or "installer reported failure")

    if attempt.expected_size and attempt.actual_size is not None:
        if not size_within_tolerance(attempt.actual_size, attempt.expected_size):
            return classify_failure(
                f"{SIZE_MISMATCH}: expected {attempt.expected_size} bytes, "
                f"found {attempt.actual_size} bytes"
            )

    return Outcome(OutcomeKind.SUCCESS, target_version=attempt.target_version)


def apply_outcome(entry: CatalogEntry, outcome: Outcome, now: float | None = None) -> None:
    """Mutate ``entry`` to reflect ``outcome``."""
    now = time.time() if now is None else now

    if outcome.kind is OutcomeKind.SUCCESS:
        entry.blacklisted = False
        entry.failure = None
        entry.up_to_date = True
        entry.local_version = outcome.target_version or int(now)
        log.info("Mod %s (%s) installed, version %s", entry.mod_id, entry.name, entry.local_version)
        return

    entry.up_to_date = False

    if outcome.kind is OutcomeKind.PERMANENT:
        entry.blacklisted = True
        entry.failure = FailureRecord(
            error=outcome.error or "",
            failed_at=FailureRecord.timestamp(now),
        )
        log.error("Mod %s (%s) blacklisted (%s): %s", entry.mod_id, entry.name, outcome.label, outcome.error)
    elif outcome.kind is OutcomeKind.TRANSIENT:
        log.warning("Mod %s (%s) failed, will retry (%s)", entry.mod_id, entry.name, outcome.label)
    else:
        log.warning(
            "Mod %s (%s) failed with unrecognised installer output, will retry:\n%s",
            entry.mod_id, entry.name, outcome.error,
        )
