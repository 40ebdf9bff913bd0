"""Health evaluation for one search query result.

Turns a QueryResult plus the configured Thresholds into a single Verdict.
Nothing in here talks to the network or reads configuration; the caller
hands in the result and the evaluation time so repeated runs over the same
inputs give the same answer.

Check order:
    1. search status != 0        -> CRITICAL (stop)
    2. no documents returned     -> CRITICAL (stop)
    3. hit count below min_hits  -> WARNING candidate (keep going)
    4. query time over the limit -> CRITICAL (stop)
    5. newest document too old   -> CRITICAL, unparseable sort key -> UNKNOWN
    6. otherwise the WARNING candidate, or OK
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_MIN_HITS = 1000000
DEFAULT_MAX_QTIME_MS = 200
DEFAULT_STALE_AFTER = timedelta(minutes=30)


class Severity(IntEnum):
    """Check outcome. Values double as the supervisor exit codes."""

    OK = 0
    WARNING = 1
    CRITICAL = 2
    UNKNOWN = 3


# UNKNOWN is left out on purpose: it means "undetermined", not "worse".
_RANK = {Severity.OK: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


@dataclass(frozen=True)
class QueryResult:
    status: int
    num_found: int
    documents: Sequence[Mapping[str, Any]]
    qtime_ms: int


@dataclass(frozen=True)
class Thresholds:
    sort_key: str
    min_hits: int = DEFAULT_MIN_HITS
    max_qtime_ms: int = DEFAULT_MAX_QTIME_MS
    stale_after: timedelta = DEFAULT_STALE_AFTER


@dataclass(frozen=True)
class Metric:
    """One perfdata value. warn/crit are Nagios range strings."""

    name: str
    value: float
    unit: str = ""
    warn: Optional[str] = None
    crit: Optional[str] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None


@dataclass
class Verdict:
    severity: Severity
    message: str
    metrics: Dict[str, Metric] = field(default_factory=dict)

    @property
    def exit_code(self) -> int:
        return int(self.severity)


# ---------------------------------------------------------------------------
# Sort key access
# ---------------------------------------------------------------------------
class SortKeyError(Exception):
    """The sort key field could not be turned into a timestamp."""


class SortKeyMissing(SortKeyError):
    pass


class SortKeyTypeError(SortKeyError):
    pass


class SortKeyFormatError(SortKeyError):
    pass


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp and return it as an aware UTC datetime.

    Accepts the canonical Solr form ``2024-05-01T12:00:00Z``, optional
    fractional seconds and explicit offsets. Naive values are taken as UTC.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat only accepts 3 or 6 fractional digits on older interpreters
    if "." in text:
        head, _, tail = text.partition(".")
        digits = ""
        while tail and tail[0].isdigit():
            digits, tail = digits + tail[0], tail[1:]
        text = f"{head}.{(digits + '000000')[:6]}{tail}"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        # offsets near year 1 / 9999 overflow when shifted to UTC
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError) as exc:
        raise SortKeyFormatError(f"not a usable ISO-8601 timestamp: {value!r}") from exc


def read_sort_key(document: Mapping[str, Any], key: str) -> datetime:
    """Return the document's sort key as a UTC datetime.

    Raises SortKeyMissing when the field is absent, SortKeyTypeError when it
    does not hold a string and SortKeyFormatError when the string is not a
    timestamp.
    """
    if key not in document:
        raise SortKeyMissing(f"field {key!r} not present in document")
    value = document[key]
    if not isinstance(value, str):
        raise SortKeyTypeError(
            f"field {key!r} holds {type(value).__name__}, expected a date string"
        )
    return parse_timestamp(value)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
def _escalate(current: Verdict, candidate: Verdict) -> Verdict:
    if _RANK[candidate.severity] > _RANK[current.severity]:
        return candidate
    return current


class HealthEvaluator:
    """Applies a fixed set of Thresholds to query results."""

    def __init__(self, thresholds: Thresholds):
        self.thresholds = thresholds

    def _metrics(self, result: QueryResult) -> Dict[str, Metric]:
        t = self.thresholds
        return {
            "qtime": Metric(
                "qtime", result.qtime_ms, "ms", crit=str(t.max_qtime_ms), minimum=0
            ),
            "documents": Metric(
                "documents", result.num_found, "c", warn=f"{t.min_hits}:", minimum=0
            ),
        }

    def evaluate(self, result: QueryResult, now: datetime) -> Verdict:
        t = self.thresholds

        if result.status != 0:
            return Verdict(Severity.CRITICAL, "Search failed: invalid response status.")
        if not result.documents:
            return Verdict(Severity.CRITICAL, "Search returned zero documents.")

        metrics = self._metrics(result)
        verdict = Verdict(
            Severity.OK,
            f"Search processed in {result.qtime_ms}ms, {result.num_found} documents found",
            metrics,
        )

        if result.num_found < t.min_hits:
            logger.debug("Hit count %d below minimum %d", result.num_found, t.min_hits)
            verdict = _escalate(
                verdict,
                Verdict(
                    Severity.WARNING,
                    "Number of document hits is lower than expected.",
                    metrics,
                ),
            )

        if result.qtime_ms > t.max_qtime_ms:
            return _escalate(
                verdict,
                Verdict(Severity.CRITICAL, f"Response too slow: {result.qtime_ms} ms", metrics),
            )

        try:
            last_update = read_sort_key(result.documents[0], t.sort_key)
        except SortKeyError as exc:
            logger.warning("Sort key check failed (%s): %s", exc.__class__.__name__, exc)
            return Verdict(
                Severity.UNKNOWN, "Cannot parse date field specified in sort key.", metrics
            )

        if now - last_update > t.stale_after:
            verdict = _escalate(
                verdict,
                Verdict(
                    Severity.CRITICAL,
                    "Collection update issue: last document is too old "
                    f"({last_update.isoformat()})",
                    metrics,
                ),
            )
        return verdict


def evaluate(result: QueryResult, thresholds: Thresholds, now: datetime) -> Verdict:
    """Functional shortcut for ``HealthEvaluator(thresholds).evaluate(result, now)``."""
    return HealthEvaluator(thresholds).evaluate(result, now)
