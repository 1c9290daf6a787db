"""Merge provider event feeds into one deduplicated, time-ordered stream."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional, Sequence

import requests

from marketstep.entities import SOURCE_PRECEDENCE, CompanyIdentity, DateWindow, Event
from marketstep.errors import MarketStepError
from marketstep.sources.base import EventSource

logger = logging.getLogger(__name__)

# Fields a winning record may leave empty and inherit from a lower-precedence duplicate.
_FILLABLE_FIELDS = ("url",)


@dataclass(frozen=True)
class SourceFailure:
    """One adapter call that failed for one company."""

    ticker: str
    source: str
    error: str
    message: str

    def to_dict(self) -> dict:
        return {
            "ticker": self.ticker,
            "source": self.source,
            "error": self.error,
            "message": self.message,
        }


@dataclass(frozen=True)
class AggregationResult:
    """
    Partial-result outcome of an aggregation.

    events holds everything that was fetched successfully; failures lists
    the (company, source) calls that didn't, without aborting the rest.
    """

    events: tuple[Event, ...] = ()
    failures: tuple[SourceFailure, ...] = field(default_factory=tuple)

    @property
    def complete(self) -> bool:
        return not self.failures


def _merge_pair(kept: Event, incoming: Event) -> Event:
    """Resolve two records sharing an id; higher-precedence source wins."""
    if SOURCE_PRECEDENCE[incoming.source] > SOURCE_PRECEDENCE[kept.source]:
        winner, loser = incoming, kept
    else:
        winner, loser = kept, incoming

    missing = {
        name: getattr(loser, name)
        for name in _FILLABLE_FIELDS
        if not getattr(winner, name) and getattr(loser, name)
    }
    return replace(winner, **missing) if missing else winner


def merge_events(events: Iterable[Event]) -> list[Event]:
    """
    Collapse events sharing an id and order the result.

    Conflicting fields come from the more authoritative source
    (filings > calendar > transcripts). Equal-precedence duplicates keep
    the first record seen.

    Returns:
        Events sorted by date, then ticker, then type
    """
    merged: dict[str, Event] = {}
    for event in events:
        kept = merged.get(event.id)
        merged[event.id] = event if kept is None else _merge_pair(kept, event)

    return sorted(
        merged.values(),
        key=lambda e: (e.date, e.company.ticker, e.type.value),
    )


def _source_label(source: EventSource) -> str:
    return source.kind.value


class EventAggregator:
    """
    Fans out event fetches over companies and sources, then merges.

    Each (company, source) pair is an independent task on a thread pool.
    A failing task is recorded and dropped; it never aborts the others
    and is never retried.

    Representation Invariants:
    - _sources is a non-empty sequence of EventSource implementations
    - _max_workers > 0
    """

    def __init__(self, sources: Sequence[EventSource], max_workers: int = 8) -> None:
        if not sources:
            raise ValueError("EventAggregator needs at least one source")
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self._sources = list(sources)
        self._max_workers = max_workers

    def aggregate(
        self,
        identities: Sequence[CompanyIdentity],
        window: Optional[DateWindow],
    ) -> AggregationResult:
        """
        Build the merged event feed for a set of companies.

        Preconditions:
        - identities contains no duplicate tickers (duplicates are skipped)

        Postconditions:
        - Every returned event is unique by id and, when a window is
          given, dated inside it
        - failures lists each (ticker, source) call that raised

        Args:
            identities: Companies to aggregate
            window: Inclusive date range passed to every source

        Returns:
            AggregationResult with ordered events and recorded failures
        """
        unique: dict[str, CompanyIdentity] = {}
        for identity in identities:
            unique.setdefault(identity.ticker, identity)

        tasks = [(identity, source) for identity in unique.values() for source in self._sources]
        if not tasks:
            return AggregationResult()

        collected: list[Event] = []
        failures: list[SourceFailure] = []

        workers = min(self._max_workers, len(tasks))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="marketstep-fetch") as pool:
            futures = [
                (identity, source, pool.submit(source.fetch_events, identity, window))
                for identity, source in tasks
            ]
            # Joined in submission order so duplicate resolution is deterministic
            for identity, source, future in futures:
                try:
                    events = future.result()
                except (MarketStepError, requests.RequestException) as e:
                    failure = SourceFailure(
                        ticker=identity.ticker,
                        source=_source_label(source),
                        error=type(e).__name__,
                        message=str(e),
                    )
                    logger.warning(
                        "Dropping %s events for %s: %s", failure.source, failure.ticker, failure.message
                    )
                    failures.append(failure)
                    continue

                for event in events:
                    if window is not None and not window.contains(event.date):
                        continue
                    collected.append(event)

        merged = merge_events(collected)
        failures.sort(key=lambda f: (f.ticker, f.source))
        logger.info(
            "Aggregated %d events (%d raw) for %d companies with %d failures",
            len(merged),
            len(collected),
            len(unique),
            len(failures),
        )
        return AggregationResult(events=tuple(merged), failures=tuple(failures))
