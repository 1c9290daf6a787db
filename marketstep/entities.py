"""Core entity classes: CompanyIdentity, Event, FilingDocument, AnalysisArtifact, etc."""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


TICKER_PATTERN = re.compile(r"^[A-Z0-9]+$")


def normalize_registry_id(value: str) -> str:
    """
    Normalize a CIK to the registry's 10-digit zero-padded form.

    Raises:
        ValueError: If the value is empty or not numeric
    """
    if value is None or not str(value).strip():
        raise ValueError("CIK cannot be empty")
    cik_clean = str(value).strip().lstrip("0") or "0"
    if not cik_clean.isdigit():
        raise ValueError(f"CIK must be numeric, got: {value}")
    if len(cik_clean) > 10:
        raise ValueError(f"CIK longer than 10 digits: {value}")
    return cik_clean.zfill(10)


def quarter_of(day: date) -> int:
    """Calendar quarter (1-4) a date falls in."""
    return (day.month - 1) // 3 + 1


@dataclass(frozen=True)
class CompanyIdentity:
    """
    Canonical identity of a company across providers.

    Representation Invariants:
    - ticker is uppercase alphanumeric and non-empty
    - registry_id and every registry alias are 10-digit zero-padded strings
    - canonical_name is non-empty
    - registry_aliases never contains registry_id
    """

    canonical_name: str
    ticker: str
    registry_id: str
    registry_aliases: tuple[str, ...] = ()
    name_aliases: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate and normalize representation invariants."""
        ticker = (self.ticker or "").upper().strip()
        if not ticker:
            raise ValueError("Ticker cannot be empty")
        if not TICKER_PATTERN.match(ticker):
            raise ValueError(f"Ticker must be alphanumeric, got: {self.ticker}")

        name = (self.canonical_name or "").strip()
        if not name:
            raise ValueError("Company name cannot be empty")

        registry_id = normalize_registry_id(self.registry_id)
        aliases = []
        for alias in self.registry_aliases:
            normalized = normalize_registry_id(alias)
            if normalized != registry_id and normalized not in aliases:
                aliases.append(normalized)

        names = tuple(n.strip() for n in self.name_aliases if n and n.strip() and n.strip() != name)

        object.__setattr__(self, "ticker", ticker)
        object.__setattr__(self, "canonical_name", name)
        object.__setattr__(self, "registry_id", registry_id)
        object.__setattr__(self, "registry_aliases", tuple(aliases))
        object.__setattr__(self, "name_aliases", names)

    @property
    def all_registry_ids(self) -> tuple[str, ...]:
        """Primary registry id followed by its aliases."""
        return (self.registry_id,) + self.registry_aliases

    @property
    def all_names(self) -> tuple[str, ...]:
        return (self.canonical_name,) + self.name_aliases

    def to_dict(self) -> dict:
        return {
            "name": self.canonical_name,
            "ticker": self.ticker,
            "cik": self.registry_id,
            "cikAliases": list(self.registry_aliases),
            "nameAliases": list(self.name_aliases),
        }


class EventType(str, Enum):
    """Kind of corporate event in the feed."""

    REPORT = "report"
    TRANSCRIPT = "transcript"
    FILING = "filing"


class SourceKind(str, Enum):
    """Provider family an event came from."""

    FILINGS = "filings"
    CALENDAR = "calendar"
    TRANSCRIPTS = "transcripts"


# Higher wins when two providers describe the same event.
SOURCE_PRECEDENCE = {
    SourceKind.FILINGS: 3,
    SourceKind.CALENDAR: 2,
    SourceKind.TRANSCRIPTS: 1,
}


def event_id(ticker: str, event_type: EventType, day: date) -> str:
    """
    Derive the stable identifier of an event.

    The id depends only on (ticker, type, date), so the same underlying
    event reported by two providers maps to the same id.

    Args:
        ticker: Company ticker (case-insensitive)
        event_type: EventType or its string value
        day: Calendar date of the event

    Returns:
        Identifier of the form "report-AAPL-2024-02-01"
    """
    kind = EventType(event_type)
    return f"{kind.value}-{ticker.upper().strip()}-{day.isoformat()}"


@dataclass(frozen=True)
class EventPeriod:
    """Fiscal period an event refers to."""

    quarter: int
    year: int

    def __post_init__(self) -> None:
        if not 1 <= self.quarter <= 4:
            raise ValueError(f"Quarter must be between 1 and 4, got: {self.quarter}")
        if self.year < 1900:
            raise ValueError(f"Implausible year: {self.year}")

    @classmethod
    def containing(cls, day: date) -> "EventPeriod":
        return cls(quarter=quarter_of(day), year=day.year)

    def label(self) -> str:
        return f"Q{self.quarter} {self.year}"


@dataclass(frozen=True)
class Event:
    """
    One corporate event from a single provider.

    Events are never mutated after creation; merged records are new
    instances built with dataclasses.replace.

    Representation Invariants:
    - id == event_id(company.ticker, type, date)
    - title is non-empty
    """

    company: CompanyIdentity
    type: EventType
    date: date
    title: str
    period: EventPeriod
    source: SourceKind
    url: Optional[str] = None
    id: str = field(init=False)

    def __post_init__(self) -> None:
        if isinstance(self.date, datetime):
            object.__setattr__(self, "date", self.date.date())
        object.__setattr__(self, "type", EventType(self.type))
        object.__setattr__(self, "source", SourceKind(self.source))
        if not self.title or not self.title.strip():
            raise ValueError("Event title cannot be empty")
        object.__setattr__(self, "id", event_id(self.company.ticker, self.type, self.date))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company": self.company.canonical_name,
            "symbol": self.company.ticker,
            "cik": self.company.registry_id,
            "type": self.type.value,
            "date": self.date.isoformat(),
            "title": self.title,
            "quarter": f"Q{self.period.quarter}",
            "year": str(self.period.year),
            "source": self.source.value,
            "url": self.url,
        }


@dataclass(frozen=True)
class DateWindow:
    """Inclusive calendar-date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start is None or self.end is None:
            raise ValueError("Date window needs both a start and an end")
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after end {self.end}")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class FilingDocument:
    """
    A filing document fetched from the registry.

    raw_text is best-effort prose (markup stripped, whitespace collapsed);
    it carries no structure.
    """

    registry_id: str
    accession_number: str
    form: str
    raw_text: str
    url: Optional[str] = None


@dataclass(frozen=True)
class FilingSections:
    """Business, risk factor and MD&A excerpts of one filing."""

    business: str = ""
    risk_factors: str = ""
    management_discussion: str = ""


@dataclass(frozen=True)
class AnalysisArtifact:
    """
    Structured result of analyzing a filing.

    This is the only context a follow-up question is answered from.
    """

    summary: str
    key_technologies: frozenset[str]
    strategic_focus: str
    risks: tuple[str, ...]
    opportunities: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "key_technologies", frozenset(self.key_technologies))
        object.__setattr__(self, "risks", tuple(self.risks))
        object.__setattr__(self, "opportunities", tuple(self.opportunities))

    def to_dict(self) -> dict:
        """Wire form, with keyTechnologies sorted so serialization is stable."""
        return {
            "summary": self.summary,
            "keyTechnologies": sorted(self.key_technologies),
            "strategicFocus": self.strategic_focus,
            "risks": list(self.risks),
            "opportunities": list(self.opportunities),
        }


@dataclass(frozen=True)
class TranscriptSegment:
    speaker: str
    text: str


@dataclass(frozen=True)
class Transcript:
    """Earnings call transcript for one fiscal quarter."""

    ticker: str
    year: int
    quarter: int
    date: Optional[date]
    text: str
    segments: tuple[TranscriptSegment, ...] = ()

    def to_dict(self) -> dict:
        return {
            "ticker": self.ticker,
            "year": self.year,
            "quarter": self.quarter,
            "date": self.date.isoformat() if self.date else None,
            "transcript": self.text,
            "transcript_split": [
                {"speaker": s.speaker, "text": s.text} for s in self.segments
            ],
        }


@dataclass(frozen=True)
class Quote:
    """
    Latest price snapshot for a symbol.

    All prices are in the listing currency; timestamp is UTC.
    """

    symbol: str
    current: float
    high: Optional[float] = None
    low: Optional[float] = None
    open: Optional[float] = None
    previous_close: Optional[float] = None
    timestamp: Optional[datetime] = None
    change: Optional[float] = None
    percent_change: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "current": self.current,
            "high": self.high,
            "low": self.low,
            "open": self.open,
            "previousClose": self.previous_close,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "change": self.change,
            "percentChange": self.percent_change,
        }
