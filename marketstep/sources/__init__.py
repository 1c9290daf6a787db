"""Provider adapters translating external payloads into pipeline records."""

from marketstep.sources.base import (
    CalendarSource,
    EventSource,
    FilingsSource,
    HttpProvider,
    QuoteSource,
    TranscriptSource,
)
from marketstep.sources.edgar import EdgarClient
from marketstep.sources.finnhub import FinnhubClient
from marketstep.sources.transcripts import (
    QuarterRef,
    TranscriptClient,
    previous_quarter,
    recent_quarters,
)

__all__ = [
    "CalendarSource",
    "EdgarClient",
    "EventSource",
    "FilingsSource",
    "FinnhubClient",
    "HttpProvider",
    "QuarterRef",
    "QuoteSource",
    "TranscriptClient",
    "TranscriptSource",
    "previous_quarter",
    "recent_quarters",
]
