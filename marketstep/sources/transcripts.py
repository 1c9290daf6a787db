"""Earnings call transcript adapter (API Ninjas) and fiscal quarter arithmetic."""

import logging
from datetime import date, timedelta
from typing import Any, NamedTuple, Optional

import requests

from marketstep.entities import (
    CompanyIdentity,
    DateWindow,
    Event,
    EventPeriod,
    EventType,
    SourceKind,
    Transcript,
    TranscriptSegment,
)
from marketstep.errors import InvalidUpstreamResponse, UpstreamUnavailable
from marketstep.sources.base import HttpProvider, require

logger = logging.getLogger(__name__)


class QuarterRef(NamedTuple):
    year: int
    quarter: int


def current_quarter(today: Optional[date] = None) -> QuarterRef:
    """Quarter containing today: months 0-2 are Q1, 3-5 Q2, and so on."""
    today = today or date.today()
    month_index = today.month - 1
    return QuarterRef(year=today.year, quarter=month_index // 3 + 1)


def previous_quarter(year: int, quarter: int) -> QuarterRef:
    """
    Step one quarter back, wrapping Q1 to Q4 of the prior year.

    >>> previous_quarter(2024, 1)
    QuarterRef(year=2023, quarter=4)
    """
    if not 1 <= quarter <= 4:
        raise ValueError(f"Quarter must be between 1 and 4, got: {quarter}")
    if quarter == 1:
        return QuarterRef(year=year - 1, quarter=4)
    return QuarterRef(year=year, quarter=quarter - 1)


def recent_quarters(count: int = 4, today: Optional[date] = None) -> list[QuarterRef]:
    """The `count` most recent quarters, newest first, starting with the current one."""
    quarters = []
    ref = current_quarter(today)
    for _ in range(count):
        quarters.append(ref)
        ref = previous_quarter(ref.year, ref.quarter)
    return quarters


def quarter_end(ref: QuarterRef) -> date:
    if ref.quarter == 4:
        return date(ref.year, 12, 31)
    return date(ref.year, 3 * ref.quarter + 1, 1) - timedelta(days=1)


def quarters_in_window(window: DateWindow) -> list[QuarterRef]:
    """Quarters overlapping the window, newest first."""
    quarters = []
    ref = current_quarter(window.end)
    while quarter_end(ref) >= window.start:
        quarters.append(ref)
        ref = previous_quarter(ref.year, ref.quarter)
    return quarters


class TranscriptClient(HttpProvider):
    """
    API Ninjas earnings call transcript client.

    Representation Invariants:
    - _api_key is None or a non-empty key
    """

    provider_name = "api-ninjas"
    kind = SourceKind.TRANSCRIPTS

    TRANSCRIPT_URL = "https://api.api-ninjas.com/v1/earningstranscript"

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(session=session, timeout=timeout, headers={"Accept": "application/json"})
        self._api_key = api_key or None

    def fetch_transcript(
        self,
        ticker: Optional[str],
        year: Optional[int],
        quarter: Optional[int],
    ) -> Optional[Transcript]:
        """
        Fetch the transcript of one earnings call.

        Preconditions:
        - ticker, year and quarter are given; quarter is 1..4

        Postconditions:
        - Returns a Transcript with per-speaker segments in call order
        - Returns None when the provider has no transcript for the period

        Raises:
            MissingParameter: If ticker, year or quarter is absent
            ValueError: If quarter is outside 1..4
            UpstreamUnavailable: If no key is configured or the host is unreachable
            UpstreamError: On non-success HTTP status other than 404
            InvalidUpstreamResponse: If the body isn't a transcript object
        """
        require(ticker=ticker, year=year, quarter=quarter)
        if not 1 <= int(quarter) <= 4:
            raise ValueError(f"Quarter must be between 1 and 4, got: {quarter}")
        if not self._api_key:
            raise UpstreamUnavailable(self.provider_name, "API key is not configured")

        ticker = ticker.upper().strip()
        logger.debug("Transcript request: ticker=%s year=%s quarter=%s", ticker, year, quarter)
        response = self._get(
            self.TRANSCRIPT_URL,
            params={"ticker": ticker, "year": int(year), "quarter": int(quarter)},
            headers={"X-Api-Key": self._api_key},
        )
        if response.status_code == 404:
            return None
        self._check_status(response)

        if not response.content or not response.content.strip():
            return None
        data = self._json(response)
        if not data:
            return None  # API answers {} or [] for periods it doesn't cover
        if not isinstance(data, dict):
            raise InvalidUpstreamResponse(self.provider_name, "transcript payload is not an object")

        return self._to_transcript(ticker, int(year), int(quarter), data)

    def _to_transcript(self, ticker: str, year: int, quarter: int, data: dict) -> Optional[Transcript]:
        text = data.get("transcript") or ""
        if not isinstance(text, str):
            raise InvalidUpstreamResponse(self.provider_name, "transcript text is not a string")

        segments = []
        for part in data.get("transcript_split") or []:
            segment = self._to_segment(part)
            if segment is not None:
                segments.append(segment)

        if not text.strip() and not segments:
            return None
        if not text.strip():
            text = " ".join(f"{s.speaker}: {s.text}" for s in segments)

        call_date = None
        raw_date = data.get("date")
        if raw_date:
            try:
                call_date = date.fromisoformat(str(raw_date)[:10])
            except ValueError:
                logger.warning("Unparseable transcript date %r for %s", raw_date, ticker)

        return Transcript(
            ticker=ticker,
            year=year,
            quarter=quarter,
            date=call_date,
            text=text,
            segments=tuple(segments),
        )

    def _to_segment(self, part: Any) -> Optional[TranscriptSegment]:
        if not isinstance(part, dict):
            return None
        speaker = str(part.get("speaker") or "Unknown").strip()
        text = str(part.get("text") or "").strip()
        if not text:
            return None
        return TranscriptSegment(speaker=speaker, text=text)

    def fetch_events(
        self, identity: CompanyIdentity, window: Optional[DateWindow] = None
    ) -> list[Event]:
        """
        Transcript events for a company.

        Covers the quarters overlapping the window plus the one before it,
        or the four most recent quarters when no window is given. An event
        is dated by the call date, or the quarter end when the provider
        omits it.
        """
        if window is None:
            quarters = recent_quarters(4)
        else:
            # Calls happen weeks after quarter end, so look one quarter further back
            lookback = DateWindow(window.start - timedelta(days=92), window.end)
            quarters = quarters_in_window(lookback)

        events = []
        for ref in quarters:
            transcript = self.fetch_transcript(identity.ticker, ref.year, ref.quarter)
            if transcript is None:
                continue
            day = transcript.date or quarter_end(ref)
            if window is not None and not window.contains(day):
                continue
            period = EventPeriod(quarter=ref.quarter, year=ref.year)
            events.append(Event(
                company=identity,
                type=EventType.TRANSCRIPT,
                date=day,
                title=f"{identity.ticker} {period.label()} Earnings Call Transcript",
                period=period,
                source=SourceKind.TRANSCRIPTS,
            ))
        return events
