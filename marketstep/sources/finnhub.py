"""Finnhub adapter: earnings calendar and stock quotes."""

import logging
from datetime import date, datetime, timezone
from numbers import Real
from typing import Any, Optional

import requests

from marketstep.entities import (
    CompanyIdentity,
    DateWindow,
    Event,
    EventPeriod,
    EventType,
    Quote,
    SourceKind,
)
from marketstep.errors import InvalidUpstreamResponse, MissingParameter, UpstreamUnavailable
from marketstep.sources.base import HttpProvider, require

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _optional_number(value: Any) -> Optional[float]:
    return float(value) if _is_number(value) else None


class FinnhubClient(HttpProvider):
    """
    Finnhub REST client.

    Implements the calendar and quote capabilities and feeds report
    events to the aggregator.

    Representation Invariants:
    - _api_key is None or a non-empty token
    """

    provider_name = "finnhub"
    kind = SourceKind.CALENDAR

    BASE_URL = "https://finnhub.io/api/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        """
        Args:
            api_key: Finnhub token; calls fail with UpstreamUnavailable without one
            session: Optional HTTP session (tests pass a mock)
            timeout: Request timeout in seconds
        """
        super().__init__(session=session, timeout=timeout, headers={"Accept": "application/json"})
        self._api_key = api_key or None

    def _token(self) -> str:
        if not self._api_key:
            raise UpstreamUnavailable(self.provider_name, "API key is not configured")
        return self._api_key

    def fetch_calendar(
        self,
        identity: Optional[CompanyIdentity],
        start: Optional[date],
        end: Optional[date],
    ) -> list[Event]:
        """
        Fetch earnings report dates for one company.

        Preconditions:
        - identity, start and end are all provided

        Postconditions:
        - Returns report Events dated within [start, end] as the provider
          lists them; records with unusable dates are skipped

        Raises:
            MissingParameter: If symbol, start or end is absent
            UpstreamUnavailable: If no token is configured or the host is unreachable
            UpstreamError: On non-success HTTP status
            InvalidUpstreamResponse: If the body isn't a calendar payload
        """
        require(symbol=identity.ticker if identity else None, start=start, end=end)
        token = self._token()

        logger.debug("Finnhub calendar request: symbol=%s from=%s to=%s", identity.ticker, start, end)
        response = self._get(
            f"{self.BASE_URL}/calendar/earnings",
            params={
                "symbol": identity.ticker,
                "from": start.isoformat(),
                "to": end.isoformat(),
                "token": token,
            },
        )
        self._check_status(response)
        data = self._json(response)

        if not isinstance(data, dict):
            raise InvalidUpstreamResponse(self.provider_name, "calendar payload is not an object")
        records = data.get("earningsCalendar") or []
        if not isinstance(records, list):
            raise InvalidUpstreamResponse(self.provider_name, "earningsCalendar is not a list")

        events = []
        for record in records:
            event = self._record_to_event(identity, record)
            if event is not None:
                events.append(event)
        return events

    def _record_to_event(self, identity: CompanyIdentity, record: Any) -> Optional[Event]:
        if not isinstance(record, dict):
            logger.warning("Skipping non-object calendar record for %s", identity.ticker)
            return None

        symbol = str(record.get("symbol") or identity.ticker).upper()
        if symbol != identity.ticker:
            logger.warning("Skipping calendar record for %s in %s feed", symbol, identity.ticker)
            return None

        try:
            day = date.fromisoformat(str(record.get("date")))
        except ValueError:
            logger.warning("Skipping calendar record with bad date %r for %s", record.get("date"), identity.ticker)
            return None

        quarter = record.get("quarter")
        year = record.get("year")
        try:
            period = EventPeriod(quarter=int(quarter), year=int(year))
        except (TypeError, ValueError):
            period = EventPeriod.containing(day)

        return Event(
            company=identity,
            type=EventType.REPORT,
            date=day,
            title=f"{identity.ticker} {period.label()} Earnings Report",
            period=period,
            source=SourceKind.CALENDAR,
        )

    def fetch_events(
        self, identity: CompanyIdentity, window: Optional[DateWindow] = None
    ) -> list[Event]:
        """Report events for the aggregator; the calendar needs an explicit window."""
        if window is None:
            raise MissingParameter("window")
        return self.fetch_calendar(identity, window.start, window.end)

    def fetch_quote(self, symbol: Optional[str]) -> Quote:
        """
        Fetch the latest quote for a symbol.

        The current price ("c") must be present and numeric; every other
        field is optional.

        Raises:
            MissingParameter: If symbol is blank
            UpstreamUnavailable: If no token is configured or the host is unreachable
            UpstreamError: On non-success HTTP status
            InvalidUpstreamResponse: If the current price is missing or not numeric
        """
        require(symbol=symbol)
        token = self._token()
        symbol = symbol.upper().strip()

        logger.debug("Finnhub quote request: symbol=%s", symbol)
        response = self._get(f"{self.BASE_URL}/quote", params={"symbol": symbol, "token": token})
        self._check_status(response)
        data = self._json(response)

        if not isinstance(data, dict) or not _is_number(data.get("c")):
            raise InvalidUpstreamResponse(self.provider_name, f"quote for {symbol} has no numeric current price")

        timestamp = None
        if _is_number(data.get("t")) and data["t"] > 0:
            try:
                timestamp = datetime.fromtimestamp(data["t"], tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                logger.warning("Ignoring out-of-range quote timestamp %r for %s", data["t"], symbol)

        return Quote(
            symbol=symbol,
            current=float(data["c"]),
            high=_optional_number(data.get("h")),
            low=_optional_number(data.get("l")),
            open=_optional_number(data.get("o")),
            previous_close=_optional_number(data.get("pc")),
            timestamp=timestamp,
            change=_optional_number(data.get("d")),
            percent_change=_optional_number(data.get("dp")),
        )
