"""Capability contracts and shared HTTP plumbing for provider adapters."""

import logging
from datetime import date
from typing import Any, Optional, Protocol, runtime_checkable

import requests

from marketstep.entities import (
    CompanyIdentity,
    DateWindow,
    Event,
    FilingDocument,
    Quote,
    SourceKind,
    Transcript,
)
from marketstep.errors import (
    InvalidUpstreamResponse,
    MissingParameter,
    UpstreamError,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class EventSource(Protocol):
    """Anything the aggregator can pull events from."""

    kind: SourceKind

    def fetch_events(
        self, identity: CompanyIdentity, window: Optional[DateWindow] = None
    ) -> list[Event]:
        ...


class CalendarSource(Protocol):
    def fetch_calendar(self, identity: CompanyIdentity, start: date, end: date) -> list[Event]:
        ...


class FilingsSource(Protocol):
    def fetch(self, registry_id: str, accession_number: str, form: str) -> FilingDocument:
        ...


class TranscriptSource(Protocol):
    def fetch_transcript(self, ticker: str, year: int, quarter: int) -> Optional[Transcript]:
        ...


class QuoteSource(Protocol):
    def fetch_quote(self, symbol: str) -> Quote:
        ...


def require(**params: Any) -> None:
    """
    Raise MissingParameter for the first absent or blank argument.

    Example:
        require(symbol=symbol, start=start)
    """
    for name, value in params.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MissingParameter(name)


class HttpProvider:
    """
    Base for adapters that talk to a provider over HTTP.

    No retry adapter is mounted: a failed call surfaces once and the
    caller decides what to do with it.

    Representation Invariants:
    - _session is a requests.Session carrying the provider's headers
    - provider_name is a short stable label used in errors and logs
    """

    provider_name = "provider"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self._session = session if session is not None else requests.Session()
        if headers:
            self._session.headers.update(headers)
        self._timeout = timeout

    def _get(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> requests.Response:
        """
        Issue a GET and return the raw response, whatever its status.

        Raises:
            UpstreamUnavailable: On transport failure (DNS, refused, timeout)
        """
        try:
            return self._session.get(
                url,
                params=params,
                headers=headers,
                timeout=timeout or self._timeout,
            )
        except requests.RequestException as e:
            raise UpstreamUnavailable(self.provider_name, str(e)) from e

    def _check_status(self, response: requests.Response) -> None:
        """Raise UpstreamError unless the status is 2xx."""
        if not 200 <= response.status_code < 300:
            raise UpstreamError(self.provider_name, response.status_code, response.text)

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise InvalidUpstreamResponse(self.provider_name, "body is not valid JSON") from e
