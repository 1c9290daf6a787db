"""SEC EDGAR adapter: filing documents and the filing event feed."""

import logging
from datetime import date
from typing import Optional

import requests

from marketstep.config import _get_default_user_agent
from marketstep.entities import (
    CompanyIdentity,
    DateWindow,
    Event,
    EventPeriod,
    EventType,
    FilingDocument,
    SourceKind,
    normalize_registry_id,
)
from marketstep.errors import InvalidUpstreamResponse
from marketstep.sources.base import HttpProvider, require
from marketstep.sources.transcripts import previous_quarter
from marketstep.text_clean import TextExtractor

logger = logging.getLogger(__name__)

# Forms that carry earnings information, in the order same-day filings are kept.
EARNINGS_FORMS = ("10-K", "10-Q", "8-K")

# 8-K item reporting results of operations (the earnings press release).
RESULTS_OF_OPERATIONS_ITEM = "2.02"


def _is_earnings_release(items) -> bool:
    """True when an 8-K item list such as "2.02,9.01" includes Item 2.02."""
    if not isinstance(items, str):
        return False
    return RESULTS_OF_OPERATIONS_ITEM in (item.strip() for item in items.split(","))


class EdgarClient(HttpProvider):
    """
    Handles SEC EDGAR document retrieval and the filings event feed.

    SEC requires every request to identify the caller through the
    User-Agent header (Format: Company contact@email).

    Representation Invariants:
    - session carries the SEC identification header
    """

    provider_name = "sec"
    kind = SourceKind.FILINGS

    SUBMISSIONS_API = "https://data.sec.gov/submissions"
    ARCHIVES_BASE = "https://www.sec.gov/Archives/edgar/data"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
        timeout: float = 10.0,
        document_timeout: float = 30.0,
        extractor: Optional[TextExtractor] = None,
    ) -> None:
        """
        Args:
            session: Optional HTTP session (tests pass a mock)
            user_agent: SEC identification string (defaults to SEC_USER_AGENT)
            timeout: Timeout for JSON API calls in seconds
            document_timeout: Timeout for filing document downloads
            extractor: Text extractor used on downloaded documents
        """
        if user_agent is None:
            user_agent = _get_default_user_agent()
        self._user_agent = user_agent
        # DO NOT set Host header - requests sets it from the URL
        super().__init__(
            session=session,
            timeout=timeout,
            headers={
                "User-Agent": user_agent,
                "Accept-Encoding": "gzip, deflate",
                "Accept": "application/json, text/plain, text/html",
            },
        )
        self._document_timeout = document_timeout
        self._extractor = extractor or TextExtractor()

    def document_url(self, registry_id: str, accession_number: str, form: str) -> str:
        """
        Build the archive URL of a filing document.

        The accession number loses its '-' separators and the CIK its
        leading zeros, e.g. 0000320193-23-000077 for CIK 0000320193 and
        document aapl-20230930.htm becomes
        .../data/320193/000032019323000077/aapl-20230930.htm
        """
        cik_clean = normalize_registry_id(registry_id).lstrip("0") or "0"
        accession_clean = accession_number.strip().replace("-", "")
        return f"{self.ARCHIVES_BASE}/{cik_clean}/{accession_clean}/{form.strip()}"

    def fetch(
        self,
        registry_id: Optional[str],
        accession_number: Optional[str],
        form: Optional[str],
    ) -> FilingDocument:
        """
        Download one filing document and reduce it to prose.

        Preconditions:
        - registry_id, accession_number and form (the document name) are given

        Postconditions:
        - Returns a FilingDocument whose raw_text has markup stripped and
          whitespace collapsed; nothing is cached

        Raises:
            MissingParameter: If any input is absent
            ValueError: If registry_id isn't numeric
            UpstreamUnavailable: If the SEC host can't be reached
            UpstreamError: On non-success HTTP status
        """
        require(registry_id=registry_id, accession_number=accession_number, form=form)

        url = self.document_url(registry_id, accession_number, form)
        logger.debug("Downloading filing document %s", url)
        response = self._get(url, timeout=self._document_timeout)
        self._check_status(response)

        text = self._extractor.extract(response.text)
        if not text:
            logger.warning("Filing document %s produced no text", url)

        return FilingDocument(
            registry_id=normalize_registry_id(registry_id),
            accession_number=accession_number,
            form=form,
            raw_text=text,
            url=url,
        )

    def _get_company_submissions(self, identity: CompanyIdentity) -> dict:
        """
        Fetch the submissions index of a company.

        Raises:
            UpstreamUnavailable: If the SEC host can't be reached
            UpstreamError: On non-success HTTP status
            InvalidUpstreamResponse: If the body isn't a submissions object
        """
        url = f"{self.SUBMISSIONS_API}/CIK{identity.registry_id}.json"
        response = self._get(url)
        self._check_status(response)
        data = self._json(response)

        # Valid submissions JSON has either 'cik' or 'filings'
        if not isinstance(data, dict) or not ("cik" in data or "filings" in data):
            raise InvalidUpstreamResponse(
                self.provider_name,
                f"unexpected submissions payload for {identity.ticker} (CIK: {identity.registry_id})",
            )
        return data

    def _column(self, recent: dict, name: str, identity: CompanyIdentity) -> list:
        """One parallel array of filings.recent; a missing array is empty."""
        values = recent.get(name, [])
        if values is None:
            return []
        if not isinstance(values, list):
            raise InvalidUpstreamResponse(
                self.provider_name,
                f"filings.recent.{name} is not a list for {identity.ticker}",
            )
        return values

    def fetch_events(
        self, identity: CompanyIdentity, window: Optional[DateWindow] = None
    ) -> list[Event]:
        """
        Filing events for a company from its recent submissions.

        Only earnings-relevant forms are kept. An 8-K carrying Item 2.02
        (results of operations) is the earnings release itself and becomes
        a report event, so it collapses with the calendar's report for the
        same day. Everything else is a filing event. Same-day filings share
        an event id, so they are emitted 10-K first, then 10-Q, then 8-K,
        and the aggregator keeps the first.

        Args:
            identity: Company to list filings for (primary registry id)
            window: Optional filing-date range; all recent filings when None

        Returns:
            Events ordered by date then form rank

        Raises:
            InvalidUpstreamResponse: If filings.recent or one of its arrays
                has the wrong type
        """
        submissions = self._get_company_submissions(identity)

        filings = submissions.get("filings", {})
        recent = filings.get("recent", {}) if isinstance(filings, dict) else None
        if not isinstance(recent, dict):
            raise InvalidUpstreamResponse(
                self.provider_name,
                f"filings.recent is not an object for {identity.ticker}",
            )

        form_types = self._column(recent, "form", identity)
        filing_dates = self._column(recent, "filingDate", identity)
        accession_numbers = self._column(recent, "accessionNumber", identity)
        report_dates = self._column(recent, "reportDate", identity)
        primary_documents = self._column(recent, "primaryDocument", identity)
        items = self._column(recent, "items", identity)

        candidates = []
        for i, form_type in enumerate(form_types):
            form_upper = str(form_type or "").upper()
            if form_upper not in EARNINGS_FORMS:
                continue
            if i >= len(filing_dates) or i >= len(accession_numbers):
                continue

            try:
                filed = date.fromisoformat(filing_dates[i])
            except (TypeError, ValueError):
                logger.warning("Skipping %s filing with bad date %r", identity.ticker, filing_dates[i])
                continue
            if window is not None and not window.contains(filed):
                continue

            period_day = filed
            if i < len(report_dates) and report_dates[i]:
                try:
                    period_day = date.fromisoformat(report_dates[i])
                except (TypeError, ValueError):
                    logger.debug("Ignoring bad report date %r for %s", report_dates[i], identity.ticker)

            accession = accession_numbers[i]
            document = primary_documents[i] if i < len(primary_documents) else None
            url = None
            if isinstance(accession, str) and isinstance(document, str) and document:
                url = self.document_url(identity.registry_id, accession, document)

            if form_upper == "8-K" and _is_earnings_release(items[i] if i < len(items) else None):
                # Results are announced after the quarter they cover closes
                announced = EventPeriod.containing(filed)
                reported = previous_quarter(announced.year, announced.quarter)
                period = EventPeriod(quarter=reported.quarter, year=reported.year)
                event = Event(
                    company=identity,
                    type=EventType.REPORT,
                    date=filed,
                    title=f"{identity.ticker} {period.label()} Earnings Release (8-K)",
                    period=period,
                    source=SourceKind.FILINGS,
                    url=url,
                )
            else:
                event = Event(
                    company=identity,
                    type=EventType.FILING,
                    date=filed,
                    title=f"{form_upper} filed {filed.isoformat()}",
                    period=EventPeriod.containing(period_day),
                    source=SourceKind.FILINGS,
                    url=url,
                )
            candidates.append((filed, EARNINGS_FORMS.index(form_upper), event))

        candidates.sort(key=lambda c: (c[0], c[1]))
        logger.debug("Found %d earnings filings for %s", len(candidates), identity.ticker)
        return [event for _, _, event in candidates]
