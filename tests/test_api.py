"""Tests for the HTTP API."""

import json
from datetime import date
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from marketstep import api
from marketstep.aggregator import AggregationResult, SourceFailure
from marketstep.company_resolver import CompanyRegistry
from marketstep.entities import Event, EventPeriod, EventType, FilingDocument, Quote, SourceKind, Transcript
from marketstep.errors import InvalidUpstreamResponse, MissingParameter, UpstreamError, UpstreamUnavailable

ANALYSIS = {
    "summary": "Apple focuses on custom silicon.",
    "keyTechnologies": ["Apple Silicon"],
    "strategicFocus": "Vertical integration",
    "risks": ["Supply chain"],
    "opportunities": ["Services"],
}


@pytest.fixture
def registry():
    return CompanyRegistry([
        {"ticker": "AAPL", "name": "Apple Inc.", "cik": "320193"},
        {"ticker": "NVDA", "name": "NVIDIA Corporation", "cik": "1045810"},
        {"ticker": "NVDA", "name": "Nvidia Corp", "cik": "200406"},
    ])


@pytest.fixture
def collaborators(registry):
    """Mock collaborators injected through dependency overrides."""
    mocks = {
        "aggregator": Mock(),
        "edgar": Mock(),
        "finnhub": Mock(),
        "transcripts": Mock(),
        "generator": Mock(),
    }
    api.app.dependency_overrides[api.get_registry] = lambda: registry
    api.app.dependency_overrides[api.get_aggregator] = lambda: mocks["aggregator"]
    api.app.dependency_overrides[api.get_edgar] = lambda: mocks["edgar"]
    api.app.dependency_overrides[api.get_finnhub] = lambda: mocks["finnhub"]
    api.app.dependency_overrides[api.get_transcripts] = lambda: mocks["transcripts"]
    api.app.dependency_overrides[api.get_generator] = lambda: mocks["generator"]
    api.rate_limit_store.clear()
    yield mocks
    api.app.dependency_overrides.clear()
    api.rate_limit_store.clear()


@pytest.fixture
def client(collaborators):
    return TestClient(api.app)


class TestBasics:
    """Test health and middleware."""

    def test_health(self, client):
        """Test the health endpoint."""
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_security_headers(self, client):
        """Test that security headers are set."""
        response = client.get("/api/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestCompanySearch:
    """Test /api/companies/search."""

    def test_exact_ticker_first(self, client):
        """Test the ordering of search results."""
        response = client.get("/api/companies/search", params={"query": "nvda"})
        assert response.status_code == 200
        companies = response.json()["companies"]
        assert companies[0]["ticker"] == "NVDA"
        assert companies[0]["cikAliases"] == ["0000200406"]

    def test_blank_query(self, client):
        """Test that a blank query is a 400."""
        response = client.get("/api/companies/search", params={"query": "  "})
        assert response.status_code == 400

    def test_no_match(self, client):
        """Test an empty result."""
        response = client.get("/api/companies/search", params={"query": "zzzz"})
        assert response.json() == {"companies": []}


class TestEvents:
    """Test /api/events."""

    def test_events_with_failures_and_unresolved(self, client, collaborators, registry):
        """Test the partial-result response."""
        apple = registry.get("AAPL")
        event = Event(
            company=apple,
            type=EventType.REPORT,
            date=date(2024, 2, 1),
            title="AAPL Q1 2024 Earnings Report",
            period=EventPeriod(quarter=1, year=2024),
            source=SourceKind.CALENDAR,
        )
        collaborators["aggregator"].aggregate.return_value = AggregationResult(
            events=(event,),
            failures=(SourceFailure("AAPL", "transcripts", "UpstreamError", "boom"),),
        )

        response = client.get(
            "/api/events",
            params={"symbols": "aapl,ZZZZ", "from": "2024-01-01", "to": "2024-03-31"},
        )

        assert response.status_code == 200
        data = response.json()
        assert [e["id"] for e in data["events"]] == ["report-AAPL-2024-02-01"]
        assert data["failures"][0]["source"] == "transcripts"
        assert data["unresolved"] == ["ZZZZ"]

        identities, window = collaborators["aggregator"].aggregate.call_args[0]
        assert [i.ticker for i in identities] == ["AAPL"]
        assert window.start == date(2024, 1, 1)
        assert window.end == date(2024, 3, 31)

    def test_missing_symbols(self, client):
        """Test that symbols are required."""
        response = client.get("/api/events")
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "MissingParameter"

    def test_inverted_window(self, client):
        """Test that from after to is a 400."""
        response = client.get("/api/events", params={"symbols": "AAPL", "from": "2024-04-01", "to": "2024-01-01"})
        assert response.status_code == 400


class TestFilingDocument:
    """Test /api/filings/document."""

    def test_document(self, client, collaborators):
        """Test a fetched document."""
        collaborators["edgar"].fetch.return_value = FilingDocument(
            registry_id="0000320193",
            accession_number="0000320193-23-000077",
            form="aapl-20230930.htm",
            raw_text="Revenue grew 10%",
            url="https://www.sec.gov/Archives/edgar/data/320193/000032019323000077/aapl-20230930.htm",
        )

        response = client.get(
            "/api/filings/document",
            params={"cik": "320193", "accessionNumber": "0000320193-23-000077", "form": "aapl-20230930.htm"},
        )

        assert response.status_code == 200
        assert response.json()["content"] == "Revenue grew 10%"

    def test_missing_parameter(self, client, collaborators):
        """Test that MissingParameter maps to 400."""
        collaborators["edgar"].fetch.side_effect = MissingParameter("form")
        response = client.get("/api/filings/document", params={"cik": "320193"})
        assert response.status_code == 400

    def test_upstream_error(self, client, collaborators):
        """Test that UpstreamError maps to 502 with status and body."""
        collaborators["edgar"].fetch.side_effect = UpstreamError("sec", 404, "Not Found")
        response = client.get(
            "/api/filings/document",
            params={"cik": "320193", "accessionNumber": "x", "form": "y"},
        )
        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["statusCode"] == 404
        assert detail["body"] == "Not Found"


class TestTranscript:
    """Test /api/transcript endpoints."""

    def test_transcript(self, client, collaborators):
        """Test a found transcript."""
        collaborators["transcripts"].fetch_transcript.return_value = Transcript(
            ticker="AAPL", year=2024, quarter=1, date=date(2024, 2, 1), text="CEO: Hello."
        )
        response = client.get("/api/transcript", params={"ticker": "AAPL", "year": 2024, "quarter": 1})
        assert response.status_code == 200
        assert response.json()["transcript"] == "CEO: Hello."

    def test_transcript_not_found(self, client, collaborators):
        """Test that no transcript is a 404."""
        collaborators["transcripts"].fetch_transcript.return_value = None
        response = client.get("/api/transcript", params={"ticker": "AAPL", "year": 2024, "quarter": 1})
        assert response.status_code == 404

    def test_unconfigured_provider(self, client, collaborators):
        """Test that UpstreamUnavailable maps to 503."""
        collaborators["transcripts"].fetch_transcript.side_effect = UpstreamUnavailable("api-ninjas", "no key")
        response = client.get("/api/transcript", params={"ticker": "AAPL", "year": 2024, "quarter": 1})
        assert response.status_code == 503

    def test_summary(self, client, collaborators):
        """Test transcript summarization."""
        collaborators["transcripts"].fetch_transcript.return_value = Transcript(
            ticker="AAPL", year=2024, quarter=1, date=None, text="CEO: Hello."
        )
        collaborators["generator"].complete.return_value = "A summary."
        response = client.get("/api/transcript/summary", params={"ticker": "AAPL", "year": 2024, "quarter": 1})
        assert response.status_code == 200
        assert response.json()["summary"] == "A summary."


class TestQuote:
    """Test /api/quote."""

    def test_quote(self, client, collaborators):
        """Test a valid quote."""
        collaborators["finnhub"].fetch_quote.return_value = Quote(symbol="AAPL", current=189.5)
        response = client.get("/api/quote", params={"symbol": "AAPL"})
        assert response.status_code == 200
        assert response.json()["current"] == 189.5

    def test_invalid_quote(self, client, collaborators):
        """Test that InvalidUpstreamResponse maps to 502."""
        collaborators["finnhub"].fetch_quote.side_effect = InvalidUpstreamResponse("finnhub", "no price")
        response = client.get("/api/quote", params={"symbol": "AAPL"})
        assert response.status_code == 502


class TestAnalysis:
    """Test /api/analyze and /api/question."""

    def test_analyze(self, client, collaborators):
        """Test analyzing sections."""
        collaborators["generator"].complete.return_value = json.dumps(ANALYSIS)

        response = client.post("/api/analyze", json={"business": "B" * 5000, "riskFactors": "R", "mdAndA": "M"})

        assert response.status_code == 200
        assert response.json() == ANALYSIS
        assert "B" * 2001 not in collaborators["generator"].complete.call_args[0][1]

    def test_analyze_malformed(self, client, collaborators):
        """Test that a malformed model answer maps to 502."""
        collaborators["generator"].complete.return_value = "not json"
        response = client.post("/api/analyze", json={"business": "B"})
        assert response.status_code == 502
        assert response.json()["detail"]["error"] == "MalformedAnalysisResponse"

    def test_question(self, client, collaborators):
        """Test a grounded question."""
        collaborators["generator"].complete.return_value = "Supply chain."
        response = client.post("/api/question", json={"analysis": ANALYSIS, "question": "Main risk?"})
        assert response.status_code == 200
        assert response.json() == {"answer": "Supply chain."}

    def test_empty_question(self, client, collaborators):
        """Test that a blank question is a 400 with no model call."""
        response = client.post("/api/question", json={"analysis": ANALYSIS, "question": " "})
        assert response.status_code == 400
        collaborators["generator"].complete.assert_not_called()

    def test_rate_limit(self, client, collaborators):
        """Test that generation endpoints are rate limited."""
        collaborators["generator"].complete.return_value = "ok"
        for _ in range(api.RATE_LIMIT_REQUESTS):
            assert client.post("/api/question", json={"analysis": ANALYSIS, "question": "Why?"}).status_code == 200
        response = client.post("/api/question", json={"analysis": ANALYSIS, "question": "Why?"})
        assert response.status_code == 429


class TestEventsAnalysis:
    """Test /api/events/analyze."""

    def test_overview(self, client, collaborators, registry):
        """Test a narrative over the aggregated events."""
        event = Event(
            company=registry.get("AAPL"),
            type=EventType.REPORT,
            date=date(2024, 2, 1),
            title="AAPL Q1 2024 Earnings Report",
            period=EventPeriod(quarter=1, year=2024),
            source=SourceKind.CALENDAR,
        )
        collaborators["aggregator"].aggregate.return_value = AggregationResult(events=(event,))
        collaborators["generator"].complete.return_value = " Apple reports on Feb 1. "

        response = client.post(
            "/api/events/analyze",
            json={"symbols": ["AAPL"], "start": "2024-01-01", "end": "2024-03-31"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["analysis"] == "Apple reports on Feb 1."
        assert data["eventCount"] == 1
        assert "AAPL Q1 2024 Earnings Report" in collaborators["generator"].complete.call_args[0][1]

    def test_empty_window(self, client, collaborators):
        """Test that a window without events is an empty overview, not an error."""
        collaborators["aggregator"].aggregate.return_value = AggregationResult()

        response = client.post(
            "/api/events/analyze",
            json={"symbols": ["AAPL", "ZZZZ"], "start": "2024-01-01", "end": "2024-01-02"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "analysis": "",
            "eventCount": 0,
            "failures": [],
            "unresolved": ["ZZZZ"],
        }
        collaborators["generator"].complete.assert_not_called()
