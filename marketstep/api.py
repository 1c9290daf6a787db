"""
FastAPI application exposing the event feed and filing analysis pipeline.
"""

from datetime import date, timedelta
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional
import logging
import time

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, field_validator
import uvicorn

from marketstep import __version__
from marketstep.aggregator import EventAggregator
from marketstep.analyzer import AnalysisPayload, FilingAnalyzer, TranscriptSummarizer, summarize_events
from marketstep.company_resolver import CompanyRegistry
from marketstep.config import Settings
from marketstep.entities import DateWindow, FilingSections
from marketstep.errors import (
    EmptyQuestion,
    InvalidUpstreamResponse,
    MalformedAnalysisResponse,
    MarketStepError,
    MissingParameter,
    UpstreamError,
    UpstreamUnavailable,
)
from marketstep.llm import OpenAIGenerator, TextGenerator
from marketstep.session import AnalysisSession
from marketstep.sources import EdgarClient, FinnhubClient, TranscriptClient

# =============================================================================
# Configuration
# =============================================================================

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("marketstep.api")

# Default event window around today when the caller gives none
DEFAULT_LOOKBACK_DAYS = 90
DEFAULT_LOOKAHEAD_DAYS = 90
MAX_SYMBOLS = 25

# Rate limiting for the text-generation endpoints (in-memory, per process)
RATE_LIMIT_REQUESTS = 10
RATE_LIMIT_WINDOW = 60  # seconds
rate_limit_store: Dict[str, List[float]] = {}

# =============================================================================
# App Initialization
# =============================================================================

app = FastAPI(
    title="MarketStep API",
    version=__version__,
    description="Corporate event aggregation and grounded SEC filing analysis",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware - restrict origins in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)

    # OWASP recommended security headers
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Cache-Control"] = "no-store, max-age=0"

    return response


# =============================================================================
# Dependencies
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=4)
def _load_registry(path: Path) -> CompanyRegistry:
    return CompanyRegistry.from_yaml(path)


def get_registry(settings: Settings = Depends(get_settings)) -> CompanyRegistry:
    return _load_registry(settings.companies_path)


def get_finnhub(settings: Settings = Depends(get_settings)) -> FinnhubClient:
    return FinnhubClient(api_key=settings.finnhub_api_key, timeout=settings.http_timeout)


def get_edgar(settings: Settings = Depends(get_settings)) -> EdgarClient:
    return EdgarClient(user_agent=settings.sec_user_agent, timeout=settings.http_timeout)


def get_transcripts(settings: Settings = Depends(get_settings)) -> TranscriptClient:
    return TranscriptClient(api_key=settings.api_ninjas_key, timeout=settings.http_timeout)


def get_generator(settings: Settings = Depends(get_settings)) -> TextGenerator:
    return OpenAIGenerator(api_key=settings.openai_api_key, model=settings.openai_model)


def get_aggregator(
    edgar: EdgarClient = Depends(get_edgar),
    finnhub: FinnhubClient = Depends(get_finnhub),
    transcripts: TranscriptClient = Depends(get_transcripts),
) -> EventAggregator:
    return EventAggregator([edgar, finnhub, transcripts])


# =============================================================================
# Helpers
# =============================================================================

def check_rate_limit(client_ip: str) -> bool:
    """
    Check if client has exceeded rate limit.
    Returns True if request is allowed, False if rate limited.
    """
    now = time.time()
    window_start = now - RATE_LIMIT_WINDOW

    # Clean old entries
    recent = [ts for ts in rate_limit_store.get(client_ip, []) if ts > window_start]
    if len(recent) >= RATE_LIMIT_REQUESTS:
        rate_limit_store[client_ip] = recent
        return False

    recent.append(now)
    rate_limit_store[client_ip] = recent
    return True


def enforce_rate_limit(req: Request) -> None:
    client_ip = req.client.host if req.client else "unknown"
    if not check_rate_limit(client_ip):
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Please wait before making another request."
        )


def error_status(error: Exception) -> int:
    """HTTP status a pipeline failure is reported with."""
    if isinstance(error, (MissingParameter, EmptyQuestion, ValueError)):
        return 400
    if isinstance(error, UpstreamUnavailable):
        return 503
    if isinstance(error, (UpstreamError, InvalidUpstreamResponse, MalformedAnalysisResponse)):
        return 502
    return 500


def to_http_exception(error: Exception) -> HTTPException:
    status = error_status(error)
    detail = {"error": type(error).__name__, "message": str(error)}
    if isinstance(error, UpstreamError):
        detail["statusCode"] = error.status_code
        detail["body"] = error.body
    if status >= 500:
        logger.error(f"Request failed with {type(error).__name__}: {error}")
    return HTTPException(status_code=status, detail=detail)


def resolve_window(start: Optional[date], end: Optional[date]) -> DateWindow:
    """Window from optional bounds; a missing bound defaults around today."""
    today = date.today()
    start = start or min(today - timedelta(days=DEFAULT_LOOKBACK_DAYS), end or today)
    end = end or max(today + timedelta(days=DEFAULT_LOOKAHEAD_DAYS), start)
    return DateWindow(start, end)


def split_symbols(symbols: Optional[str]) -> List[str]:
    """Comma-separated symbols, uppercased, blanks and repeats removed."""
    if not symbols:
        raise MissingParameter("symbols")
    seen: List[str] = []
    for symbol in symbols.split(","):
        symbol = symbol.strip().upper()
        if symbol and symbol not in seen:
            seen.append(symbol)
    if not seen:
        raise MissingParameter("symbols")
    if len(seen) > MAX_SYMBOLS:
        raise ValueError(f"At most {MAX_SYMBOLS} symbols per request")
    return seen


# =============================================================================
# Models
# =============================================================================

class SectionsRequest(BaseModel):
    """Filing sections to analyze."""
    business: str = ""
    riskFactors: str = ""
    mdAndA: str = ""

    def to_sections(self) -> FilingSections:
        return FilingSections(
            business=self.business,
            risk_factors=self.riskFactors,
            management_discussion=self.mdAndA,
        )


class DocumentRequest(BaseModel):
    """Reference to a filing document to fetch and analyze."""
    cik: str
    accessionNumber: str
    form: str

    @field_validator('cik', 'accessionNumber', 'form')
    @classmethod
    def strip_value(cls, v: str) -> str:
        return v.strip()


class QuestionRequest(BaseModel):
    analysis: AnalysisPayload
    question: str


class EventsAnalysisRequest(BaseModel):
    symbols: List[str]
    start: Optional[date] = None
    end: Optional[date] = None


# =============================================================================
# Endpoints
# =============================================================================


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "MarketStep API", "version": __version__}


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/api/companies/search")
def search_companies(
    query: str = Query(""),
    registry: CompanyRegistry = Depends(get_registry),
):
    """Companies whose ticker or name matches the query, exact tickers first."""
    if not query.strip():
        raise to_http_exception(MissingParameter("query"))
    return {"companies": [identity.to_dict() for identity in registry.resolve(query)]}


def _aggregate(
    symbols: List[str],
    window: DateWindow,
    registry: CompanyRegistry,
    aggregator: EventAggregator,
):
    identities = []
    unresolved = []
    for symbol in symbols:
        identity = registry.get(symbol)
        if identity is None:
            unresolved.append(symbol)
        else:
            identities.append(identity)
    if unresolved:
        logger.info(f"Unresolved symbols: {', '.join(unresolved)}")
    return aggregator.aggregate(identities, window), unresolved


@app.get("/api/events")
def list_events(
    symbols: Optional[str] = Query(None),
    start: Optional[date] = Query(None, alias="from"),
    end: Optional[date] = Query(None, alias="to"),
    registry: CompanyRegistry = Depends(get_registry),
    aggregator: EventAggregator = Depends(get_aggregator),
):
    """
    Merged event feed for the requested symbols.

    Symbols missing from the company table are listed under `unresolved`;
    provider failures are listed under `failures` next to the events that
    were fetched.
    """
    try:
        requested = split_symbols(symbols)
        window = resolve_window(start, end)
        result, unresolved = _aggregate(requested, window, registry, aggregator)
    except (MarketStepError, ValueError) as e:
        raise to_http_exception(e)

    return {
        "from": window.start.isoformat(),
        "to": window.end.isoformat(),
        "events": [event.to_dict() for event in result.events],
        "failures": [failure.to_dict() for failure in result.failures],
        "unresolved": unresolved,
    }


@app.post("/api/events/analyze")
def analyze_events(
    request: EventsAnalysisRequest,
    req: Request,
    registry: CompanyRegistry = Depends(get_registry),
    aggregator: EventAggregator = Depends(get_aggregator),
    generator: TextGenerator = Depends(get_generator),
):
    """Aggregate events for the symbols and return a narrative overview."""
    enforce_rate_limit(req)
    try:
        requested = split_symbols(",".join(request.symbols))
        window = resolve_window(request.start, request.end)
        result, unresolved = _aggregate(requested, window, registry, aggregator)
        # Nothing to summarize in an empty window
        analysis = summarize_events(generator, result.events) if result.events else ""
    except (MarketStepError, ValueError) as e:
        raise to_http_exception(e)

    return {
        "analysis": analysis,
        "eventCount": len(result.events),
        "failures": [failure.to_dict() for failure in result.failures],
        "unresolved": unresolved,
    }


@app.get("/api/filings/document")
def get_filing_document(
    cik: Optional[str] = Query(None),
    accession_number: Optional[str] = Query(None, alias="accessionNumber"),
    form: Optional[str] = Query(None),
    edgar: EdgarClient = Depends(get_edgar),
):
    """Fetch one filing document as plain text."""
    try:
        document = edgar.fetch(cik, accession_number, form)
    except (MarketStepError, ValueError) as e:
        raise to_http_exception(e)

    return {
        "cik": document.registry_id,
        "accessionNumber": document.accession_number,
        "form": document.form,
        "url": document.url,
        "content": document.raw_text,
    }


@app.get("/api/transcript")
def get_transcript(
    ticker: Optional[str] = Query(None),
    year: Optional[int] = Query(None),
    quarter: Optional[int] = Query(None),
    transcripts: TranscriptClient = Depends(get_transcripts),
):
    """Earnings call transcript for one quarter; 404 when the provider has none."""
    try:
        transcript = transcripts.fetch_transcript(ticker, year, quarter)
    except (MarketStepError, ValueError) as e:
        raise to_http_exception(e)

    if transcript is None:
        raise HTTPException(status_code=404, detail=f"No transcript for {ticker} Q{quarter} {year}")
    return transcript.to_dict()


@app.get("/api/transcript/summary")
def summarize_transcript(
    req: Request,
    ticker: Optional[str] = Query(None),
    year: Optional[int] = Query(None),
    quarter: Optional[int] = Query(None),
    transcripts: TranscriptClient = Depends(get_transcripts),
    generator: TextGenerator = Depends(get_generator),
):
    """Fetch a transcript and summarize it."""
    enforce_rate_limit(req)
    try:
        transcript = transcripts.fetch_transcript(ticker, year, quarter)
        if transcript is None:
            raise HTTPException(status_code=404, detail=f"No transcript for {ticker} Q{quarter} {year}")
        summary = TranscriptSummarizer(generator).summarize(transcript)
    except (MarketStepError, ValueError) as e:
        raise to_http_exception(e)

    return {
        "ticker": transcript.ticker,
        "year": transcript.year,
        "quarter": transcript.quarter,
        "summary": summary,
    }


@app.get("/api/quote")
def get_quote(
    symbol: Optional[str] = Query(None),
    finnhub: FinnhubClient = Depends(get_finnhub),
):
    """Latest price snapshot for a symbol."""
    try:
        quote = finnhub.fetch_quote(symbol)
    except (MarketStepError, ValueError) as e:
        raise to_http_exception(e)
    return quote.to_dict()


@app.post("/api/analyze")
def analyze_filing(
    request: SectionsRequest,
    req: Request,
    generator: TextGenerator = Depends(get_generator),
):
    """
    Analyze filing sections into summary, technologies, strategy, risks and opportunities.

    Rate limited to 10 requests per minute per IP.
    """
    enforce_rate_limit(req)
    try:
        artifact = FilingAnalyzer(generator).analyze(request.to_sections())
    except MarketStepError as e:
        raise to_http_exception(e)
    return artifact.to_dict()


@app.post("/api/filings/analyze")
def analyze_filing_document(
    request: DocumentRequest,
    req: Request,
    edgar: EdgarClient = Depends(get_edgar),
    generator: TextGenerator = Depends(get_generator),
):
    """Fetch a filing document, extract its sections and analyze them."""
    enforce_rate_limit(req)
    try:
        document = edgar.fetch(request.cik, request.accessionNumber, request.form)
        artifact = FilingAnalyzer(generator).analyze_document(document)
    except (MarketStepError, ValueError) as e:
        raise to_http_exception(e)
    return {"url": document.url, "analysis": artifact.to_dict()}


@app.post("/api/question")
def ask_question(
    request: QuestionRequest,
    req: Request,
    generator: TextGenerator = Depends(get_generator),
):
    """Answer a question grounded only on a previous analysis."""
    enforce_rate_limit(req)
    try:
        answer = AnalysisSession(generator).ask(request.analysis.to_artifact(), request.question)
    except MarketStepError as e:
        raise to_http_exception(e)
    return {"answer": answer}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
