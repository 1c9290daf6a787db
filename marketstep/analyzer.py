"""
Filing analysis, transcript summarization and event overviews.

Every function here makes exactly one text-generation request and
never retries; failures propagate as typed errors.
"""

import json
import logging
from typing import Sequence

from pydantic import BaseModel, ConfigDict, ValidationError

from marketstep.entities import AnalysisArtifact, Event, FilingDocument, FilingSections, Transcript
from marketstep.errors import MalformedAnalysisResponse
from marketstep.llm import TextGenerator
from marketstep.text_clean import extract_sections, truncate

logger = logging.getLogger(__name__)

FILING_ANALYST_ROLE = "You are a technology industry analyst specializing in SEC filings analysis."
TRANSCRIPT_ANALYST_ROLE = "You are a financial analyst summarizing earnings call transcripts."
EVENTS_ANALYST_ROLE = "You are a financial analyst providing insights on company events and earnings reports."

DEFAULT_SECTION_BUDGET = 2000
DEFAULT_TRANSCRIPT_BUDGET = 30000


class AnalysisPayload(BaseModel):
    """Wire shape the model must answer with. Extra keys are rejected."""

    model_config = ConfigDict(extra="forbid", strict=True)

    summary: str
    keyTechnologies: list[str]
    strategicFocus: str
    risks: list[str]
    opportunities: list[str]

    def to_artifact(self) -> AnalysisArtifact:
        return AnalysisArtifact(
            summary=self.summary,
            key_technologies=frozenset(self.keyTechnologies),
            strategic_focus=self.strategicFocus,
            risks=tuple(self.risks),
            opportunities=tuple(self.opportunities),
        )


def parse_artifact(raw: str) -> AnalysisArtifact:
    """
    Parse a JSON-mode completion into an AnalysisArtifact.

    Raises:
        MalformedAnalysisResponse: If raw is not JSON, or is missing,
            adding or mistyping any of the five fields
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedAnalysisResponse(f"response is not valid JSON: {e.msg}", raw=raw) from e
    if not isinstance(data, dict):
        raise MalformedAnalysisResponse("response is not a JSON object", raw=raw)

    try:
        payload = AnalysisPayload.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise MalformedAnalysisResponse(f"unexpected fields: {', '.join(fields)}", raw=raw) from e
    return payload.to_artifact()


class FilingAnalyzer:
    """
    Turns filing sections into a structured AnalysisArtifact.

    Each section is cut to section_budget characters before it is sent.
    The cut is lossy: anything past the budget never reaches the model.

    Representation Invariants:
    - _section_budget > 0
    """

    def __init__(self, generator: TextGenerator, section_budget: int = DEFAULT_SECTION_BUDGET) -> None:
        if section_budget <= 0:
            raise ValueError("section_budget must be positive")
        self._generator = generator
        self._section_budget = section_budget

    def build_prompt(self, sections: FilingSections) -> str:
        budget = self._section_budget
        return (
            "Analyze this SEC filing section by section. Focus on technological "
            "advancements, strategic initiatives, and industry trends.\n\n"
            f"Business Section:\n{truncate(sections.business, budget)}\n\n"
            f"Risk Factors:\n{truncate(sections.risk_factors, budget)}\n\n"
            f"Management Discussion:\n{truncate(sections.management_discussion, budget)}\n\n"
            "Respond with a JSON object with exactly these keys:\n"
            '- "summary": a concise summary of the company\'s technology focus (string)\n'
            '- "keyTechnologies": key technologies mentioned (array of strings)\n'
            '- "strategicFocus": the main strategic direction (string)\n'
            '- "risks": main technological and business risks (array of strings)\n'
            '- "opportunities": growth opportunities and strategic initiatives (array of strings)'
        )

    def analyze(self, sections: FilingSections) -> AnalysisArtifact:
        """
        Analyze filing sections with a single JSON-mode request.

        Postconditions:
        - No section in the request exceeds the section budget
        - The returned artifact has exactly the five analysis fields

        Raises:
            MalformedAnalysisResponse: If the response isn't the agreed JSON shape
            UpstreamUnavailable: If the generator is unconfigured or unreachable
            UpstreamError: If the generator answers with an error status
        """
        if not (sections.business or sections.risk_factors or sections.management_discussion):
            logger.warning("Analyzing a filing with no extracted sections")

        raw = self._generator.complete(FILING_ANALYST_ROLE, self.build_prompt(sections), json_mode=True)
        artifact = parse_artifact(raw)
        logger.info(
            "Filing analysis produced %d technologies, %d risks, %d opportunities",
            len(artifact.key_technologies),
            len(artifact.risks),
            len(artifact.opportunities),
        )
        return artifact

    def analyze_document(self, document: FilingDocument) -> AnalysisArtifact:
        """Extract the standard sections from a fetched document, then analyze them."""
        return self.analyze(extract_sections(document.raw_text))


class TranscriptSummarizer:
    """Plain-prose summary of an earnings call."""

    def __init__(self, generator: TextGenerator, budget: int = DEFAULT_TRANSCRIPT_BUDGET) -> None:
        if budget <= 0:
            raise ValueError("budget must be positive")
        self._generator = generator
        self._budget = budget

    def summarize(self, transcript: Transcript) -> str:
        if not transcript.text.strip():
            raise ValueError(f"Transcript for {transcript.ticker} is empty")

        prompt = (
            f"Summarize the following earnings call transcript for {transcript.ticker} "
            f"(Q{transcript.quarter} {transcript.year}) in 3-5 paragraphs. Focus on:\n"
            "1. Key financial results and metrics\n"
            "2. Forward guidance and outlook\n"
            "3. Important announcements or strategic initiatives\n"
            "4. Notable points from the analyst Q&A\n\n"
            f"Transcript:\n{truncate(transcript.text, self._budget)}"
        )
        return self._generator.complete(TRANSCRIPT_ANALYST_ROLE, prompt).strip()


def summarize_events(generator: TextGenerator, events: Sequence[Event]) -> str:
    """
    Narrative overview of a list of events.

    Raises:
        ValueError: If events is empty
    """
    if not events:
        raise ValueError("No events to summarize")

    listing = "\n".join(
        f"Company: {e.company.canonical_name}\n"
        f"Event Type: {e.type.value}\n"
        f"Date: {e.date.isoformat()}\n"
        f"Title: {e.title}\n"
        f"Quarter: {e.period.label()}\n"
        for e in events
    )
    prompt = (
        "Analyze the following company events and provide a comprehensive summary:\n\n"
        f"{listing}\n"
        "Please provide:\n"
        "1. Key highlights and takeaways\n"
        "2. Important financial metrics mentioned\n"
        "3. Strategic initiatives discussed\n"
        "4. Market context and competitive analysis\n"
        "5. Forward-looking statements and guidance"
    )
    return generator.complete(EVENTS_ANALYST_ROLE, prompt).strip()
