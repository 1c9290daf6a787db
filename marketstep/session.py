"""Follow-up questions answered strictly from a prior filing analysis."""

import json
import logging

from marketstep.entities import AnalysisArtifact
from marketstep.errors import EmptyQuestion
from marketstep.llm import TextGenerator

logger = logging.getLogger(__name__)

QUESTION_ROLE = "You are a financial analyst helping users understand SEC filings."


class AnalysisSession:
    """
    Answers questions grounded on an AnalysisArtifact.

    Stateless: no conversation history is kept, so every answer sees only
    the artifact it is given and the question itself.
    """

    def __init__(self, generator: TextGenerator) -> None:
        self._generator = generator

    @staticmethod
    def build_prompt(artifact: AnalysisArtifact, question: str) -> str:
        return f"Based on this filing analysis: {json.dumps(artifact.to_dict())}\n\nQuestion: {question}"

    def ask(self, artifact: AnalysisArtifact, question: str) -> str:
        """
        Answer one question about an analyzed filing.

        Raises:
            EmptyQuestion: If question is blank (no request is made)
            UpstreamUnavailable: If the generator is unconfigured or unreachable
            UpstreamError: If the generator answers with an error status
        """
        if question is None or not question.strip():
            raise EmptyQuestion()

        logger.debug("Answering question of %d chars", len(question))
        return self._generator.complete(QUESTION_ROLE, self.build_prompt(artifact, question))
