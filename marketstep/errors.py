"""Typed failures raised across the pipeline."""

from typing import Optional


class MarketStepError(Exception):
    """Base class for every failure a pipeline boundary can raise."""


class MissingParameter(MarketStepError):
    """A required input was not supplied by the caller."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Missing required parameter: {name}")


class UpstreamUnavailable(MarketStepError):
    """
    The provider cannot be called at all.

    Raised when credentials are not configured or the provider is
    unreachable (connection refused, DNS failure, timeout).
    """

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider} unavailable: {reason}")


class UpstreamError(MarketStepError):
    """The provider answered with a non-success HTTP status."""

    def __init__(self, provider: str, status_code: int, body: str = "") -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body
        preview = body[:200] if body else ""
        super().__init__(f"{provider} returned status {status_code}: {preview}")


class InvalidUpstreamResponse(MarketStepError):
    """The provider answered successfully but the payload has an unusable shape."""

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"Invalid response from {provider}: {reason}")


class MalformedAnalysisResponse(MarketStepError):
    """The text-generation provider did not return the agreed JSON shape."""

    def __init__(self, reason: str, raw: Optional[str] = None) -> None:
        self.reason = reason
        self.raw = raw
        super().__init__(f"Malformed analysis response: {reason}")


class EmptyQuestion(MarketStepError):
    """A follow-up question was blank."""

    def __init__(self) -> None:
        super().__init__("Question cannot be empty")
