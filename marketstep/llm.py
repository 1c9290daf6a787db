"""Text generation client over the OpenAI chat-completions API."""

import logging
from typing import Optional, Protocol

import openai
from openai import OpenAI

from marketstep.config import DEFAULT_OPENAI_MODEL
from marketstep.errors import InvalidUpstreamResponse, UpstreamError, UpstreamUnavailable

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """One-shot text generation: a system framing plus one user message."""

    def complete(self, system: str, user: str, json_mode: bool = False) -> str:
        ...


class OpenAIGenerator:
    """
    TextGenerator backed by the openai SDK.

    The SDK client is built on first use, so a generator can be constructed
    (and injected) before credentials are known.

    Representation Invariants:
    - _model is a non-empty model name
    - _client is None until the first complete() call unless injected
    """

    provider_name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[OpenAI] = None,
        timeout: float = 60.0,
        temperature: Optional[float] = None,
    ) -> None:
        self._api_key = api_key or None
        self._model = model or DEFAULT_OPENAI_MODEL
        self._client = client
        self._timeout = timeout
        self._temperature = temperature

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self._api_key:
                raise UpstreamUnavailable(self.provider_name, "API key is not configured")
            # max_retries=0: failures surface once, no silent retry
            self._client = OpenAI(api_key=self._api_key, timeout=self._timeout, max_retries=0)
        return self._client

    def complete(self, system: str, user: str, json_mode: bool = False) -> str:
        """
        Run one chat completion and return the assistant text.

        Raises:
            UpstreamUnavailable: If no key is configured or the API is unreachable
            UpstreamError: If the API answers with an error status
            InvalidUpstreamResponse: If the completion carries no text
        """
        client = self._get_client()

        request_kwargs = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        if json_mode:
            request_kwargs["response_format"] = {"type": "json_object"}
        if self._temperature is not None:
            request_kwargs["temperature"] = self._temperature

        logger.debug("Chat completion request: model=%s json_mode=%s chars=%d", self._model, json_mode, len(user))
        try:
            response = client.chat.completions.create(**request_kwargs)
        except (openai.APIConnectionError, openai.APITimeoutError) as e:
            raise UpstreamUnavailable(self.provider_name, str(e)) from e
        except openai.APIStatusError as e:
            body = e.response.text if e.response is not None else str(e)
            raise UpstreamError(self.provider_name, e.status_code, body) from e

        if not response.choices:
            raise InvalidUpstreamResponse(self.provider_name, "completion has no choices")
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise InvalidUpstreamResponse(self.provider_name, "completion is empty")
        return content
