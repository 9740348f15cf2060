"""Chat-completions providers over httpx."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
OPENAI_TIMEOUT_SECONDS = 60.0

PERPLEXITY_BASE_URL = "https://api.perplexity.ai"
PERPLEXITY_DEFAULT_MODEL = "sonar-pro"
PERPLEXITY_TIMEOUT_SECONDS = 90.0
PERPLEXITY_TEMPERATURE = 0.3
PERPLEXITY_MAX_TOKENS = 4000

JSON_ONLY_SUFFIX = "\n\nIMPORTANT: Return ONLY valid JSON."
MARKDOWN_SUFFIX = "\n\nFormat the answer as clean Markdown."


class ProviderError(RuntimeError):
    """One provider call failed: transport error, bad status, or unusable body."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


@dataclass(slots=True)
class ChatRequest:
    system_prompt: str
    user_prompt: str
    json_mode: bool = True
    max_tokens: int = 2000
    temperature: float | None = None


class ChatProvider:
    """Base provider: POSTs to ``{base_url}/chat/completions`` and returns the content."""

    name = "chat"
    default_temperature = 0.5

    def __init__(  # noqa: PLR0913
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: float,
        max_retries: int = 1,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.model = model
        self._base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport or httpx.HTTPTransport(retries=max_retries),
        )

    def complete(self, request: ChatRequest) -> str:
        url = f"{self._base_url}/chat/completions"
        body = self.build_body(request)
        try:
            response = self._client.post(url, json=body)
        except httpx.TimeoutException as exc:
            logger.warning("Timeout calling %s (%s)", self.name, self.model)
            raise ProviderError(self.name, "request timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("HTTP error calling %s: %s", self.name, exc)
            raise ProviderError(self.name, f"network error: {exc}") from exc

        if not response.is_success:
            raise ProviderError(
                self.name,
                f"HTTP {response.status_code}: {_error_text(response)}",
            )
        return _extract_content(self.name, response)

    def build_body(self, request: ChatRequest) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "max_tokens": request.max_tokens,
            "temperature": (
                request.temperature
                if request.temperature is not None
                else self.default_temperature
            ),
        }

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ChatProvider:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class OpenAiChatProvider(ChatProvider):
    """Primary provider; JSON mode uses the native ``json_object`` response format."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str,
        model: str = OPENAI_DEFAULT_MODEL,
        base_url: str = OPENAI_BASE_URL,
        timeout_seconds: float = OPENAI_TIMEOUT_SECONDS,
        max_retries: int = 1,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            api_key=api_key,
            model=model,
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
            transport=transport,
        )

    def build_body(self, request: ChatRequest) -> dict[str, Any]:
        body = super().build_body(request)
        if request.json_mode:
            body["response_format"] = {"type": "json_object"}
        return body


class PerplexityChatProvider(ChatProvider):
    """Fallback and research provider; output format is requested in the prompt."""

    name = "perplexity"
    default_temperature = PERPLEXITY_TEMPERATURE

    def __init__(
        self,
        *,
        api_key: str,
        model: str = PERPLEXITY_DEFAULT_MODEL,
        base_url: str = PERPLEXITY_BASE_URL,
        timeout_seconds: float = PERPLEXITY_TIMEOUT_SECONDS,
        max_retries: int = 1,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            api_key=api_key,
            model=model,
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
            transport=transport,
        )

    def build_body(self, request: ChatRequest) -> dict[str, Any]:
        suffix = JSON_ONLY_SUFFIX if request.json_mode else MARKDOWN_SUFFIX
        body = super().build_body(
            ChatRequest(
                system_prompt=request.system_prompt,
                user_prompt=request.user_prompt + suffix,
                json_mode=request.json_mode,
                max_tokens=max(request.max_tokens, PERPLEXITY_MAX_TOKENS),
                temperature=request.temperature,
            ),
        )
        return body


def _extract_content(provider: str, response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError as exc:
        raise ProviderError(provider, "response body is not JSON") from exc

    choices = payload.get("choices") if isinstance(payload, dict) else None
    if not isinstance(choices, list) or not choices:
        raise ProviderError(provider, "response has no choices")
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content.strip():
        raise ProviderError(provider, "empty content")
    return content


def _error_text(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
    return response.text[:200]
