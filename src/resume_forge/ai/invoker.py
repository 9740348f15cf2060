"""Single entry point for AI calls: primary provider, one fallback, fence stripping."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Protocol

from resume_forge.ai.failure_classifier import classify_provider_failure
from resume_forge.ai.providers import (
    ChatRequest,
    OpenAiChatProvider,
    PerplexityChatProvider,
    ProviderError,
)
from resume_forge.ai.sanitization import parse_json_object, strip_code_fences
from resume_forge.errors import ProviderFailure

if TYPE_CHECKING:
    from resume_forge.config import AiSettings

logger = logging.getLogger(__name__)


class Provider(Protocol):
    name: str

    def complete(self, request: ChatRequest) -> str: ...

    def close(self) -> None: ...


@dataclass(slots=True)
class InvokeOptions:
    json_mode: bool = True
    max_tokens: int = 2000
    temperature: float | None = None
    fallback_system_prompt: str | None = None
    research_first: bool = False


class AiInvoker:
    """Calls the primary provider and falls back once to the secondary one."""

    def __init__(
        self,
        primary: Provider,
        fallback: Provider | None = None,
        *,
        default_options: InvokeOptions | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.default_options = default_options or InvokeOptions()

    @classmethod
    def from_settings(cls, settings: AiSettings) -> AiInvoker:
        providers: list[Provider] = []
        if settings.openai_api_key:
            providers.append(
                OpenAiChatProvider(
                    api_key=settings.openai_api_key,
                    model=settings.openai_model,
                    base_url=settings.openai_base_url,
                    timeout_seconds=settings.openai_timeout_seconds,
                    max_retries=settings.max_retries,
                ),
            )
        if settings.perplexity_api_key:
            providers.append(
                PerplexityChatProvider(
                    api_key=settings.perplexity_api_key,
                    model=settings.perplexity_model,
                    base_url=settings.perplexity_base_url,
                    timeout_seconds=settings.perplexity_timeout_seconds,
                    max_retries=settings.max_retries,
                ),
            )
        if not providers:
            raise ValueError("At least one AI provider API key must be configured.")
        return cls(providers[0], providers[1] if len(providers) > 1 else None)

    def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        options: InvokeOptions | None = None,
    ) -> str:
        """Return the provider text with any wrapping code fence removed.

        Raises :class:`ProviderFailure` when every configured provider failed.
        """

        opts = options or self.default_options
        order = [self.primary, self.fallback]
        if opts.research_first:
            order.reverse()
        attempts = [provider for provider in order if provider is not None]

        errors: list[str] = []
        for index, provider in enumerate(attempts):
            system = system_prompt
            if index > 0 and opts.fallback_system_prompt:
                system = opts.fallback_system_prompt
            request = ChatRequest(
                system_prompt=system,
                user_prompt=user_prompt,
                json_mode=opts.json_mode,
                max_tokens=opts.max_tokens,
                temperature=opts.temperature,
            )
            try:
                text = provider.complete(request)
            except ProviderError as exc:
                errors.append(str(exc))
                if index + 1 < len(attempts):
                    logger.warning(
                        "Provider %s failed (%s); falling back to %s",
                        provider.name,
                        exc,
                        attempts[index + 1].name,
                    )
                continue
            return strip_code_fences(text)

        classification = classify_provider_failure(errors)
        raise ProviderFailure(
            "All AI providers failed: " + "; ".join(errors),
            classification=classification,
        )

    def invoke_json(
        self,
        system_prompt: str,
        user_prompt: str,
        options: InvokeOptions | None = None,
    ) -> dict[str, Any]:
        opts = replace(options or self.default_options, json_mode=True)
        return parse_json_object(self.invoke(system_prompt, user_prompt, opts))

    def research(
        self,
        system_prompt: str,
        user_prompt: str,
        options: InvokeOptions | None = None,
    ) -> dict[str, Any]:
        """JSON call that prefers the web-grounded research provider."""

        opts = replace(options or self.default_options, json_mode=True, research_first=True)
        return parse_json_object(self.invoke(system_prompt, user_prompt, opts))

    def close(self) -> None:
        self.primary.close()
        if self.fallback is not None:
            self.fallback.close()
