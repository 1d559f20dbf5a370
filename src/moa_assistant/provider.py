from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from moa_assistant.session.models import (
    ActionItem,
    GroundingLink,
    MediaGenerationConfig,
    Message,
    ProjectPlan,
    UploadedFile,
)


@dataclass(frozen=True)
class ResponseResult:
    text: str
    grounding_links: tuple[GroundingLink, ...] = ()


@runtime_checkable
class AssistantProvider(Protocol):
    async def generate_response(
        self,
        history: list[Message],
        query: str,
        file: UploadedFile | None,
        *,
        mode: str = "standard",
        long_term_memory: str = "",
    ) -> ResponseResult:
        """Answer ``query`` given the conversation so far and the active file.

        ``history`` already ends with the user message carrying ``query``.
        Single attempt; failures raise NetworkFailure.
        """
        ...

    async def describe_image(self, data_url: str, mime_type: str) -> str:
        """OCR / scene description used when an image is uploaded."""
        ...

    async def analyze_media(self, data_url: str, mime_type: str) -> str:
        """Summary or transcript of an uploaded video or audio file."""
        ...

    async def extract_tasks(self, file: UploadedFile | None, history: list[Message]) -> list[ActionItem]: ...

    async def generate_project_plan(self, goal: str, context: str | None = None) -> ProjectPlan: ...

    async def consolidate_memory(self, history: list[Message], current_memory: str) -> str: ...

    async def generate_image(self, config: MediaGenerationConfig) -> str:
        """Return a URL (http or data:) for the generated image."""
        ...

    async def generate_video(self, config: MediaGenerationConfig) -> str: ...

    async def answer_about_image(self, image: bytes, mime_type: str, question: str) -> str:
        """Stateless image question used by the HTTP endpoint."""
        ...


def create_provider(
    provider_name: str,
    api_key: str = "",
    *,
    models: dict[str, str] | None = None,
    max_tokens: int = 4096,
    temperature: float = 0.7,
    history_window: int = 6,
    latency_seconds: float = 0.6,
) -> AssistantProvider:
    """Factory: create an AssistantProvider by name."""
    name = provider_name.strip().lower()
    if name == "template":
        from moa_assistant.providers.template_provider import TemplateProvider
        return TemplateProvider(latency_seconds=latency_seconds)
    if name == "anthropic":
        from moa_assistant.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(
            api_key,
            models=models,
            max_tokens=max_tokens,
            temperature=temperature,
            history_window=history_window,
        )
    if name == "openai":
        from moa_assistant.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(
            api_key,
            models=models,
            max_tokens=max_tokens,
            temperature=temperature,
            history_window=history_window,
        )
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'template', 'anthropic', 'openai'")
