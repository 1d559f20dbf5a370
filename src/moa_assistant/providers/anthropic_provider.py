import anthropic
from loguru import logger
from tenacity import retry

from moa_assistant.constants import DEFAULT_ANTHROPIC_MODELS
from moa_assistant.errors import NetworkFailure
from moa_assistant.provider import ResponseResult
from moa_assistant.providers.common import (
    MEMORY_PROMPT,
    OCR_PROMPT,
    PLAN_PROMPT,
    TASKS_PROMPT,
    build_prompt_blocks,
    default_retry_kwargs,
    format_conversation,
    image_block,
    parse_json_payload,
    task_context,
    tasks_from_payload,
    to_data_url,
)
from moa_assistant.session.models import (
    ActionItem,
    GroundingLink,
    MediaGenerationConfig,
    Message,
    ProjectPlan,
    UploadedFile,
)
from moa_assistant.system_prompt import build_system_prompt

_TRANSIENT_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.APITimeoutError,
)

_WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 3}
_THINKING_BUDGET_TOKENS = 1024


def _response_text(response) -> str:
    return "".join(block.text for block in response.content if getattr(block, "type", "text") == "text")


def _grounding_links(response, source: str) -> tuple[GroundingLink, ...]:
    links: list[GroundingLink] = []
    seen: set[str] = set()
    for block in response.content:
        if getattr(block, "type", "") != "web_search_tool_result":
            continue
        results = getattr(block, "content", None)
        if not isinstance(results, list):
            continue
        for result in results:
            uri = getattr(result, "url", "")
            if uri and uri not in seen:
                seen.add(uri)
                links.append(GroundingLink(title=getattr(result, "title", "") or "Web Source", uri=uri, source=source))
    return tuple(links)


class AnthropicProvider:
    def __init__(
        self,
        api_key: str,
        *,
        models: dict[str, str] | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        history_window: int = 6,
    ):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._models = {**DEFAULT_ANTHROPIC_MODELS, **(models or {})}
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._history_window = history_window

    def model_for(self, mode: str) -> str:
        return self._models.get(mode) or self._models["standard"]

    async def _create(self, **kwargs):
        logger.debug(f"API request: model={kwargs.get('model')}, max_tokens={kwargs.get('max_tokens')}")
        try:
            response = await self._client.messages.create(**kwargs)
        except _TRANSIENT_ERRORS:
            raise
        except anthropic.APIError as ex:
            raise NetworkFailure(f"Anthropic request failed: {ex}") from ex
        usage = response.usage
        logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )
        return response

    @retry(**default_retry_kwargs(_TRANSIENT_ERRORS))
    async def _create_with_retry(self, **kwargs):
        return await self._create(**kwargs)

    async def _complete(self, prompt: str | list[dict], *, max_tokens: int | None = None) -> str:
        """Auxiliary single-turn call on the standard model, retried on transient errors."""
        try:
            response = await self._create_with_retry(
                model=self.model_for("standard"),
                max_tokens=max_tokens or self._max_tokens,
                temperature=0,
                messages=[{"role": "user", "content": prompt}],
            )
        except _TRANSIENT_ERRORS as ex:
            raise NetworkFailure(f"Anthropic is unavailable: {ex}") from ex
        return _response_text(response)

    async def generate_response(
        self,
        history: list[Message],
        query: str,
        file: UploadedFile | None,
        *,
        mode: str = "standard",
        long_term_memory: str = "",
    ) -> ResponseResult:
        kwargs: dict = dict(
            model=self.model_for(mode),
            max_tokens=self._max_tokens,
            system=build_system_prompt(long_term_memory, mode),
            messages=[
                {
                    "role": "user",
                    "content": build_prompt_blocks(history, query, file, history_window=self._history_window),
                }
            ],
        )
        if mode == "thinking":
            kwargs["max_tokens"] = max(self._max_tokens, _THINKING_BUDGET_TOKENS * 2)
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": _THINKING_BUDGET_TOKENS}
        else:
            kwargs["temperature"] = self._temperature
        if mode in ("search", "maps"):
            kwargs["tools"] = [_WEB_SEARCH_TOOL]

        try:
            response = await self._create(**kwargs)
        except _TRANSIENT_ERRORS as ex:
            raise NetworkFailure(f"Anthropic is unavailable: {ex}") from ex

        text = _response_text(response) or "I processed that, but I don't have a text response."
        return ResponseResult(text=text, grounding_links=_grounding_links(response, mode))

    async def describe_image(self, data_url: str, mime_type: str) -> str:
        text = await self._complete([image_block(data_url), {"type": "text", "text": OCR_PROMPT}])
        return text or "No text detected."

    async def analyze_media(self, data_url: str, mime_type: str) -> str:
        raise NetworkFailure(f"The anthropic provider cannot analyze {mime_type} files")

    async def extract_tasks(self, file: UploadedFile | None, history: list[Message]) -> list[ActionItem]:
        context, latest = task_context(file, history)
        try:
            text = await self._complete(TASKS_PROMPT.format(context=context, latest=latest), max_tokens=1024)
            return tasks_from_payload(parse_json_payload(text))
        except (NetworkFailure, ValueError) as ex:
            logger.warning(f"Task extraction failed: {ex}")
            return []

    async def generate_project_plan(self, goal: str, context: str | None = None) -> ProjectPlan:
        extra = f"Relevant notes:\n{context[:5_000]}\n" if context else ""
        text = await self._complete(PLAN_PROMPT.format(goal=goal, context=extra), max_tokens=2048)
        try:
            payload = parse_json_payload(text)
        except ValueError as ex:
            raise NetworkFailure(f"Plan response was not valid JSON: {ex}") from ex
        if not isinstance(payload, dict):
            raise NetworkFailure("Plan response was not a JSON object")
        return ProjectPlan.from_dict(payload)

    async def consolidate_memory(self, history: list[Message], current_memory: str) -> str:
        prompt = MEMORY_PROMPT.format(memory=current_memory or "(empty)", conversation=format_conversation(history))
        return (await self._complete(prompt, max_tokens=512)).strip()

    async def generate_image(self, config: MediaGenerationConfig) -> str:
        raise NetworkFailure("The anthropic provider cannot generate images")

    async def generate_video(self, config: MediaGenerationConfig) -> str:
        raise NetworkFailure("The anthropic provider cannot generate videos")

    async def answer_about_image(self, image: bytes, mime_type: str, question: str) -> str:
        return await self._complete(
            [image_block(to_data_url(image, mime_type)), {"type": "text", "text": question}],
        )
