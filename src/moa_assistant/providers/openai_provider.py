import base64

import httpx
import openai
from loguru import logger
from tenacity import retry

from moa_assistant.constants import DEFAULT_OPENAI_MODELS
from moa_assistant.errors import NetworkFailure
from moa_assistant.provider import ResponseResult
from moa_assistant.providers.common import (
    AUDIO_ANALYSIS_PROMPT,
    MEMORY_PROMPT,
    OCR_PROMPT,
    PLAN_PROMPT,
    TASKS_PROMPT,
    build_prompt_blocks,
    default_retry_kwargs,
    format_conversation,
    image_block,
    parse_json_payload,
    split_data_url,
    task_context,
    tasks_from_payload,
    to_data_url,
)
from moa_assistant.session.models import (
    ActionItem,
    MediaGenerationConfig,
    Message,
    ProjectPlan,
    UploadedFile,
)
from moa_assistant.system_prompt import build_system_prompt

_TRANSIENT_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
)

_IMAGE_MODEL = "gpt-image-1"
_TRANSCRIPTION_MODEL = "whisper-1"
_IMAGE_FETCH_TIMEOUT_SECONDS = 30

# gpt-image-1 only renders square, landscape and portrait canvases.
_IMAGE_SIZES = {
    "1:1": "1024x1024",
    "16:9": "1536x1024",
    "4:3": "1536x1024",
    "9:16": "1024x1536",
    "3:4": "1024x1536",
}


def _to_openai_content(blocks: list[dict]) -> list[dict]:
    """Convert internal (Anthropic-style) content blocks to OpenAI chat content parts."""
    out: list[dict] = []
    for block in blocks:
        if block.get("type") == "text":
            out.append({"type": "text", "text": block["text"]})
        elif block.get("type") == "image":
            source = block.get("source", {})
            url = f"data:{source.get('media_type', 'image/jpeg')};base64,{source.get('data', '')}"
            out.append({"type": "image_url", "image_url": {"url": url}})
    return out


def _to_openai_messages(system_prompt: str, content: str | list[dict]) -> list[dict]:
    out: list[dict] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    if isinstance(content, str):
        out.append({"role": "user", "content": content})
    else:
        out.append({"role": "user", "content": _to_openai_content(content)})
    return out


def _image_size_for(aspect_ratio: str) -> str:
    return _IMAGE_SIZES.get(aspect_ratio, "1024x1024")


def _is_reasoning_model(model: str) -> bool:
    return model.startswith(("o1", "o3", "o4"))


class OpenAIProvider:
    def __init__(
        self,
        api_key: str,
        *,
        models: dict[str, str] | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        history_window: int = 6,
    ):
        self._client = openai.AsyncOpenAI(api_key=api_key)
        self._models = {**DEFAULT_OPENAI_MODELS, **(models or {})}
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._history_window = history_window

    def model_for(self, mode: str) -> str:
        return self._models.get(mode) or self._models["standard"]

    async def _chat(self, model: str, messages: list[dict], *, max_tokens: int, temperature: float) -> str:
        kwargs: dict = dict(model=model, messages=messages, max_completion_tokens=max_tokens)
        if not _is_reasoning_model(model):
            kwargs["temperature"] = temperature
        logger.debug(f"API request: model={model}, messages={len(messages)}")
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except _TRANSIENT_ERRORS:
            raise
        except openai.APIError as ex:
            raise NetworkFailure(f"OpenAI request failed: {ex}") from ex
        text = response.choices[0].message.content or ""
        logger.debug(f"API response: finish_reason={response.choices[0].finish_reason}, len={len(text)}")
        return text

    @retry(**default_retry_kwargs(_TRANSIENT_ERRORS))
    async def _chat_with_retry(self, *args, **kwargs) -> str:
        return await self._chat(*args, **kwargs)

    async def _complete(self, prompt: str | list[dict], *, max_tokens: int | None = None) -> str:
        try:
            return await self._chat_with_retry(
                self.model_for("standard"),
                _to_openai_messages("", prompt),
                max_tokens=max_tokens or self._max_tokens,
                temperature=0,
            )
        except _TRANSIENT_ERRORS as ex:
            raise NetworkFailure(f"OpenAI is unavailable: {ex}") from ex

    async def generate_response(
        self,
        history: list[Message],
        query: str,
        file: UploadedFile | None,
        *,
        mode: str = "standard",
        long_term_memory: str = "",
    ) -> ResponseResult:
        messages = _to_openai_messages(
            build_system_prompt(long_term_memory, mode),
            build_prompt_blocks(history, query, file, history_window=self._history_window),
        )
        try:
            text = await self._chat(
                self.model_for(mode),
                messages,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except _TRANSIENT_ERRORS as ex:
            raise NetworkFailure(f"OpenAI is unavailable: {ex}") from ex
        return ResponseResult(text=text or "I processed that, but I don't have a text response.")

    async def describe_image(self, data_url: str, mime_type: str) -> str:
        text = await self._complete([image_block(data_url), {"type": "text", "text": OCR_PROMPT}])
        return text or "No text detected."

    async def analyze_media(self, data_url: str, mime_type: str) -> str:
        if not mime_type.startswith("audio"):
            raise NetworkFailure(f"The openai provider cannot analyze {mime_type} files")
        _, data = split_data_url(data_url)
        extension = mime_type.split("/", 1)[-1] or "mp3"
        try:
            transcript = await self._client.audio.transcriptions.create(
                model=_TRANSCRIPTION_MODEL,
                file=(f"upload.{extension}", base64.b64decode(data)),
            )
        except openai.APIError as ex:
            raise NetworkFailure(f"Audio transcription failed: {ex}") from ex
        summary = await self._complete(f"{AUDIO_ANALYSIS_PROMPT}\n\nTranscript:\n{transcript.text}", max_tokens=1024)
        return f"Transcript:\n{transcript.text}\n\nSummary:\n{summary}"

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
        logger.debug(f"Image request: model={_IMAGE_MODEL}, aspect_ratio={config.aspect_ratio}")
        try:
            response = await self._client.images.generate(
                model=_IMAGE_MODEL,
                prompt=config.prompt,
                size=_image_size_for(config.aspect_ratio),
                n=1,
            )
        except openai.APIError as ex:
            raise NetworkFailure(f"Image generation failed: {ex}") from ex
        image = response.data[0] if response.data else None
        if image is None:
            raise NetworkFailure("No image generated.")
        if getattr(image, "b64_json", None):
            return f"data:image/png;base64,{image.b64_json}"
        if getattr(image, "url", None):
            return await self._inline_image(image.url)
        raise NetworkFailure("No image generated.")

    async def _inline_image(self, url: str) -> str:
        """Hosted image URLs expire, so fetch the bytes and keep them as a data URL."""
        try:
            async with httpx.AsyncClient(timeout=_IMAGE_FETCH_TIMEOUT_SECONDS, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as ex:
            logger.warning(f"Could not download generated image, keeping hosted URL: {ex}")
            return url
        mime_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        return to_data_url(response.content, mime_type)

    async def generate_video(self, config: MediaGenerationConfig) -> str:
        raise NetworkFailure("The openai provider cannot generate videos")

    async def answer_about_image(self, image: bytes, mime_type: str, question: str) -> str:
        return await self._complete(
            [image_block(to_data_url(image, mime_type)), {"type": "text", "text": question}],
        )
