"""Offline provider: canned responses with simulated latency.

Responses are drawn from fixed template sets so a session can be exercised
end to end with no API key and no network access.
"""

from __future__ import annotations

import asyncio
import random
import re
from pathlib import PurePath
from urllib.parse import quote

from loguru import logger

from moa_assistant.errors import NetworkFailure
from moa_assistant.provider import ResponseResult
from moa_assistant.providers.common import split_data_url, task_context
from moa_assistant.session.models import (
    ActionItem,
    GroundingLink,
    MediaGenerationConfig,
    Message,
    PlanStep,
    ProjectPlan,
    UploadedFile,
    now_ms,
)

GREETING_RESPONSES = (
    "Hello! I'm MOA AI, your study assistant. Upload your notes or ask me anything to get started.",
    "Hi there! Ready to study? Share a document or image, or just ask a question.",
    "Hey! What are we learning today?",
)

GENERAL_RESPONSES = (
    "That's a great question. Break the topic into its key ideas first, then connect each idea to an example you already know.",
    "Here's a quick overview: start with the core definition, look at how it is applied, then test yourself with a short practice question.",
    "I can help with that. Could you tell me which part you find most confusing so I can focus the explanation?",
    "Good thinking. A useful approach is to summarize the idea in one sentence, then list the supporting points underneath it.",
    "Let's work through it together. Write down what you already know, and we'll fill in the gaps step by step.",
)

DOCUMENT_RESPONSES = (
    'Based on "{name}", the main points are: {excerpt}',
    'Looking at "{name}", here is what stands out: {excerpt}',
    'From your file "{name}": {excerpt} Ask me to explain any part of it in more detail.',
)

ATTACHMENT_RESPONSES = (
    "Thanks for the attachment. I can see what you've shared; tell me what you'd like to know about it.",
    "Got it. I've looked at your attachment. Should I describe it, explain it, or quiz you on it?",
)

SEARCH_LINKS = (
    GroundingLink(title="Wikipedia", uri="https://en.wikipedia.org/wiki/Special:Search", source="search"),
    GroundingLink(title="Khan Academy", uri="https://www.khanacademy.org/", source="search"),
)

MAPS_LINKS = (
    GroundingLink(title="Google Maps", uri="https://www.google.com/maps", source="maps"),
)

SAMPLE_VIDEO_URL = "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/ForBiggerJoyrides.mp4"

_GREETING_WORDS = {"hi", "hello", "hey", "habari", "jambo", "greetings"}
_DOCUMENT_WORDS = {"file", "document", "doc", "notes", "pdf", "page", "text", "image", "picture", "upload"}
_WORD_RE = re.compile(r"[a-z0-9']+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+|\n+")

_PLACEHOLD_SIZES = {
    "1:1": "1024x1024",
    "16:9": "1280x720",
    "9:16": "720x1280",
    "4:3": "1024x768",
    "3:4": "768x1024",
}


def select_template_set(history: list[Message], query: str, file: UploadedFile | None) -> str:
    """Name of the template set that answers ``query``: greeting, attachment, document or general."""
    last = history[-1] if history else None
    if last is not None and last.role == "user" and last.attachment:
        return "attachment"

    words = set(_WORD_RE.findall(query.lower()))
    if words and words <= _GREETING_WORDS | {"there", "moa"}:
        return "greeting"

    if file is not None:
        stem = PurePath(file.name).stem.lower()
        mentions = words & _DOCUMENT_WORDS or (stem and stem in words) or file.name.lower() in query.lower()
        if mentions:
            return "document"

    return "general"


def _excerpt(text: str, limit: int = 3) -> str:
    sentences = [s.strip() for s in _SENTENCE_RE.split(text or "") if s.strip()]
    if not sentences:
        return "(the file has no readable text)"
    return " ".join(sentences[:limit])


class TemplateProvider:
    def __init__(self, *, latency_seconds: float = 0.6, rng: random.Random | None = None):
        self._latency_seconds = max(0.0, latency_seconds)
        self._rng = rng or random.Random()

    async def _simulate_latency(self) -> None:
        if self._latency_seconds:
            await asyncio.sleep(self._latency_seconds)

    async def generate_response(
        self,
        history: list[Message],
        query: str,
        file: UploadedFile | None,
        *,
        mode: str = "standard",
        long_term_memory: str = "",
    ) -> ResponseResult:
        await self._simulate_latency()

        template_set = select_template_set(history, query, file)
        logger.debug(f"Template response: set={template_set}, mode={mode}")
        if template_set == "greeting":
            text = self._rng.choice(GREETING_RESPONSES)
        elif template_set == "attachment":
            text = self._rng.choice(ATTACHMENT_RESPONSES)
        elif template_set == "document":
            assert file is not None
            source = file.content if file.category in ("text", "image") else f"a {file.category} file"
            text = self._rng.choice(DOCUMENT_RESPONSES).format(name=file.name, excerpt=_excerpt(source))
        else:
            text = self._rng.choice(GENERAL_RESPONSES)

        links: tuple[GroundingLink, ...] = ()
        if mode == "search":
            links = SEARCH_LINKS
        elif mode == "maps":
            links = MAPS_LINKS
        return ResponseResult(text=text, grounding_links=links)

    async def describe_image(self, data_url: str, mime_type: str) -> str:
        await self._simulate_latency()
        _, data = split_data_url(data_url)
        size_kb = len(data) * 3 / 4 / 1024
        return (
            f"Offline preview of a {mime_type} image ({size_kb:.0f} KB). "
            "Text transcription needs the anthropic or openai provider."
        )

    async def analyze_media(self, data_url: str, mime_type: str) -> str:
        await self._simulate_latency()
        kind = "video" if mime_type.startswith("video") else "audio"
        return f"Offline mode: the {kind} file ({mime_type}) was stored, but no analysis is available without an AI provider."

    async def extract_tasks(self, file: UploadedFile | None, history: list[Message]) -> list[ActionItem]:
        await self._simulate_latency()
        context, latest = task_context(file, history)
        source = "" if context == "No document." else context.removeprefix("Document Content: ").removesuffix("...")
        sentences = [s.strip() for s in _SENTENCE_RE.split(source) if len(s.strip()) > 3][:4]
        if latest.strip():
            sentences.append(latest.strip())

        stamp = now_ms()
        return [
            ActionItem(id=f"t_{stamp}_{i}", content=f"Review: {sentence[:120]}")
            for i, sentence in enumerate(sentences)
        ]

    async def generate_project_plan(self, goal: str, context: str | None = None) -> ProjectPlan:
        await self._simulate_latency()
        goal = goal.strip()
        steps = (
            PlanStep(step="Define the goal", details=f"Write down what success looks like for: {goal}."),
            PlanStep(step="Research", details="Collect notes, readings and examples relevant to the goal."),
            PlanStep(step="Break it down", details="Split the work into weekly milestones with clear outputs."),
            PlanStep(step="Execute", details="Work through the milestones and track progress daily."),
            PlanStep(step="Review", details="Check the results against the goal and note what to improve."),
        )
        return ProjectPlan(id=f"plan_{now_ms()}", title=f"Plan: {goal}", steps=steps)

    async def consolidate_memory(self, history: list[Message], current_memory: str) -> str:
        topics = [line for line in (current_memory or "").splitlines() if line.strip()]
        for msg in history:
            if msg.role != "user" or not msg.text.strip():
                continue
            entry = f"- Asked about: {msg.text.strip()[:80]}"
            if entry not in topics:
                topics.append(entry)
        return "\n".join(topics[-10:])

    async def generate_image(self, config: MediaGenerationConfig) -> str:
        await self._simulate_latency()
        size = _PLACEHOLD_SIZES.get(config.aspect_ratio, "1024x1024")
        return f"https://placehold.co/{size}/0284c7/white?text={quote(config.prompt[:20])}"

    async def generate_video(self, config: MediaGenerationConfig) -> str:
        await self._simulate_latency()
        if not config.prompt.strip():
            raise NetworkFailure("Video generation needs a prompt")
        return SAMPLE_VIDEO_URL

    async def answer_about_image(self, image: bytes, mime_type: str, question: str) -> str:
        await self._simulate_latency()
        return (
            f"I received a {mime_type} image ({len(image):,} bytes). "
            f'In offline mode I can\'t inspect it, but your question was: "{question}"'
        )
