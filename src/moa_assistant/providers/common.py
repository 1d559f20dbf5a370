from __future__ import annotations

import base64
import json
import re
from typing import Any

from loguru import logger
from tenacity import retry_if_exception_type, stop_after_attempt, wait_exponential

from moa_assistant.session.models import ActionItem, Message, UploadedFile, now_ms

OCR_PROMPT = (
    "Transcribe all text visible in this image. Format it clearly with headers if applicable. "
    "If it's a form or table, try to preserve the structure as much as possible using Markdown. "
    "If there is no text, describe the diagram or scene in detail for study notes."
)
VIDEO_ANALYSIS_PROMPT = "Analyze this video. Describe the action, scene, and key events timestamp by timestamp."
AUDIO_ANALYSIS_PROMPT = "Transcribe this audio file and summarize the key points."

TASKS_PROMPT = """\
Extract actionable tasks from the following context and conversation.
Return only a JSON array of strings, one entry per task, with no other text.

Context: {context}
Latest Chat: {latest}"""

PLAN_PROMPT = """\
Create a project plan for: {goal}
{context}
Return only a JSON object of the form
{{"title": "...", "steps": [{{"step": "...", "details": "...", "status": "pending"}}]}}
with 3 to 8 steps and no other text."""

MEMORY_PROMPT = """\
You maintain a short long-term memory about a student using a study assistant.
Merge the existing memory with anything new the conversation reveals about the \
student: their subjects, goals, level, preferences and recurring difficulties.

Rules:
- Keep it under 120 words, as terse bullet points.
- Drop details that are only about a single question.
- If nothing new was learned, return the existing memory unchanged.

EXISTING MEMORY:
{memory}

CONVERSATION:
{conversation}"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+)?(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)


def _on_retry(retry_state):
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying in {wait:.0f}s (attempt {attempt}/5)...")


def default_retry_kwargs(exception_types: tuple[type[Exception], ...]) -> dict:
    return {
        "retry": retry_if_exception_type(exception_types),
        "wait": wait_exponential(multiplier=10, min=10, max=320),
        "stop": stop_after_attempt(5),
        "before_sleep": _on_retry,
        "reraise": True,
    }


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type or 'application/octet-stream'};base64,{base64.b64encode(data).decode('ascii')}"


def split_data_url(data_url: str) -> tuple[str, str]:
    """Return (mime_type, base64 payload). Bare base64 is assumed to be JPEG."""
    match = _DATA_URL_RE.match(data_url or "")
    if match is None:
        return "image/jpeg", data_url or ""
    return match.group("mime") or "image/jpeg", match.group("data")


def image_block(data_url: str) -> dict:
    mime_type, data = split_data_url(data_url)
    return {"type": "image", "source": {"type": "base64", "media_type": mime_type, "data": data}}


def build_prompt_blocks(
    history: list[Message],
    query: str,
    file: UploadedFile | None,
    *,
    history_window: int = 6,
) -> list[dict]:
    """Content blocks (Anthropic-style) for one response turn.

    Order: active file context, recent conversation, the query, then the image
    attached to the latest user message if there is one.
    """
    blocks: list[dict] = []

    if file is not None and file.content:
        if file.category in ("text", "image") and not file.content.startswith("data:"):
            blocks.append({
                "type": "text",
                "text": f"[CONTEXT FROM UPLOADED FILE: {file.name}]\n{file.content}\n\n[END CONTEXT]",
            })
        if file.category == "image" and file.original_image:
            blocks.append(image_block(file.original_image))
            blocks.append({"type": "text", "text": f"Analyze this image ({file.name}) as part of the context."})
        elif file.category in ("video", "audio"):
            blocks.append({
                "type": "text",
                "text": f"The active file is the {file.category} {file.name!r}; its analysis appears in the conversation.",
            })

    recent = history[-history_window:] if history_window > 0 else []
    conversation = ""
    for msg in recent:
        conversation += f"{'User' if msg.role == 'user' else 'Model'}: {msg.text}\n"
        if msg.attachment:
            conversation += f"[User attached a {msg.attachment_type or 'image'}]\n"
    if conversation:
        blocks.append({"type": "text", "text": f"Conversation History:\n{conversation}"})

    blocks.append({"type": "text", "text": query})

    last = history[-1] if history else None
    if last is not None and last.role == "user" and last.attachment and (last.attachment_type or "image") == "image":
        blocks.append(image_block(last.attachment))

    return blocks


def format_conversation(messages: list[Message], *, max_chars: int = 20_000) -> str:
    lines = [f"{'User' if m.role == 'user' else 'Model'}: {m.text}" for m in messages if not m.is_error]
    text = "\n".join(lines)
    if len(text) > max_chars:
        half = max_chars // 2
        text = text[:half] + "\n\n[...middle of conversation omitted for brevity...]\n\n" + text[-half:]
    return text


def task_context(file: UploadedFile | None, history: list[Message]) -> tuple[str, str]:
    if file is not None and file.content and not file.content.startswith("data:"):
        context = f"Document Content: {file.content[:10_000]}..."
    else:
        context = "No document."
    latest = history[-1].text if history else ""
    return context, latest


def parse_json_payload(text: str) -> Any:
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    return json.loads(cleaned)


def tasks_from_payload(payload: Any) -> list[ActionItem]:
    if isinstance(payload, dict):
        payload = payload.get("tasks", [])
    if not isinstance(payload, list):
        return []

    stamp = now_ms()
    items: list[ActionItem] = []
    for i, entry in enumerate(payload):
        if isinstance(entry, dict):
            content = str(entry.get("content") or entry.get("task") or "").strip()
            done = bool(entry.get("isCompleted", False))
        else:
            content = str(entry).strip()
            done = False
        if content:
            items.append(ActionItem(id=f"t_{stamp}_{i}", content=content, is_completed=done))
    return items
