import asyncio
import json
import unittest
from types import SimpleNamespace

import anthropic
import httpx

from moa_assistant.errors import NetworkFailure
from moa_assistant.providers.anthropic_provider import AnthropicProvider
from moa_assistant.session.models import Message, UploadedFile


def _response(*blocks: object) -> SimpleNamespace:
    return SimpleNamespace(
        stop_reason="end_turn",
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        content=list(blocks),
    )


def _text(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text)


class _FakeMessages:
    def __init__(self, responses: list[object]):
        self._responses = list(responses)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        result = self._responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class _FakeClient:
    def __init__(self, responses: list[object]):
        self.messages = _FakeMessages(responses)


class AnthropicProviderTests(unittest.TestCase):
    def _make_provider(self, *responses: object) -> AnthropicProvider:
        provider = AnthropicProvider("test-key", models={"standard": "claude-test"}, max_tokens=500, temperature=0.3)
        provider._client = _FakeClient(list(responses))
        return provider

    def _calls(self, provider: AnthropicProvider) -> list[dict]:
        return provider._client.messages.calls

    def test_generate_response_sends_file_context_and_memory(self) -> None:
        provider = self._make_provider(_response(_text("Mitosis has four phases.")))
        notes = UploadedFile(name="notes.txt", type="text/plain", content="Mitosis notes", category="text")
        history = [Message(role="user", text="summarize")]

        result = asyncio.run(
            provider.generate_response(history, "summarize", notes, long_term_memory="- studies biology")
        )

        self.assertEqual("Mitosis has four phases.", result.text)
        call = self._calls(provider)[0]
        self.assertEqual("claude-test", call["model"])
        self.assertEqual(0.3, call["temperature"])
        self.assertIn("- studies biology", call["system"])
        texts = [b["text"] for b in call["messages"][0]["content"] if b["type"] == "text"]
        self.assertIn("[CONTEXT FROM UPLOADED FILE: notes.txt]", texts[0])
        self.assertEqual("summarize", texts[-1])
        self.assertNotIn("tools", call)

    def test_thinking_mode_enables_thinking_without_temperature(self) -> None:
        provider = self._make_provider(_response(SimpleNamespace(type="thinking", thinking="..."), _text("Done")))

        result = asyncio.run(provider.generate_response([], "why?", None, mode="thinking"))

        call = self._calls(provider)[0]
        self.assertEqual("Done", result.text)
        self.assertEqual("enabled", call["thinking"]["type"])
        self.assertNotIn("temperature", call)

    def test_search_mode_returns_grounding_links(self) -> None:
        search_result = SimpleNamespace(
            type="web_search_tool_result",
            content=[
                SimpleNamespace(url="https://example.org/osmosis", title="Osmosis"),
                SimpleNamespace(url="https://example.org/osmosis", title="Osmosis again"),
            ],
        )
        provider = self._make_provider(_response(search_result, _text("Water moves.")))

        result = asyncio.run(provider.generate_response([], "osmosis", None, mode="search"))

        self.assertEqual(1, len(result.grounding_links))
        self.assertEqual("https://example.org/osmosis", result.grounding_links[0].uri)
        self.assertEqual("web_search", self._calls(provider)[0]["tools"][0]["name"])

    def test_connection_error_is_single_attempt_network_failure(self) -> None:
        error = anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        provider = self._make_provider(error)

        with self.assertRaises(NetworkFailure):
            asyncio.run(provider.generate_response([], "hi", None))
        self.assertEqual(1, len(self._calls(provider)))

    def test_extract_tasks_parses_fenced_json(self) -> None:
        payload = "```json\n" + json.dumps(["Read chapter 2", "Do exercises"]) + "\n```"
        provider = self._make_provider(_response(_text(payload)))

        tasks = asyncio.run(provider.extract_tasks(None, [Message(role="user", text="plan my week")]))

        self.assertEqual(["Read chapter 2", "Do exercises"], [t.content for t in tasks])
        self.assertEqual(0, self._calls(provider)[0]["temperature"])

    def test_extract_tasks_returns_empty_on_bad_json(self) -> None:
        provider = self._make_provider(_response(_text("no tasks here")))
        self.assertEqual([], asyncio.run(provider.extract_tasks(None, [])))

    def test_project_plan(self) -> None:
        plan_json = json.dumps({"title": "Exam prep", "steps": [{"step": "Revise", "details": "Chapters 1-3"}]})
        provider = self._make_provider(_response(_text(plan_json)))

        plan = asyncio.run(provider.generate_project_plan("Pass the exam"))

        self.assertEqual("Exam prep", plan.title)
        self.assertEqual("pending", plan.steps[0].status)

    def test_project_plan_rejects_non_json(self) -> None:
        provider = self._make_provider(_response(_text("Sure! Here's a plan...")))
        with self.assertRaises(NetworkFailure):
            asyncio.run(provider.generate_project_plan("Pass the exam"))

    def test_media_generation_is_unsupported(self) -> None:
        provider = self._make_provider()
        with self.assertRaises(NetworkFailure):
            asyncio.run(provider.analyze_media("data:video/mp4;base64,AA==", "video/mp4"))


if __name__ == "__main__":
    unittest.main()
