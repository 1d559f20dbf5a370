import unittest

from fastapi.testclient import TestClient

from moa_assistant.errors import NetworkFailure
from moa_assistant.providers.template_provider import TemplateProvider
from moa_assistant.server import DEFAULT_QUESTION, create_app


class _EchoProvider(TemplateProvider):
    def __init__(self) -> None:
        super().__init__(latency_seconds=0)
        self.calls: list[tuple[bytes, str, str]] = []

    async def answer_about_image(self, image: bytes, mime_type: str, question: str) -> str:
        self.calls.append((image, mime_type, question))
        return f"answer to: {question}"


class _BrokenProvider(TemplateProvider):
    async def answer_about_image(self, image: bytes, mime_type: str, question: str) -> str:
        raise NetworkFailure("model unavailable")


class AskMoaEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self._provider = _EchoProvider()
        self._client = TestClient(create_app(self._provider))

    def test_answers_question_about_image(self) -> None:
        response = self._client.post(
            "/ask-moa",
            files={"image": ("board.png", b"\x89PNG....", "image/png")},
            data={"question": "What does the diagram show?"},
        )

        self.assertEqual(200, response.status_code)
        self.assertEqual({"success": True, "answer": "answer to: What does the diagram show?"}, response.json())
        self.assertEqual((b"\x89PNG....", "image/png", "What does the diagram show?"), self._provider.calls[0])

    def test_default_question(self) -> None:
        response = self._client.post("/ask-moa", files={"image": ("board.png", b"img", "image/png")})

        self.assertEqual(200, response.status_code)
        self.assertEqual(DEFAULT_QUESTION, self._provider.calls[0][2])

    def test_missing_image(self) -> None:
        response = self._client.post("/ask-moa", data={"question": "hello?"})

        self.assertEqual(400, response.status_code)
        self.assertEqual({"error": "No image uploaded"}, response.json())
        self.assertEqual([], self._provider.calls)

    def test_backend_failure(self) -> None:
        client = TestClient(create_app(_BrokenProvider(latency_seconds=0)))

        response = client.post("/ask-moa", files={"image": ("board.png", b"img", "image/png")})

        self.assertEqual(500, response.status_code)
        self.assertEqual({"error": "Internal Server Error"}, response.json())


if __name__ == "__main__":
    unittest.main()
