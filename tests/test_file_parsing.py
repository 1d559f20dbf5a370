import asyncio
import io
import unittest

from docx import Document
from pypdf import PdfWriter

from moa_assistant.errors import NetworkFailure, ParseFailure
from moa_assistant.file_parsing import DOCX_MIME, classify, guess_mime_type, parse_document, parse_upload
from moa_assistant.providers.template_provider import TemplateProvider


class _MediaFailingProvider(TemplateProvider):
    async def analyze_media(self, data_url: str, mime_type: str) -> str:
        raise NetworkFailure("quota exhausted")


def _docx_bytes(*paragraphs: str) -> bytes:
    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def _pdf_bytes(pages: int) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=72, height=72)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class ClassifyTests(unittest.TestCase):
    def test_classify_by_mime_and_extension(self) -> None:
        cases = [
            ("a.png", "image/png", "image"),
            ("clip.mp4", "video/mp4", "video"),
            ("talk.mp3", "audio/mpeg", "audio"),
            ("paper.pdf", "application/octet-stream", "pdf"),
            ("essay.docx", "", "docx"),
            ("old.doc", "application/msword", "doc"),
            ("notes.txt", "text/plain", "text"),
            ("data.bin", "application/octet-stream", "text"),
        ]
        for name, mime, expected in cases:
            with self.subTest(name=name):
                self.assertEqual(expected, classify(name, mime))

    def test_guess_mime_type_for_unregistered_text_extension(self) -> None:
        self.assertEqual("text/plain", guess_mime_type("notes.log"))
        self.assertEqual("application/octet-stream", guess_mime_type("blob.zzz"))


class ParseDocumentTests(unittest.TestCase):
    def test_plain_text(self) -> None:
        self.assertEqual("Hello", parse_document(b"Hello", "notes.txt", "text/plain"))

    def test_utf8_bom_is_stripped(self) -> None:
        self.assertEqual("Jambo", parse_document("\ufeffJambo".encode("utf-8"), "notes.txt", "text/plain"))

    def test_docx_paragraphs(self) -> None:
        text = parse_document(_docx_bytes("Cells", "Mitochondria"), "bio.docx", DOCX_MIME)
        self.assertEqual("Cells\nMitochondria", text)

    def test_pdf_pages_are_labelled(self) -> None:
        text = parse_document(_pdf_bytes(2), "paper.pdf", "application/pdf")
        self.assertIn("--- Page 1 ---", text)
        self.assertIn("--- Page 2 ---", text)

    def test_failures(self) -> None:
        cases = [
            (b"", "empty.txt", "text/plain"),
            (b"\x00\x01\x02", "blob.bin", "application/octet-stream"),
            (b"\xff\xfe\xfa", "latin.txt", "text/plain"),
            (b"not a zip", "broken.docx", DOCX_MIME),
            (b"not a pdf", "broken.pdf", "application/pdf"),
            (b"legacy", "old.doc", "application/msword"),
        ]
        for data, name, mime in cases:
            with self.subTest(name=name):
                with self.assertRaises(ParseFailure):
                    parse_document(data, name, mime)

    def test_text_size_limit(self) -> None:
        with self.assertRaises(ParseFailure):
            parse_document(b"x" * 11, "big.txt", "text/plain", max_text_bytes=10)


class ParseUploadTests(unittest.TestCase):
    def setUp(self) -> None:
        self._provider = TemplateProvider(latency_seconds=0)

    def test_text_upload(self) -> None:
        parsed = asyncio.run(parse_upload(b"Hello", "notes.txt", "text/plain", self._provider))
        self.assertEqual("text", parsed.file.category)
        self.assertEqual("Hello", parsed.file.content)
        self.assertEqual(5, parsed.size)
        self.assertEqual("Document loaded. Ask me anything about notes.txt!", parsed.intro)

    def test_mime_is_guessed_when_missing(self) -> None:
        parsed = asyncio.run(parse_upload(b"# Title", "readme.md", None, self._provider))
        self.assertEqual("text", parsed.file.category)

    def test_image_upload_keeps_original(self) -> None:
        parsed = asyncio.run(parse_upload(b"\x89PNG....", "board.png", "image/png", self._provider))
        self.assertEqual("image", parsed.file.category)
        self.assertTrue(parsed.file.original_image.startswith("data:image/png;base64,"))
        self.assertTrue(parsed.intro.startswith("Image analyzed. Content extracted: "))

    def test_audio_upload_stores_data_url(self) -> None:
        parsed = asyncio.run(parse_upload(b"ID3....", "lecture.mp3", "audio/mpeg", self._provider))
        self.assertEqual("audio", parsed.file.category)
        self.assertTrue(parsed.file.content.startswith("data:audio/mpeg;base64,"))
        self.assertTrue(parsed.intro.startswith("Media Analysis Result:\n"))

    def test_media_analysis_failure_still_uploads(self) -> None:
        provider = _MediaFailingProvider(latency_seconds=0)
        parsed = asyncio.run(parse_upload(b"....", "clip.mp4", "video/mp4", provider))
        self.assertEqual("video", parsed.file.category)
        self.assertIn("Media Analysis Failed: quota exhausted", parsed.intro)

    def test_empty_upload_fails(self) -> None:
        with self.assertRaises(ParseFailure):
            asyncio.run(parse_upload(b"", "board.png", "image/png", self._provider))


if __name__ == "__main__":
    unittest.main()
