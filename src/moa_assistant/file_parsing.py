from __future__ import annotations

import io
import mimetypes
import zipfile
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from moa_assistant.constants import MAX_TEXT_FILE_BYTES
from moa_assistant.errors import NetworkFailure, ParseFailure
from moa_assistant.provider import AssistantProvider
from moa_assistant.providers.common import to_data_url
from moa_assistant.session.models import UploadedFile

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC_MIME = "application/msword"

_TEXT_EXTENSIONS = {
    ".txt", ".md", ".markdown", ".csv", ".tsv", ".json", ".xml", ".html", ".htm", ".log",
    ".rtf", ".yaml", ".yml", ".ini", ".cfg", ".py", ".js", ".ts", ".java", ".c", ".cpp", ".tex",
}


@dataclass(frozen=True)
class ParsedUpload:
    file: UploadedFile
    size: int
    intro: str


def guess_mime_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name)
    if mime_type:
        return mime_type
    if Path(name).suffix.lower() in _TEXT_EXTENSIONS:
        return "text/plain"
    return "application/octet-stream"


def classify(name: str, mime_type: str) -> str:
    """One of image, video, audio, pdf, docx, doc or text."""
    mime_type = (mime_type or "").lower()
    suffix = Path(name).suffix.lower()
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    if mime_type.startswith("audio/"):
        return "audio"
    if mime_type == "application/pdf" or suffix == ".pdf":
        return "pdf"
    if mime_type == DOCX_MIME or suffix == ".docx":
        return "docx"
    if mime_type == DOC_MIME or suffix == ".doc":
        return "doc"
    return "text"


def _read_pdf_text(data: bytes) -> str:
    from pypdf import PdfReader
    from pypdf.errors import PyPdfError

    try:
        reader = PdfReader(io.BytesIO(data))
        full_text = ""
        for i, page in enumerate(reader.pages, start=1):
            page_text = page.extract_text() or ""
            full_text += f"--- Page {i} ---\n{page_text}\n\n"
    except (PyPdfError, ValueError, KeyError) as ex:
        raise ParseFailure(f"Could not read this PDF. It might be corrupted or encrypted. ({ex})") from ex
    return full_text


def _read_docx_text(data: bytes) -> str:
    from docx import Document
    from docx.opc.exceptions import PackageNotFoundError

    try:
        doc = Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as ex:
        raise ParseFailure(f"Could not read this Word document. It might be corrupted. ({ex})") from ex
    return "\n".join(p.text for p in doc.paragraphs)


def _read_plain_text(data: bytes, max_bytes: int) -> str:
    if len(data) > max_bytes:
        raise ParseFailure("File is too large to read as text. Please upload a smaller file.")
    if b"\x00" in data:
        raise ParseFailure("Could not read this file format. It might be a binary file or corrupted.")
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as ex:
        raise ParseFailure("Could not read this file format. It might be a binary file or corrupted.") from ex
    if not text:
        raise ParseFailure("File appears to be empty.")
    return text


def parse_document(data: bytes, name: str, mime_type: str, *, max_text_bytes: int = MAX_TEXT_FILE_BYTES) -> str:
    """Extract text from a document upload (pdf, docx or any text format)."""
    if not data:
        raise ParseFailure("File appears to be empty.")

    kind = classify(name, mime_type)
    if kind == "pdf":
        return _read_pdf_text(data)
    if kind == "docx":
        return _read_docx_text(data)
    if kind == "doc":
        raise ParseFailure("Legacy .doc files are not supported. Please save the document as .docx.")
    if kind in ("image", "video", "audio"):
        raise ParseFailure(f"{name} is a {kind} file, not a document.")
    return _read_plain_text(data, max_text_bytes)


async def parse_upload(
    data: bytes,
    name: str,
    mime_type: str | None,
    provider: AssistantProvider,
    *,
    max_text_bytes: int = MAX_TEXT_FILE_BYTES,
) -> ParsedUpload:
    """Turn raw upload bytes into the active file context plus the intro message."""
    mime_type = mime_type or guess_mime_type(name)
    if not data:
        raise ParseFailure("File appears to be empty.")

    kind = classify(name, mime_type)
    logger.info(f"Parsing upload: name={name}, type={mime_type}, kind={kind}, size={len(data):,}")

    if kind == "image":
        data_url = to_data_url(data, mime_type)
        text = await provider.describe_image(data_url, mime_type)
        file = UploadedFile(name=name, type=mime_type, content=text, category="image", original_image=data_url)
        return ParsedUpload(file=file, size=len(data), intro=f"Image analyzed. Content extracted: {text[:100]}...")

    if kind in ("video", "audio"):
        data_url = to_data_url(data, mime_type)
        try:
            text = await provider.analyze_media(data_url, mime_type)
        except NetworkFailure as ex:
            logger.warning(f"Media analysis failed for {name}: {ex}")
            text = f"Media Analysis Failed: {ex}"
        file = UploadedFile(name=name, type=mime_type, content=data_url, category=kind)
        return ParsedUpload(file=file, size=len(data), intro=f"Media Analysis Result:\n{text}")

    text = parse_document(data, name, mime_type, max_text_bytes=max_text_bytes)
    file = UploadedFile(name=name, type=mime_type, content=text, category="text")
    return ParsedUpload(file=file, size=len(data), intro=f"Document loaded. Ask me anything about {name}!")


def read_upload(path: str | Path) -> tuple[bytes, str, str]:
    """Read a local file for upload. Returns (data, name, mime_type)."""
    p = Path(path).expanduser()
    try:
        data = p.read_bytes()
    except OSError as ex:
        raise ParseFailure(f"Could not open {p}: {ex.strerror or ex}") from ex
    return data, p.name, guess_mime_type(p.name)
