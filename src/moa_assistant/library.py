from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import date
from typing import Any

from loguru import logger

from moa_assistant.constants import INITIAL_LIBRARY_DATA, LIBRARY_STORAGE_KEY
from moa_assistant.errors import StorageFailure, ValidationFailure
from moa_assistant.session.models import UploadedFile, now_ms
from moa_assistant.session.storage import KeyValueStorage


@dataclass(frozen=True)
class LibraryItem:
    id: str
    title: str
    author: str
    description: str
    category: str
    file_content: str
    file_type: str
    date: str
    downloads: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "category": self.category,
            "fileContent": self.file_content,
            "fileType": self.file_type,
            "date": self.date,
            "downloads": self.downloads,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LibraryItem:
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            author=str(data.get("author", "")),
            description=str(data.get("description", "")),
            category=str(data.get("category", "General")),
            file_content=str(data.get("fileContent", "")),
            file_type=str(data.get("fileType", "text/plain")),
            date=str(data.get("date", "")),
            downloads=int(data.get("downloads", 0)),
        )

    def to_uploaded_file(self) -> UploadedFile:
        return UploadedFile(
            name=f"{self.title}.txt",
            type=self.file_type,
            content=self.file_content,
            category="text",
        )


class LibraryCatalog:
    """Community notes shared between users of one storage."""

    def __init__(self, storage: KeyValueStorage, key: str = LIBRARY_STORAGE_KEY):
        self._storage = storage
        self._key = key

    def items(self) -> list[LibraryItem]:
        try:
            raw = self._storage.get_item(self._key)
        except StorageFailure as ex:
            logger.warning(f"Could not read the community library: {ex}")
            raw = None
        if raw is not None:
            try:
                payload = json.loads(raw)
                if isinstance(payload, list):
                    return [LibraryItem.from_dict(item) for item in payload if isinstance(item, dict)]
            except (ValueError, TypeError) as ex:
                logger.warning(f"Community library is unreadable, reseeding: {ex}")

        seeded = [LibraryItem.from_dict(item) for item in INITIAL_LIBRARY_DATA]
        self._write(seeded)
        return seeded

    def categories(self) -> list[str]:
        seen: list[str] = []
        for item in self.items():
            if item.category not in seen:
                seen.append(item.category)
        return ["All", *seen]

    def search(self, query: str = "", category: str = "All") -> list[LibraryItem]:
        needle = query.strip().lower()
        return [
            item
            for item in self.items()
            if (not needle or needle in item.title.lower() or needle in item.description.lower())
            and (category == "All" or item.category == category)
        ]

    def get(self, item_id: str) -> LibraryItem | None:
        for item in self.items():
            if item.id == item_id:
                return item
        return None

    def record_download(self, item_id: str) -> LibraryItem | None:
        items = self.items()
        for i, item in enumerate(items):
            if item.id == item_id:
                items[i] = replace(item, downloads=item.downloads + 1)
                self._write(items)
                return items[i]
        return None

    def publish(self, *, title: str, author: str, description: str, category: str, file: UploadedFile) -> LibraryItem:
        if not title.strip():
            raise ValidationFailure("Please give your notes a title", field="title")
        if file.category != "text" or not file.content:
            raise ValidationFailure("Only text documents can be shared to the library", field="file")

        item = LibraryItem(
            id=f"lib_{now_ms()}",
            title=title.strip(),
            author=author.strip() or "Anonymous",
            description=description.strip(),
            category=category.strip() or "General",
            file_content=file.content,
            file_type=file.type or "text/plain",
            date=date.today().isoformat(),
        )
        self._write([item, *self.items()])
        logger.info(f"Published library item {item.id}: {item.title}")
        return item

    def _write(self, items: list[LibraryItem]) -> None:
        try:
            self._storage.set_item(self._key, json.dumps([i.to_dict() for i in items], ensure_ascii=False))
        except StorageFailure as ex:
            logger.error(f"Failed to persist the community library: {ex}")
