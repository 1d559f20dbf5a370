from __future__ import annotations

from datetime import datetime

from moa_assistant.library import LibraryItem
from moa_assistant.session.models import ActionItem, Message, PaymentRecord
from moa_assistant.session.upload_ledger import UploadGroup


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _format_date(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M")


class SessionView:
    def __init__(self, *, line_prefix: str, preview_len: int = 100):
        self._line_prefix = line_prefix
        self._preview_len = preview_len

    def preview(self, text: str) -> str:
        flat = " ".join(text.split())
        if len(flat) <= self._preview_len:
            return flat
        return flat[: self._preview_len - 3] + "..."

    def format_message_lines(self, message: Message) -> list[str]:
        p = self._line_prefix
        label = "[error] " if message.is_error else ""
        lines = [f"{p}{label}{line}" for line in (message.text or "").splitlines() or [""]]
        for i, link in enumerate(message.grounding_links, start=1):
            lines.append(f"{p}  [{i}] {link.title} - {link.uri}")
        if message.generated_media is not None:
            media = message.generated_media
            url = media.url if not media.url.startswith("data:") else f"{media.url[:48]}... ({len(media.url):,} chars)"
            lines.append(f"{p}  {media.type}: {url}")
        return lines

    def format_history_lines(self, messages: list[Message]) -> list[str]:
        lines: list[str] = []
        for msg in messages:
            speaker = "you" if msg.role == "user" else "moa"
            attachment = f" [+{msg.attachment_type or 'image'}]" if msg.attachment else ""
            lines.append(f"{self._line_prefix}{speaker}: {self.preview(msg.text)}{attachment}")
        return lines

    def format_upload_groups(self, groups: list[UploadGroup], *, current_upload_id: str | None) -> list[str]:
        lines: list[str] = []
        for group in groups:
            versions = len(group.versions)
            suffix = f" ({versions} versions)" if versions > 1 else ""
            lines.append(f"{self._line_prefix}{group.name}{suffix}")
            for record in group.versions:
                marker = "*" if record.id == current_upload_id else " "
                restorable = "" if record.has_content else " [content not stored]"
                lines.append(
                    f"{self._line_prefix}  {marker} {record.id}  {_format_date(record.date)}  "
                    f"{record.category:<5}  {_format_size(record.size)}{restorable}"
                )
        return lines

    def format_task_lines(self, tasks: list[ActionItem], *, start: int = 1) -> list[str]:
        return [
            f"{self._line_prefix}{i}. [{'x' if t.is_completed else ' '}] {t.content}"
            for i, t in enumerate(tasks, start=start)
        ]

    def format_library_lines(self, items: list[LibraryItem]) -> list[str]:
        return [
            f"{self._line_prefix}{item.id}  [{item.category}] {item.title} by {item.author} "
            f"({item.downloads} downloads) - {self.preview(item.description)}"
            for item in items
        ]

    def format_payment_lines(self, payments: list[PaymentRecord]) -> list[str]:
        return [
            f"{self._line_prefix}{_format_date(p.date)}  KSH {p.amount:g} via {p.method}"
            for p in payments
        ]
