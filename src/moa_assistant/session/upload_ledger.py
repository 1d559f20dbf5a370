from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from uuid import uuid4

from loguru import logger

from moa_assistant.constants import UPLOAD_HISTORY_LIMIT
from moa_assistant.session.models import UploadedFile, UploadRecord, UserState, now_ms


@dataclass(frozen=True)
class UploadGroup:
    """All uploads sharing one file name, newest version first."""

    name: str
    versions: tuple[UploadRecord, ...]

    @property
    def latest(self) -> UploadRecord:
        return self.versions[0]


@dataclass(frozen=True)
class RestoreResult:
    ok: bool
    file: UploadedFile | None = None
    reason: str | None = None


class UploadLedger:
    def __init__(
        self,
        user_state: UserState,
        *,
        limit: int = UPLOAD_HISTORY_LIMIT,
        clock: Callable[[], int] = now_ms,
    ):
        self._user_state = user_state
        self._limit = limit
        self._clock = clock

    @property
    def records(self) -> list[UploadRecord]:
        return list(self._user_state.upload_history)

    def get(self, record_id: str) -> UploadRecord | None:
        for record in self._user_state.upload_history:
            if record.id == record_id:
                return record
        return None

    def add(self, file: UploadedFile, size: int) -> UploadRecord:
        date = self._clock()
        record = UploadRecord(
            id=f"up_{date}_{uuid4().hex[:8]}",
            name=file.name,
            type=file.type or "application/octet-stream",
            size=max(0, int(size)),
            date=date,
            category=file.category,
            content=file.content,
            original_image=file.original_image,
        )
        history = [record, *self._user_state.upload_history]
        if self._limit > 0 and len(history) > self._limit:
            logger.info(f"Upload history trimmed to the newest {self._limit} record(s)")
            history = history[: self._limit]
        self._user_state.upload_history = history
        return record

    def remove(self, record_id: str) -> bool:
        before = len(self._user_state.upload_history)
        self._user_state.upload_history = [r for r in self._user_state.upload_history if r.id != record_id]
        return len(self._user_state.upload_history) != before

    def group_by_name(self) -> list[UploadGroup]:
        buckets: dict[str, list[UploadRecord]] = {}
        for record in self._user_state.upload_history:
            buckets.setdefault(record.name, []).append(record)

        groups = [
            UploadGroup(name=name, versions=tuple(sorted(records, key=lambda r: r.date, reverse=True)))
            for name, records in buckets.items()
        ]
        groups.sort(key=lambda g: g.latest.date, reverse=True)
        return groups

    def restore(self, record: UploadRecord | str) -> RestoreResult:
        if isinstance(record, str):
            found = self.get(record)
            if found is None:
                return RestoreResult(ok=False, reason="not_found")
            record = found
        if not record.content:
            return RestoreResult(ok=False, reason="missing_content")
        return RestoreResult(
            ok=True,
            file=UploadedFile(
                name=record.name,
                type=record.type,
                content=record.content,
                category=record.category or "text",
                original_image=record.original_image,
                upload_id=record.id,
            ),
        )
