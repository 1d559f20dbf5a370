from __future__ import annotations

import dataclasses
import json
from enum import Enum

from loguru import logger

from moa_assistant.constants import STORAGE_KEY
from moa_assistant.errors import StorageFailure, StorageQuotaExceeded
from moa_assistant.session import schema
from moa_assistant.session.models import SessionRecord
from moa_assistant.session.storage import KeyValueStorage


class SaveOutcome(str, Enum):
    SAVED = "saved"
    DEGRADED = "degraded"
    DROPPED = "dropped"


def degrade_record(record: SessionRecord) -> SessionRecord:
    """Copy of ``record`` whose historical upload records carry no file payloads.

    The record backing the active file keeps its content, as do the messages,
    the active file and the rest of the user state.
    """
    current_upload_id = record.current_file.upload_id if record.current_file else None
    stripped = [
        u
        if u.id == current_upload_id
        else dataclasses.replace(u, content=None, original_image=None)
        for u in record.user_state.upload_history
    ]
    user_state = dataclasses.replace(record.user_state, upload_history=stripped)
    return dataclasses.replace(record, user_state=user_state, messages=list(record.messages))


class SessionStore:
    def __init__(self, storage: KeyValueStorage, key: str = STORAGE_KEY):
        self._storage = storage
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def save(self, record: SessionRecord) -> SaveOutcome:
        try:
            self._write(record)
            return SaveOutcome.SAVED
        except StorageQuotaExceeded as ex:
            logger.warning(f"Session state exceeds storage quota, retrying without upload payloads: {ex}")
        except (StorageFailure, TypeError, ValueError) as ex:
            logger.error(f"Failed to persist session state: {ex}")
            return SaveOutcome.DROPPED

        try:
            self._write(degrade_record(record))
        except (StorageFailure, TypeError, ValueError) as ex:
            logger.error(f"Dropping session state write after degraded retry failed: {ex}")
            return SaveOutcome.DROPPED
        logger.info("Session state saved with upload history payloads stripped")
        return SaveOutcome.DEGRADED

    def load(self) -> SessionRecord | None:
        try:
            raw = self._storage.get_item(self._key)
        except StorageFailure as ex:
            logger.warning(f"Could not read persisted session, starting fresh: {ex}")
            return None
        if raw is None:
            return None

        try:
            payload = json.loads(raw)
            session = schema.unwrap(payload)
            record = SessionRecord.from_dict(session)
        except (ValueError, TypeError, AttributeError, OverflowError, RecursionError) as ex:
            logger.warning(f"Persisted session is unreadable, starting fresh: {ex}")
            return None

        logger.debug(
            f"Loaded session: messages={len(record.messages)}, "
            f"uploads={len(record.user_state.upload_history)}"
        )
        return record

    def clear(self) -> None:
        try:
            self._storage.remove_item(self._key)
        except StorageFailure as ex:
            logger.error(f"Failed to clear persisted session: {ex}")

    def _write(self, record: SessionRecord) -> None:
        serialized = json.dumps(schema.wrap(record.to_dict()), ensure_ascii=False, separators=(",", ":"))
        self._storage.set_item(self._key, serialized)
