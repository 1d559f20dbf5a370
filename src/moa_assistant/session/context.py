from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from moa_assistant.constants import (
    FREE_QUESTIONS_LIMIT,
    MEMORY_CONSOLIDATION_INTERVAL,
    UPLOAD_HISTORY_LIMIT,
)
from moa_assistant.session.conversation_log import ConversationLog, MemoryHook
from moa_assistant.session.models import SessionRecord, UploadedFile, UserState, now_ms
from moa_assistant.session.upload_ledger import UploadLedger
from moa_assistant.session.usage_counter import UsageCounter


@dataclass
class SessionLimits:
    free_questions_limit: int = FREE_QUESTIONS_LIMIT
    memory_consolidation_interval: int = MEMORY_CONSOLIDATION_INTERVAL
    upload_history_limit: int = UPLOAD_HISTORY_LIMIT


class SessionContext:
    """Everything one running client owns: user state, active file, log and background.

    The ledger and usage counter are views over ``user_state``. Replacing the
    user state (sign-in, logout) rebuilds them.
    """

    def __init__(
        self,
        record: SessionRecord | None = None,
        *,
        limits: SessionLimits | None = None,
        on_consolidate: MemoryHook | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        record = record or SessionRecord()
        self._limits = limits or SessionLimits()
        self._clock = clock
        self.current_file: UploadedFile | None = record.current_file
        self.custom_background: str | None = record.custom_background
        self._bind(record.user_state, on_consolidate)
        self.log.reset(record.messages)

    def _bind(self, user_state: UserState, on_consolidate: MemoryHook | None) -> None:
        self.user_state = user_state
        self.ledger = UploadLedger(user_state, limit=self._limits.upload_history_limit, clock=self._clock)
        self.usage = UsageCounter(user_state, limit=self._limits.free_questions_limit, clock=self._clock)
        self.log = ConversationLog(
            user_state,
            on_consolidate=on_consolidate,
            consolidation_interval=self._limits.memory_consolidation_interval,
        )

    @classmethod
    def from_record(cls, record: SessionRecord, **kwargs) -> SessionContext:
        return cls(record, **kwargs)

    def to_record(self) -> SessionRecord:
        return SessionRecord(
            user_state=self.user_state,
            current_file=self.current_file,
            messages=self.log.messages,
            custom_background=self.custom_background,
        )

    def premium_active(self) -> bool:
        state = self.user_state
        if not state.is_premium:
            return False
        if state.premium_expiry_date is None:
            return True
        return state.premium_expiry_date > self._clock()
