from __future__ import annotations

from collections.abc import Awaitable, Callable

from loguru import logger

from moa_assistant.constants import MEMORY_CONSOLIDATION_INTERVAL
from moa_assistant.session.models import Message, UserState

MemoryHook = Callable[[list[Message], str], Awaitable[str | None]]


class ConversationLog:
    def __init__(
        self,
        user_state: UserState,
        messages: list[Message] | None = None,
        *,
        on_consolidate: MemoryHook | None = None,
        consolidation_interval: int = MEMORY_CONSOLIDATION_INTERVAL,
    ):
        self._user_state = user_state
        self._messages: list[Message] = list(messages or [])
        self._on_consolidate = on_consolidate
        self._consolidation_interval = consolidation_interval

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def set_memory_hook(self, hook: MemoryHook | None) -> None:
        self._on_consolidate = hook

    async def append(self, message: Message) -> None:
        self._messages.append(message)
        if self._consolidation_due():
            await self._consolidate()

    def replace_last(self, message: Message) -> None:
        """Swap the most recent message for ``message``.

        Callers append a placeholder first; an empty log is a programming error
        and raises ``IndexError`` like an out-of-range list assignment.
        """
        if not self._messages:
            raise IndexError("Cannot replace the last message of an empty conversation")
        self._messages[-1] = message

    def reset(self, messages: list[Message] | None = None) -> None:
        self._messages = list(messages or [])

    def _consolidation_due(self) -> bool:
        if self._on_consolidate is None or self._consolidation_interval <= 0:
            return False
        return len(self._messages) % self._consolidation_interval == 0

    async def _consolidate(self) -> None:
        assert self._on_consolidate is not None
        try:
            updated = await self._on_consolidate(list(self._messages), self._user_state.long_term_memory)
        except Exception as ex:
            logger.warning(f"Memory consolidation failed: {ex}. Keeping previous long-term memory.")
            return
        if updated:
            self._user_state.long_term_memory = updated
            logger.debug(f"Long-term memory refreshed ({len(updated)} chars)")
