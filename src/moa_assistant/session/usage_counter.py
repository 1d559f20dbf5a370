from __future__ import annotations

from collections.abc import Callable

from moa_assistant.constants import FREE_QUESTIONS_LIMIT
from moa_assistant.session.models import UserState, now_ms


class UsageCounter:
    """Free-tier question gate.

    Timestamps accumulate for the life of the persisted session; nothing rolls
    them off after ``USAGE_WINDOW_MS``.
    """

    def __init__(
        self,
        user_state: UserState,
        *,
        limit: int = FREE_QUESTIONS_LIMIT,
        clock: Callable[[], int] = now_ms,
    ):
        self._user_state = user_state
        self._limit = limit
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def count(self) -> int:
        return len(self._user_state.question_usage)

    def record_usage(self) -> int:
        timestamp = self._clock()
        self._user_state.question_usage.append(timestamp)
        return timestamp

    def is_over_limit(self, is_premium: bool) -> bool:
        if is_premium:
            return False
        return self.count >= self._limit

    def remaining(self, is_premium: bool) -> int | None:
        if is_premium:
            return None
        return max(0, self._limit - self.count)
