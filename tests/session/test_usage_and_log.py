import asyncio
import unittest

from moa_assistant.session import ConversationLog, SessionContext, SessionLimits, UsageCounter
from moa_assistant.session.models import Message, SessionRecord, UserState


class UsageCounterTests(unittest.TestCase):
    def test_limit_gate(self) -> None:
        state = UserState()
        counter = UsageCounter(state, limit=5, clock=lambda: 42)

        for _ in range(4):
            counter.record_usage()
        self.assertFalse(counter.is_over_limit(False))
        self.assertEqual(1, counter.remaining(False))

        counter.record_usage()
        self.assertTrue(counter.is_over_limit(False))
        self.assertEqual(0, counter.remaining(False))
        self.assertEqual([42] * 5, state.question_usage)

    def test_premium_is_never_over_limit(self) -> None:
        state = UserState(question_usage=[1] * 50)
        counter = UsageCounter(state, limit=5)
        self.assertFalse(counter.is_over_limit(True))
        self.assertIsNone(counter.remaining(True))


class ConversationLogTests(unittest.TestCase):
    def setUp(self) -> None:
        self._state = UserState(long_term_memory="old")
        self._calls: list[tuple[int, str]] = []

        async def hook(messages: list[Message], memory: str) -> str | None:
            self._calls.append((len(messages), memory))
            return f"memory after {len(messages)}"

        self._log = ConversationLog(self._state, on_consolidate=hook, consolidation_interval=5)

    def _append(self, count: int) -> None:
        async def run() -> None:
            for i in range(count):
                await self._log.append(Message(role="user", text=f"m{i}"))

        asyncio.run(run())

    def test_consolidates_on_every_fifth_message(self) -> None:
        self._append(4)
        self.assertEqual([], self._calls)

        self._append(1)
        self.assertEqual([(5, "old")], self._calls)
        self.assertEqual("memory after 5", self._state.long_term_memory)

        self._append(4)
        self.assertEqual(1, len(self._calls))

        self._append(1)
        self.assertEqual([(5, "old"), (10, "memory after 5")], self._calls)

    def test_replace_last_never_consolidates(self) -> None:
        self._append(4)
        self._log.replace_last(Message(role="model", text="answer"))
        self.assertEqual([], self._calls)
        self.assertEqual("answer", self._log.last.text)

    def test_replace_last_on_empty_log(self) -> None:
        with self.assertRaises(IndexError):
            self._log.replace_last(Message(role="model", text="x"))

    def test_hook_failure_keeps_memory(self) -> None:
        async def failing(messages: list[Message], memory: str) -> str | None:
            raise RuntimeError("backend down")

        self._log.set_memory_hook(failing)
        self._append(5)
        self.assertEqual("old", self._state.long_term_memory)
        self.assertEqual(5, len(self._log))

    def test_empty_result_keeps_memory(self) -> None:
        async def empty(messages: list[Message], memory: str) -> str | None:
            return ""

        self._log.set_memory_hook(empty)
        self._append(5)
        self.assertEqual("old", self._state.long_term_memory)


class SessionContextTests(unittest.TestCase):
    def test_premium_expires(self) -> None:
        state = UserState(is_premium=True, premium_expiry_date=100)
        self.assertTrue(SessionContext(SessionRecord(user_state=state), clock=lambda: 99).premium_active())
        self.assertFalse(SessionContext(SessionRecord(user_state=state), clock=lambda: 100).premium_active())

    def test_limits_flow_into_views(self) -> None:
        context = SessionContext(limits=SessionLimits(free_questions_limit=2))
        self.assertEqual(2, context.usage.limit)


if __name__ == "__main__":
    unittest.main()
