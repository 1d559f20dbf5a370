import json
import unittest

from tests.session.base import SessionStoreTestCase

from moa_assistant.constants import STORAGE_KEY
from moa_assistant.errors import StorageFailure
from moa_assistant.session import InMemoryKeyValueStorage, SaveOutcome, SessionStore, degrade_record
from moa_assistant.session.models import (
    Message,
    SessionRecord,
    UploadedFile,
    UploadRecord,
    User,
    UserState,
)
from moa_assistant.session.schema import CURRENT_SCHEMA_VERSION


def _record(*, big: int = 0) -> SessionRecord:
    history = [
        UploadRecord(id="up_old", name="old.txt", type="text/plain", size=big, date=1, category="text", content="x" * big),
        UploadRecord(id="up_cur", name="notes.txt", type="text/plain", size=5, date=2, category="text", content="Hello"),
    ]
    return SessionRecord(
        user_state=UserState(
            user=User(id="u1", name="amina", auth_method="email", email="amina@example.com"),
            upload_history=history,
            question_usage=[10, 20],
            long_term_memory="- Asked about: cells",
        ),
        current_file=UploadedFile(name="notes.txt", type="text/plain", content="Hello", category="text", upload_id="up_cur"),
        messages=[Message(role="user", text="hi"), Message(role="model", text="hello there")],
        custom_background="https://example.com/bg.png",
    )


class _BrokenStorage:
    def get_item(self, key: str) -> str | None:
        raise StorageFailure("disk gone")

    def set_item(self, key: str, value: str) -> None:
        raise StorageFailure("disk gone")

    def remove_item(self, key: str) -> None:
        raise StorageFailure("disk gone")


class SessionStoreTests(SessionStoreTestCase):
    def test_save_then_load_round_trips_the_record(self) -> None:
        record = _record()
        self.assertEqual(SaveOutcome.SAVED, self._store.save(record))

        loaded = self._store.load()

        self.assertEqual(record.to_dict(), loaded.to_dict())

    def test_load_returns_last_saved_record(self) -> None:
        first = _record()
        self._store.save(first)
        second = _record()
        second.messages.append(Message(role="user", text="another"))
        self._store.save(second)

        loaded = self._store.load()

        self.assertEqual(3, len(loaded.messages))
        self.assertEqual("another", loaded.messages[-1].text)

    def test_persisted_payload_is_versioned(self) -> None:
        self._store.save(_record())
        payload = json.loads(self._storage.get_item(STORAGE_KEY))
        self.assertEqual(CURRENT_SCHEMA_VERSION, payload["schemaVersion"])
        self.assertIn("userState", payload["session"])

    def test_load_missing_key_returns_none(self) -> None:
        self.assertIsNone(self._store.load())

    def test_load_invalid_json_returns_none(self) -> None:
        self._storage.set_item(STORAGE_KEY, "{not json")
        self.assertIsNone(self._store.load())

    def test_load_out_of_range_numbers_returns_none(self) -> None:
        payload = {"schemaVersion": CURRENT_SCHEMA_VERSION, "session": {"userState": {"questionUsage": [float("inf")]}}}
        self._storage.set_item(STORAGE_KEY, json.dumps(payload))
        self.assertIsNone(self._store.load())

    def test_load_deeply_nested_json_returns_none(self) -> None:
        depth = 20_000
        self._storage.set_item(STORAGE_KEY, "[" * depth + "]" * depth)
        self.assertIsNone(self._store.load())

    def test_load_newer_schema_returns_none(self) -> None:
        self._storage.set_item(STORAGE_KEY, json.dumps({"schemaVersion": CURRENT_SCHEMA_VERSION + 1, "session": {}}))
        self.assertIsNone(self._store.load())

    def test_quota_overflow_strips_historical_payloads(self) -> None:
        record = _record(big=80 * 1024)

        outcome = self._store.save(record)
        loaded = self._store.load()

        self.assertEqual(SaveOutcome.DEGRADED, outcome)
        by_id = {u.id: u for u in loaded.user_state.upload_history}
        self.assertIsNone(by_id["up_old"].content)
        self.assertEqual("Hello", by_id["up_cur"].content)
        self.assertEqual("Hello", loaded.current_file.content)
        self.assertEqual(2, len(loaded.messages))

    def test_second_overflow_drops_write_and_keeps_previous(self) -> None:
        self._store.save(_record())
        huge = _record()
        huge.messages.append(Message(role="user", text="y" * (80 * 1024)))

        outcome = self._store.save(huge)
        loaded = self._store.load()

        self.assertEqual(SaveOutcome.DROPPED, outcome)
        self.assertEqual(2, len(loaded.messages))

    def test_storage_failures_never_raise(self) -> None:
        store = SessionStore(_BrokenStorage())
        self.assertEqual(SaveOutcome.DROPPED, store.save(_record()))
        self.assertIsNone(store.load())
        store.clear()

    def test_clear_removes_slot(self) -> None:
        self._store.save(_record())
        self._store.clear()
        self.assertIsNone(self._store.load())


class DegradeRecordTests(unittest.TestCase):
    def test_keeps_record_backing_active_file(self) -> None:
        degraded = degrade_record(_record(big=10))
        by_id = {u.id: u for u in degraded.user_state.upload_history}
        self.assertIsNone(by_id["up_old"].content)
        self.assertEqual("Hello", by_id["up_cur"].content)

    def test_does_not_mutate_input(self) -> None:
        record = _record(big=10)
        degrade_record(record)
        self.assertEqual("x" * 10, record.user_state.upload_history[0].content)


class InMemoryStorageTests(unittest.TestCase):
    def test_quota_counts_other_keys(self) -> None:
        storage = InMemoryKeyValueStorage(quota_bytes=20)
        storage.set_item("a", "123456789")
        with self.assertRaises(StorageFailure):
            storage.set_item("b", "123456789012")
        self.assertIsNone(storage.get_item("b"))

    def test_overwrite_does_not_double_count(self) -> None:
        storage = InMemoryKeyValueStorage(quota_bytes=12)
        storage.set_item("k", "12345678901")
        storage.set_item("k", "abcdefghijk")
        self.assertEqual(12, storage.used_bytes())


if __name__ == "__main__":
    unittest.main()
