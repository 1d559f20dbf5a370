import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from moa_assistant.session import SessionStore, SqliteKeyValueStorage


PROJECT_ROOT = Path(__file__).resolve().parents[2]


class SessionStoreTestCase(unittest.TestCase):
    quota_bytes = 64 * 1024

    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"{self.__class__.__name__.lower()}-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        self._storage = SqliteKeyValueStorage(str(self._tmp_dir / "state.db"), quota_bytes=self.quota_bytes)
        self._store = SessionStore(self._storage)

    def tearDown(self) -> None:
        self._storage.close()
        shutil.rmtree(self._tmp_dir, ignore_errors=True)
