import unittest

from moa_assistant.constants import LIBRARY_STORAGE_KEY
from moa_assistant.errors import ValidationFailure
from moa_assistant.library import LibraryCatalog
from moa_assistant.session import InMemoryKeyValueStorage
from moa_assistant.session.models import UploadedFile


class LibraryCatalogTests(unittest.TestCase):
    def setUp(self) -> None:
        self._storage = InMemoryKeyValueStorage()
        self._library = LibraryCatalog(self._storage)

    def test_seeds_catalogue(self) -> None:
        items = self._library.items()
        self.assertEqual(["lib_001", "lib_002"], [i.id for i in items])
        self.assertIsNotNone(self._storage.get_item(LIBRARY_STORAGE_KEY))

    def test_reseeds_unreadable_catalogue(self) -> None:
        self._storage.set_item(LIBRARY_STORAGE_KEY, "{broken")
        self.assertEqual(2, len(self._library.items()))

    def test_search_and_categories(self) -> None:
        self.assertEqual(["All", "Biology", "History"], self._library.categories())
        self.assertEqual(["lib_002"], [i.id for i in self._library.search("independence")])
        self.assertEqual(["lib_001"], [i.id for i in self._library.search("", "Biology")])
        self.assertEqual([], self._library.search("genetics", "History"))

    def test_record_download(self) -> None:
        updated = self._library.record_download("lib_001")
        self.assertEqual(121, updated.downloads)
        self.assertEqual(121, self._library.get("lib_001").downloads)
        self.assertIsNone(self._library.record_download("missing"))

    def test_publish_prepends_item(self) -> None:
        notes = UploadedFile(name="bio.txt", type="text/plain", content="Plants make food.", category="text")

        item = self._library.publish(title="Plants", author="", description="Intro", category="Biology", file=notes)

        self.assertEqual("Anonymous", item.author)
        self.assertEqual(item.id, self._library.items()[0].id)
        self.assertEqual("Plants.txt", item.to_uploaded_file().name)

    def test_publish_rejects_media(self) -> None:
        clip = UploadedFile(name="clip.mp4", type="video/mp4", content="data:video/mp4;base64,AA==", category="video")
        with self.assertRaises(ValidationFailure):
            self._library.publish(title="Clip", author="a", description="", category="General", file=clip)


if __name__ == "__main__":
    unittest.main()
