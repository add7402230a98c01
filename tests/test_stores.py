import sqlite3

from support import StoreTestCase

from profiles.errors import DocumentNotFoundError, ProfileStoreError
from profiles.session import BrowserSession, guest_profile_id, guest_profile_key


class ProfileStoreTestCase(StoreTestCase):
    async def test_set_get_overwrite_and_delete(self):
        self.assertIsNone(await self.remote.get("p1"))
        await self.remote.set("p1", {"id": "p1", "shopping": {"cart": {"total": 1}}, "tags": [1, 2]})
        await self.remote.set("p1", {"id": "p1", "tags": [3]})
        self.assertEqual(await self.remote.get("p1"), {"id": "p1", "tags": [3]})

        await self.remote.delete("p1")
        self.assertIsNone(await self.remote.get("p1"))
        await self.remote.delete("p1")

    async def test_merge_set_keeps_untouched_fields(self):
        await self.remote.set("p1", {"id": "p1", "preferences": {"currency": "USD", "notifications": True}})
        await self.remote.set("p1", {"preferences": {"currency": "EUR"}, "tags": ["a"]}, merge=True)
        doc = await self.remote.get("p1")
        self.assertEqual(doc["preferences"], {"currency": "EUR", "notifications": True})
        self.assertEqual(doc["tags"], ["a"])
        self.assertEqual(doc["id"], "p1")

    async def test_merge_set_creates_missing_document(self):
        await self.remote.set("p2", {"id": "p2"}, merge=True)
        self.assertEqual(await self.remote.get("p2"), {"id": "p2"})

    async def test_update_dotted_paths(self):
        await self.remote.set("p1", {"id": "p1", "metadata": {"visit_count": 1, "language": "en"}})
        await self.remote.update("p1", {"metadata.visit_count": 2, "browsing.last_active": "now"})
        doc = await self.remote.get("p1")
        self.assertEqual(doc["metadata"], {"visit_count": 2, "language": "en"})
        self.assertEqual(doc["browsing"]["last_active"], "now")

    async def test_update_missing_document_raises(self):
        with self.assertRaises(DocumentNotFoundError):
            await self.remote.update("nope", {"a": 1})

    async def test_sqlite_errors_become_store_errors(self):
        async def broken(*_args, **_kwargs):
            raise sqlite3.OperationalError("database is locked")

        from db import crud

        original = crud.get_document
        try:
            crud.get_document = broken  # type: ignore
            with self.assertRaises(ProfileStoreError):
                await self.remote.get("p1")
        finally:
            crud.get_document = original

    async def test_ping(self):
        await self.remote.ping()


class BrowserSessionTestCase(StoreTestCase):
    async def test_session_id_is_generated_once_and_persisted(self):
        session = BrowserSession(self.cache)
        sid = await session.session_id()
        self.assertTrue(sid.startswith("session_"))
        self.assertEqual(await session.session_id(), sid)

        # a reload (new object, same storage) keeps the id
        reloaded = BrowserSession(self.cache)
        self.assertEqual(await reloaded.session_id(), sid)
        self.assertEqual(await reloaded.guest_key(), f"guest_profile_{sid}")

    def test_guest_keys_derive_from_the_same_session(self):
        self.assertEqual(guest_profile_key("session_1"), "guest_profile_session_1")
        self.assertEqual(guest_profile_id("session_1"), "guest_session_1")
