import asyncio
import os
import sys
import tempfile
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import database as db_database  # noqa: E402
from db.models import Product  # noqa: E402
from profiles.catalog import Catalog  # noqa: E402
from profiles.identity import LocalIdentityProvider  # noqa: E402
from profiles.remote import RemoteProfileManager  # noqa: E402
from profiles.stores import SqliteLocalCache, SqliteProfileStore  # noqa: E402

PRODUCTS = [
    Product(id="sku-1", name="Sunflower Microgreens", category="microgreens", price=9.99, stock=40, weight=0.25),
    Product(id="sku-2", name="Pea Shoots", category="microgreens", price=7.50, stock=25, weight=0.25),
    Product(id="sku-10", name="Seed Sampler", category="seeds", price=10.00, stock=5, weight=0.30),
    Product(id="sku-25", name="Grow Kit", category="kits", price=25.00, stock=10, weight=2.40),
]


class MemoryCache:
    """Dict-backed LocalCache for tests that hammer the cache."""

    def __init__(self):
        self.items = {}

    async def get_item(self, key):
        return self.items.get(key)

    async def set_item(self, key, value):
        self.items[key] = value

    async def remove_item(self, key):
        self.items.pop(key, None)


class CountingProfileStore(SqliteProfileStore):
    """SqliteProfileStore that remembers every write it was asked to do.

    Writes to documents starting with `slow_prefix` sleep `set_delay` seconds first.
    """

    set_delay = 0.0
    slow_prefix = "uid_"

    def __init__(self, db_path=None):
        super().__init__(db_path)
        self.set_calls = []
        self.deleted = []

    async def set(self, doc_id, doc, merge=False):
        self.set_calls.append((doc_id, merge))
        if self.set_delay and doc_id.startswith(self.slow_prefix):
            await asyncio.sleep(self.set_delay)
        await super().set(doc_id, doc, merge=merge)

    async def delete(self, doc_id):
        self.deleted.append(doc_id)
        await super().delete(doc_id)


class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    """Temp sqlite files for the remote store, accounts and the local cache."""

    debounce = 0.05

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.remote_path = os.path.join(self.temp_dir.name, "remote.sqlite")
        self.local_path = os.path.join(self.temp_dir.name, "local.sqlite")
        db_database._initialized.clear()

        self.catalog = Catalog(PRODUCTS)
        self.remote = CountingProfileStore(self.remote_path)
        self.cache = SqliteLocalCache(self.local_path)
        self.identity = LocalIdentityProvider(self.remote_path)

    def tearDown(self):
        self.temp_dir.cleanup()

    def make_manager(self, **kwargs) -> RemoteProfileManager:
        kwargs.setdefault("debounce_seconds", self.debounce)
        return RemoteProfileManager(self.remote, self.identity, self.catalog, self.cache, **kwargs)
