from support import MemoryCache, StoreTestCase

from profiles.cart import CartProjection
from profiles.catalog import Catalog
from profiles.offline import OfflineProfileManager


class CartProjectionTestCase(StoreTestCase):
    async def asyncSetUp(self):
        self.manager = OfflineProfileManager(self.catalog, MemoryCache())
        await self.manager.initialize_profile()
        self.cart = CartProjection(self.manager, self.catalog)

    async def test_projection_follows_manager_cart(self):
        self.assertTrue(await self.cart.add_to_cart("sku-1", 2))
        self.assertTrue(await self.cart.add_to_cart("sku-2"))

        lines = self.cart.get_cart()
        self.assertEqual([line.product_id for line in lines], ["sku-1", "sku-2"])
        self.assertEqual(lines[0].product.name, "Sunflower Microgreens")
        self.assertEqual(self.cart.get_cart_count(), 3)
        self.assertEqual(self.cart.get_cart_total(), 27.48)

        await self.cart.update_quantity("sku-2", 4)
        self.assertEqual(self.cart.get_cart_count(), 6)
        await self.cart.remove_from_cart("sku-1")
        self.assertEqual([line.product_id for line in self.cart.get_cart()], ["sku-2"])

        await self.cart.clear_cart()
        self.assertEqual(self.cart.get_cart(), [])
        self.assertEqual(len(self.manager.get_current_profile().shopping.abandoned_carts), 1)

    async def test_unknown_product_is_rejected(self):
        self.assertFalse(await self.cart.add_to_cart("sku-404"))
        self.assertEqual(self.manager.get_current_profile().shopping.cart.items, [])

    async def test_products_missing_from_catalog_are_dropped(self):
        await self.manager.add_to_cart("sku-1")
        await self.manager.add_to_cart("sku-25")

        smaller = CartProjection(self.manager, Catalog(p for p in self.catalog if p.id != "sku-25"))
        lines = smaller.sync_with_profile()
        self.assertEqual([line.product_id for line in lines], ["sku-1"])
        self.assertEqual(smaller.get_cart_total(), 9.99)
        # the profile keeps the line
        self.assertEqual(len(self.manager.get_current_profile().shopping.cart.items), 2)

    async def test_snapshot_carries_product_fields(self):
        await self.cart.add_to_cart("sku-25", 2)
        snapshot = self.cart.snapshot()
        self.assertEqual(snapshot[0]["id"], "sku-25")
        self.assertEqual(snapshot[0]["quantity"], 2)
        self.assertEqual(snapshot[0]["price"], 25.0)
        self.assertEqual(snapshot[0]["weight"], 2.4)

    async def test_reads_never_touch_the_profile(self):
        profile = self.manager.get_current_profile()
        before = profile.updated_at
        self.cart.sync_with_profile()
        self.cart.get_cart_total()
        self.assertEqual(profile.updated_at, before)
