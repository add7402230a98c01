import os

from support import StoreTestCase

import main


class BuildStorefrontTestCase(StoreTestCase):
    async def test_wires_seeded_catalog_and_starts_identity(self):
        storefront = await main.build_storefront(self.remote_path, self.local_path, debounce_seconds=self.debounce)
        try:
            self.assertTrue(storefront.identity.ready)
            self.assertIn("sku-1", storefront.catalog)
            self.assertEqual(storefront.catalog.price_of("sku-4"), 34.0)

            profile = await storefront.initialize()
            self.assertTrue(profile.is_guest)
            self.assertEqual(storefront.profile_status()["profile_manager"], "remote")

            self.assertTrue(await storefront.cart.add_to_cart("sku-3"))
            self.assertEqual(storefront.cart.get_cart_total(), 8.25)
        finally:
            await storefront.identity.wait_idle()
            await storefront.close()
        self.assertTrue(os.path.exists(self.local_path))
