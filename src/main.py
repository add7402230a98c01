import asyncio
import os
from typing import Optional

from db import database
from profiles.catalog import Catalog
from profiles.checkout import SimulatedCheckoutGateway
from profiles.identity import LocalIdentityProvider
from profiles.storefront import Storefront
from profiles.stores import SqliteLocalCache, SqliteProfileStore
from utils.logger import get_logger

_logger = get_logger("storefront")

LOCAL_DB_PATH = os.getenv("STOREFRONT_LOCAL_DB", "data/local.sqlite")


async def build_storefront(
    remote_db: Optional[str] = None,
    local_db: Optional[str] = None,
    **options,
) -> Storefront:
    """
    Wire the stores, identity provider and catalog together and start the identity provider.

    `remote_db` holds profile documents, accounts and products (defaults to
    db.database.DB_PATH); `local_db` stands in for the browser's local storage.
    """
    remote_db = remote_db or database.DB_PATH
    local_db = local_db or LOCAL_DB_PATH

    local_cache = SqliteLocalCache(local_db)
    identity = LocalIdentityProvider(remote_db, auth_cache=local_cache)
    catalog = await Catalog.load(remote_db)
    storefront = Storefront(
        identity,
        SqliteProfileStore(remote_db),
        local_cache,
        catalog,
        **options,
    )
    await identity.start()
    return storefront


async def main() -> None:
    storefront = await build_storefront()
    profile = await storefront.initialize()
    _logger.info(f"Shopping as {profile.type.value} {profile.id}")

    await storefront.profiles.track_page_view("home")
    for product in storefront.catalog:
        if product.stock > 0:
            await storefront.cart.add_to_cart(product.id)
            break
    _logger.info(
        f"Cart: {storefront.cart.get_cart_count()} item(s), ${storefront.cart.get_cart_total():.2f}"
    )

    if storefront.cart.get_cart():
        order = await storefront.checkout(SimulatedCheckoutGateway())
        _logger.info(f"Checked out {order['order_id']} for ${order['totals']['total']:.2f}")

    _logger.info(f"Status: {storefront.profile_status()}")
    await storefront.close()


if __name__ == "__main__":
    asyncio.run(main())
