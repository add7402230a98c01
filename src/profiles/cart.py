from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from db.models import Product
from profiles.catalog import Catalog
from profiles.manager import ProfileManager


@dataclass(frozen=True)
class CartLine:
    product: Product
    quantity: int

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def line_total(self) -> float:
        return self.product.price * self.quantity

    def as_dict(self) -> Dict[str, Any]:
        return {**self.product.as_dict(), "quantity": self.quantity}


class CartProjection:
    """
    Presentation view of the active cart, joined with the catalog.

    Never written to directly: every change goes through the profile
    manager, after which the projection is rebuilt from the manager's cart.
    Lines whose product is no longer in the catalog are dropped.
    """

    def __init__(self, manager: ProfileManager, catalog: Catalog):
        self.manager = manager
        self.catalog = catalog
        self._lines: List[CartLine] = []

    def sync_with_profile(self) -> List[CartLine]:
        profile = self.manager.get_current_profile()
        lines: List[CartLine] = []
        if profile is not None:
            for item in profile.shopping.cart.items:
                product = self.catalog.get(item.product_id)
                if product is None:
                    continue
                lines.append(CartLine(product=product, quantity=item.quantity))
        self._lines = lines
        return self.get_cart()

    async def add_to_cart(self, product_id: str, quantity: int = 1) -> bool:
        """False (and no change) when the product is not in the catalog."""
        if product_id not in self.catalog:
            return False
        await self.manager.add_to_cart(product_id, quantity)
        self.sync_with_profile()
        return True

    async def remove_from_cart(self, product_id: str) -> None:
        await self.manager.remove_from_cart(product_id)
        self.sync_with_profile()

    async def update_quantity(self, product_id: str, quantity: int) -> None:
        await self.manager.update_cart_quantity(product_id, quantity)
        self.sync_with_profile()

    async def clear_cart(self) -> None:
        await self.manager.clear_cart()
        self.sync_with_profile()

    def get_cart(self) -> List[CartLine]:
        return list(self._lines)

    def get_cart_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def get_cart_total(self) -> float:
        return round(sum(line.line_total for line in self._lines), 2)

    def snapshot(self) -> List[Dict[str, Any]]:
        return [line.as_dict() for line in self._lines]
