from __future__ import annotations

from typing import Dict, Iterable, Iterator, Optional

from db import crud
from db.models import Product
from utils.logger import get_logger

_logger = get_logger(__name__)


class Catalog:
    """Read-only product set used for cart totals and the cart projection join."""

    def __init__(self, products: Iterable[Product] = ()):
        self._by_id: Dict[str, Product] = {p.id: p for p in products}

    @classmethod
    async def load(cls, db_path: Optional[str] = None) -> "Catalog":
        products = await crud.list_products(db_path)
        _logger.info(f"Loaded {len(products)} products into the catalog")
        return cls(products)

    def get(self, product_id: str) -> Optional[Product]:
        return self._by_id.get(product_id)

    def price_of(self, product_id: str) -> Optional[float]:
        product = self._by_id.get(product_id)
        return product.price if product else None

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._by_id

    def __iter__(self) -> Iterator[Product]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)
