# provide dataclass models for table rows

from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class Account:
    uid: str
    email: str
    display_name: Optional[str]
    created_at: str


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    category: str
    price: float
    stock: int = 0
    sku: Optional[str] = None
    weight: float = 0.0
    description: Optional[str] = None
    image: Optional[str] = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class StoredDocument:
    id: str
    body: str
    updated_at: str
