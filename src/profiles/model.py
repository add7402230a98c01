"""
Profile entity: the single shopper record shared by guest and registered
sessions.

A Profile serialises to one JSON-compatible document (`to_dict`) and is
rebuilt with `Profile.from_dict`. Missing keys in a stored document fall back
to the defaults below so older documents keep loading.
"""

from __future__ import annotations

import copy
import platform
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from utils.pure import utc_now_iso

MAX_ANALYTICS_EVENTS = 1000
MAX_PAGE_VIEWS = 500
MAX_PRODUCT_VIEWS = 100
MAX_ABANDONED_CARTS = 10


class ProfileType(str, Enum):
    GUEST = "guest"
    REGISTERED = "registered"


@dataclass(frozen=True)
class ClientContext:
    """Environment fingerprint recorded in a new profile's metadata."""

    user_agent: str = field(default_factory=lambda: f"python/{platform.python_version()} ({platform.system()})")
    screen_resolution: str = "unknown"
    timezone: str = "UTC"
    language: str = "en-US"
    referrer: str = "direct"
    page_url: Optional[str] = None


@dataclass
class PersonalInfo:
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    addresses: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class CartItem:
    product_id: str
    quantity: int
    added_at: str
    updated_at: str


@dataclass
class Cart:
    items: List[CartItem] = field(default_factory=list)
    total: float = 0.0
    updated_at: Optional[str] = None

    def find(self, product_id: str) -> Optional[CartItem]:
        return next((i for i in self.items if i.product_id == product_id), None)

    @property
    def item_count(self) -> int:
        return len(self.items)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Cart":
        data = data or {}
        return cls(
            items=[CartItem(**item) for item in data.get("items", [])],
            total=float(data.get("total", 0) or 0),
            updated_at=data.get("updated_at"),
        )


@dataclass
class AbandonedCart:
    items: List[CartItem]
    total: float
    updated_at: Optional[str]
    abandoned_at: str

    @classmethod
    def from_cart(cls, cart: Cart, abandoned_at: str) -> "AbandonedCart":
        return cls(
            items=copy.deepcopy(cart.items),
            total=cart.total,
            updated_at=cart.updated_at,
            abandoned_at=abandoned_at,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "AbandonedCart":
        return cls(
            items=[CartItem(**item) for item in data.get("items", [])],
            total=float(data.get("total", 0) or 0),
            updated_at=data.get("updated_at"),
            abandoned_at=data["abandoned_at"],
        )


@dataclass
class WishlistItem:
    product_id: str
    product_data: Dict[str, Any]
    added_at: str


@dataclass
class Shopping:
    cart: Cart = field(default_factory=Cart)
    wishlist: List[WishlistItem] = field(default_factory=list)
    purchase_history: List[Dict[str, Any]] = field(default_factory=list)
    abandoned_carts: List[AbandonedCart] = field(default_factory=list)

    def in_wishlist(self, product_id: str) -> bool:
        return any(w.product_id == product_id for w in self.wishlist)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Shopping":
        data = data or {}
        return cls(
            cart=Cart.from_dict(data.get("cart")),
            wishlist=[WishlistItem(**w) for w in data.get("wishlist", [])],
            purchase_history=list(data.get("purchase_history", [])),
            abandoned_carts=[AbandonedCart.from_dict(a) for a in data.get("abandoned_carts", [])],
        )


@dataclass
class PageView:
    page: str
    data: Dict[str, Any]
    timestamp: str
    url: Optional[str] = None


@dataclass
class ProductView:
    product_id: str
    product_data: Dict[str, Any]
    timestamp: str


@dataclass
class Browsing:
    page_views: List[PageView] = field(default_factory=list)
    product_views: List[ProductView] = field(default_factory=list)
    categories_visited: List[str] = field(default_factory=list)
    search_queries: List[str] = field(default_factory=list)
    time_spent: int = 0
    last_active: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Browsing":
        data = data or {}
        return cls(
            page_views=[PageView(**p) for p in data.get("page_views", [])],
            product_views=[ProductView(**p) for p in data.get("product_views", [])],
            categories_visited=list(data.get("categories_visited", [])),
            search_queries=list(data.get("search_queries", [])),
            time_spent=int(data.get("time_spent", 0) or 0),
            last_active=data.get("last_active") or utc_now_iso(),
        )


@dataclass
class AnalyticsEvent:
    action: str
    data: Dict[str, Any]
    timestamp: str
    page_url: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class Analytics:
    events: List[AnalyticsEvent] = field(default_factory=list)
    filters_used: List[Any] = field(default_factory=list)
    actions_taken: List[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Analytics":
        data = data or {}
        return cls(
            events=[AnalyticsEvent(**e) for e in data.get("events", [])],
            filters_used=list(data.get("filters_used", [])),
            actions_taken=list(data.get("actions_taken", [])),
        )


@dataclass
class ConversionRecord:
    original_guest_id: str
    converted_at: str
    guest_session_id: str


def default_preferences() -> Dict[str, Any]:
    return {
        "currency": "USD",
        "notifications": True,
        "marketing_emails": False,
        "size_preferences": {},
        "favorite_categories": [],
    }


def default_metadata(client: ClientContext, now: str) -> Dict[str, Any]:
    return {
        "user_agent": client.user_agent,
        "screen_resolution": client.screen_resolution,
        "timezone": client.timezone,
        "language": client.language,
        "referrer": client.referrer or "direct",
        "first_visit": now,
        "visit_count": 1,
    }


@dataclass
class Profile:
    id: str
    type: ProfileType
    session_id: str
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    personal_info: PersonalInfo = field(default_factory=PersonalInfo)
    shopping: Shopping = field(default_factory=Shopping)
    browsing: Browsing = field(default_factory=Browsing)
    analytics: Analytics = field(default_factory=Analytics)
    preferences: Dict[str, Any] = field(default_factory=default_preferences)
    metadata: Dict[str, Any] = field(default_factory=dict)
    converted_from_guest: Optional[ConversionRecord] = None

    @property
    def is_guest(self) -> bool:
        return self.type == ProfileType.GUEST

    @property
    def cart(self) -> Cart:
        return self.shopping.cart

    def touch(self, now: Optional[str] = None) -> str:
        self.updated_at = now or utc_now_iso()
        return self.updated_at

    def clone(self) -> "Profile":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc["type"] = self.type.value
        return doc

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        conversion = data.get("converted_from_guest")
        return cls(
            id=data["id"],
            type=ProfileType(data.get("type", ProfileType.GUEST.value)),
            session_id=data.get("session_id", ""),
            created_at=data.get("created_at") or utc_now_iso(),
            updated_at=data.get("updated_at") or utc_now_iso(),
            personal_info=PersonalInfo(**(data.get("personal_info") or {})),
            shopping=Shopping.from_dict(data.get("shopping")),
            browsing=Browsing.from_dict(data.get("browsing")),
            analytics=Analytics.from_dict(data.get("analytics")),
            preferences={**default_preferences(), **(data.get("preferences") or {})},
            metadata=dict(data.get("metadata") or {}),
            converted_from_guest=ConversionRecord(**conversion) if conversion else None,
        )

    @classmethod
    def create(
        cls,
        profile_id: str,
        profile_type: ProfileType,
        session_id: str,
        client: Optional[ClientContext] = None,
    ) -> "Profile":
        """Synthesize a brand new profile with default sections and a metadata fingerprint."""
        now = utc_now_iso()
        return cls(
            id=profile_id,
            type=profile_type,
            session_id=session_id,
            created_at=now,
            updated_at=now,
            browsing=Browsing(last_active=now),
            metadata=default_metadata(client or ClientContext(), now),
        )
