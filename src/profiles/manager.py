"""
Shared contract of the profile managers.

A ProfileManager owns the one live Profile. Mutations, identity transitions
and guest conversion all hold the manager lock, so each one finishes before
the next starts and they apply in the order they were issued; a mutation
issued during a sign-in lands on the incoming profile. Inside an operation
memory changes first and the variant's `_persist` runs afterwards. The
variants differ only in where `_persist` writes to.
"""

from __future__ import annotations

import asyncio
import functools
import json
from abc import ABC, abstractmethod
from dataclasses import fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from profiles.catalog import Catalog
from profiles.identity import Identity
from profiles.merge import SignupDetails, cart_stats
from profiles.model import (
    MAX_ABANDONED_CARTS,
    MAX_ANALYTICS_EVENTS,
    MAX_PAGE_VIEWS,
    MAX_PRODUCT_VIEWS,
    AbandonedCart,
    AnalyticsEvent,
    Cart,
    CartItem,
    ClientContext,
    PageView,
    PersonalInfo,
    Profile,
    ProductView,
    ProfileType,
    WishlistItem,
)
from profiles.session import BrowserSession
from profiles.stores import LocalCache
from utils.logger import get_logger
from utils.pure import epoch_millis, keep_last, make_token, priced_total, utc_now_iso

_logger = get_logger(__name__)

_PERSONAL_INFO_FIELDS = frozenset(f.name for f in fields(PersonalInfo))


def serialized(method):
    """Run a manager coroutine under the manager lock, after every operation issued before it."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        async with self._lock:
            return await method(self, *args, **kwargs)

    return wrapper


class ProfileManager(ABC):
    variant = "base"

    def __init__(
        self,
        catalog: Catalog,
        local_cache: LocalCache,
        session_storage: Optional[LocalCache] = None,
        client: Optional[ClientContext] = None,
    ):
        self.catalog = catalog
        self.local_cache = local_cache
        self.session = BrowserSession(session_storage or local_cache)
        self.client = client or ClientContext()
        self.current_profile: Optional[Profile] = None
        # mutations, identity transitions and conversion run one at a time, in issue order
        self._lock = asyncio.Lock()

    # ---------------------------
    # Variant hooks
    # ---------------------------

    @abstractmethod
    async def initialize_profile(self) -> Profile:
        """Load or create the current profile. Never returns None."""

    @abstractmethod
    async def handle_auth_change(self, identity: Optional[Identity]) -> None:
        """React to a sign-in (identity) or sign-out (None)."""

    @abstractmethod
    async def convert_guest_to_registered(self, details: SignupDetails, password: str) -> Profile:
        """Turn the live guest profile into a registered one for a new account."""

    @abstractmethod
    async def _persist(self) -> None:
        """Persist the current profile after a mutation. Must not raise."""

    async def _persist_update(self) -> None:
        await self._persist()

    async def flush(self) -> None:
        """Write out anything still waiting in a batch."""

    async def close(self) -> None:
        await self.flush()

    # ---------------------------
    # Reads
    # ---------------------------

    def get_current_profile(self) -> Optional[Profile]:
        return self.current_profile

    def get_cart_stats(self) -> Tuple[int, float]:
        if self.current_profile is None:
            return 0, 0.0
        return cart_stats(self.current_profile)

    # ---------------------------
    # Profile lifecycle helpers
    # ---------------------------

    async def _session_id_or_new(self) -> str:
        try:
            return await self.session.session_id()
        except Exception as exc:
            _logger.warning(f"Session storage unavailable, using a throwaway session id: {exc}")
            return make_token("session")

    async def create_fallback_profile(self) -> Profile:
        """Local-only guest profile used when loading anything else failed."""
        session_id = await self._session_id_or_new()
        profile = Profile.create(f"fallback_{epoch_millis()}", ProfileType.GUEST, session_id, self.client)
        _logger.warning(f"Using fallback profile {profile.id}")
        return profile

    @staticmethod
    def _decode(raw: Optional[str], source: str) -> Optional[Profile]:
        if not raw:
            return None
        try:
            return Profile.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            _logger.warning(f"Ignoring unreadable profile in {source}: {exc}")
            return None

    @staticmethod
    def _encode(profile: Profile) -> str:
        return json.dumps(profile.to_dict())

    # ---------------------------
    # Profile fields
    # ---------------------------

    @serialized
    async def update_profile(self, updates: Mapping[str, Any]) -> Optional[Profile]:
        """
        Shallow-merge `updates["personal_info"]` and `updates["preferences"]`.

        Unknown personal_info fields are logged and ignored.
        """
        profile = self.current_profile
        if profile is None:
            return None
        personal = dict(updates.get("personal_info") or {})
        unknown = sorted(set(personal) - _PERSONAL_INFO_FIELDS)
        if unknown:
            _logger.warning(f"Ignoring unknown personal_info fields: {', '.join(unknown)}")
            personal = {key: value for key, value in personal.items() if key in _PERSONAL_INFO_FIELDS}
        preferences = dict(updates.get("preferences") or {})

        profile.personal_info = replace(profile.personal_info, **personal)
        profile.preferences.update(preferences)
        profile.touch()

        await self._persist_update()
        return profile

    # ---------------------------
    # Tracking
    # ---------------------------

    @serialized
    async def track_action(self, action: str, data: Optional[Dict[str, Any]] = None) -> None:
        profile = self.current_profile
        if profile is None:
            return
        now = utc_now_iso()
        profile.analytics.events.append(
            AnalyticsEvent(
                action=action,
                data=dict(data or {}),
                timestamp=now,
                page_url=self.client.page_url,
                user_agent=self.client.user_agent,
            )
        )
        profile.analytics.events = keep_last(profile.analytics.events, MAX_ANALYTICS_EVENTS)
        profile.browsing.last_active = now
        profile.touch(now)
        await self._persist()

    @serialized
    async def track_page_view(self, page_name: str, data: Optional[Dict[str, Any]] = None) -> None:
        profile = self.current_profile
        if profile is None:
            return
        now = utc_now_iso()
        profile.browsing.page_views.append(
            PageView(page=page_name, data=dict(data or {}), timestamp=now, url=self.client.page_url)
        )
        profile.browsing.page_views = keep_last(profile.browsing.page_views, MAX_PAGE_VIEWS)
        profile.browsing.last_active = now
        profile.touch(now)
        await self._persist()

    @serialized
    async def track_product_view(self, product_id: str, data: Optional[Dict[str, Any]] = None) -> None:
        profile = self.current_profile
        if profile is None:
            return
        now = utc_now_iso()
        profile.browsing.product_views.append(
            ProductView(product_id=product_id, product_data=dict(data or {}), timestamp=now)
        )
        profile.browsing.product_views = keep_last(profile.browsing.product_views, MAX_PRODUCT_VIEWS)
        profile.touch(now)
        await self._persist()

    # ---------------------------
    # Cart
    # ---------------------------

    def _recompute_cart_total(self, profile: Profile, now: str) -> None:
        cart = profile.shopping.cart
        cart.total = priced_total(((i.product_id, i.quantity) for i in cart.items), self.catalog.price_of)
        cart.updated_at = now

    @serialized
    async def add_to_cart(self, product_id: str, quantity: int = 1) -> None:
        if quantity < 1:
            raise ValueError("Quantity to add must be at least 1.")
        profile = self.current_profile
        if profile is None:
            return
        now = utc_now_iso()
        existing = profile.shopping.cart.find(product_id)
        if existing:
            existing.quantity += quantity
            existing.updated_at = now
        else:
            profile.shopping.cart.items.append(
                CartItem(product_id=product_id, quantity=quantity, added_at=now, updated_at=now)
            )
        self._recompute_cart_total(profile, now)
        profile.touch(now)
        await self._persist()

    def _drop_line(self, profile: Profile, product_id: str, now: str) -> None:
        cart = profile.shopping.cart
        cart.items = [i for i in cart.items if i.product_id != product_id]
        self._recompute_cart_total(profile, now)
        profile.touch(now)

    @serialized
    async def remove_from_cart(self, product_id: str) -> None:
        profile = self.current_profile
        if profile is None:
            return
        self._drop_line(profile, product_id, utc_now_iso())
        await self._persist()

    @serialized
    async def update_cart_quantity(self, product_id: str, quantity: int) -> None:
        profile = self.current_profile
        if profile is None:
            return
        item = profile.shopping.cart.find(product_id)
        if item is None:
            return
        now = utc_now_iso()
        if quantity <= 0:
            self._drop_line(profile, product_id, now)
            await self._persist()
            return
        item.quantity = quantity
        item.updated_at = now
        self._recompute_cart_total(profile, now)
        profile.touch(now)
        await self._persist()

    def _reset_cart(self, profile: Profile, now: str, record_abandoned: bool) -> None:
        cart = profile.shopping.cart
        if record_abandoned and cart.items:
            profile.shopping.abandoned_carts.append(AbandonedCart.from_cart(cart, now))
            profile.shopping.abandoned_carts = keep_last(profile.shopping.abandoned_carts, MAX_ABANDONED_CARTS)
        profile.shopping.cart = Cart(items=[], total=0.0, updated_at=now)

    @serialized
    async def clear_cart(self) -> None:
        """Empty the cart; a non-empty cart is kept as an abandoned-cart snapshot first."""
        profile = self.current_profile
        if profile is None:
            return
        now = utc_now_iso()
        self._reset_cart(profile, now, record_abandoned=True)
        profile.touch(now)
        await self._persist()

    # ---------------------------
    # Wishlist
    # ---------------------------

    @serialized
    async def add_to_wishlist(self, product_id: str, product_data: Optional[Dict[str, Any]] = None) -> None:
        profile = self.current_profile
        if profile is None or profile.shopping.in_wishlist(product_id):
            return
        now = utc_now_iso()
        profile.shopping.wishlist.append(
            WishlistItem(product_id=product_id, product_data=dict(product_data or {}), added_at=now)
        )
        profile.touch(now)
        await self._persist()

    @serialized
    async def remove_from_wishlist(self, product_id: str) -> None:
        profile = self.current_profile
        if profile is None:
            return
        profile.shopping.wishlist = [w for w in profile.shopping.wishlist if w.product_id != product_id]
        profile.touch()
        await self._persist()

    # ---------------------------
    # Purchases
    # ---------------------------

    @serialized
    async def add_purchase(self, order_data: Mapping[str, Any]) -> None:
        """Record a completed order and empty the cart. A purchased cart is not an abandoned cart."""
        profile = self.current_profile
        if profile is None:
            return
        now = utc_now_iso()
        profile.shopping.purchase_history.append({**order_data, "purchased_at": now})
        self._reset_cart(profile, now, record_abandoned=False)
        profile.touch(now)
        await self._persist()
