"""
Guest to registered reconciliation.

Two entry points:

* `merge_guest_data` folds a cached guest profile into a registered one when
  the shopper signs in (or an existing sign-in is discovered at startup).
* `build_registered_from_guest` turns the live guest profile into a brand new
  registered profile during sign-up.

Both work on profiles that are not yet the manager's current profile; the
manager swaps the result in once persistence has succeeded.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from profiles.identity import Identity
from profiles.model import ConversionRecord, Profile, ProfileType
from utils.pure import utc_now_iso


@dataclass(frozen=True)
class SignupDetails:
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    marketing_emails: bool = False


def cart_stats(profile: Profile) -> Tuple[int, float]:
    """(line count, total) of the profile's active cart."""
    cart = profile.shopping.cart
    return len(cart.items), cart.total


def merge_guest_data(registered: Profile, guest: Profile) -> Profile:
    """
    Fold `guest` into `registered` in place and return it.

    - cart: replaced wholesale by the guest cart, only when the guest cart has items
    - wishlist: union by product_id, guest entries appended
    - page views, product views, analytics events: registered first, then guest;
      no de-duplication and no bounds here (bounds apply on the next append)
    - metadata.visit_count: summed
    """
    if guest.shopping.cart.items:
        registered.shopping.cart = copy.deepcopy(guest.shopping.cart)

    known = {w.product_id for w in registered.shopping.wishlist}
    for item in guest.shopping.wishlist:
        if item.product_id not in known:
            registered.shopping.wishlist.append(copy.deepcopy(item))
            known.add(item.product_id)

    registered.browsing.page_views = registered.browsing.page_views + copy.deepcopy(guest.browsing.page_views)
    registered.browsing.product_views = registered.browsing.product_views + copy.deepcopy(
        guest.browsing.product_views
    )
    registered.analytics.events = registered.analytics.events + copy.deepcopy(guest.analytics.events)

    registered.metadata["visit_count"] = int(registered.metadata.get("visit_count", 0) or 0) + int(
        guest.metadata.get("visit_count", 0) or 0
    )
    return registered


def build_registered_from_guest(
    guest: Profile,
    identity: Identity,
    details: SignupDetails,
    guest_session_id: str,
) -> Profile:
    """Deep copy of the guest profile re-keyed to the new account, with the sign-up details overlaid."""
    now = utc_now_iso()
    registered = guest.clone()
    registered.id = identity.identifier
    registered.type = ProfileType.REGISTERED
    registered.updated_at = now
    registered.personal_info = replace(
        registered.personal_info,
        email=details.email,
        name=details.name,
        phone=details.phone,
    )
    registered.preferences = {
        **registered.preferences,
        "marketing_emails": bool(details.marketing_emails),
    }
    registered.converted_from_guest = ConversionRecord(
        original_guest_id=guest.id,
        converted_at=now,
        guest_session_id=guest_session_id,
    )
    return registered
