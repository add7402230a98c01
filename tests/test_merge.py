import os
import sys
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from profiles.identity import Identity  # noqa: E402
from profiles.merge import (  # noqa: E402
    SignupDetails,
    build_registered_from_guest,
    cart_stats,
    merge_guest_data,
)
from profiles.model import (  # noqa: E402
    AnalyticsEvent,
    CartItem,
    PageView,
    Profile,
    ProfileType,
    WishlistItem,
)

NOW = "2025-11-01T12:00:00.000Z"


def _profile(profile_id, profile_type=ProfileType.GUEST, cart=None, total=0.0, wishlist=(), pages=(), visits=1):
    profile = Profile.create(profile_id, profile_type, "session_1")
    profile.shopping.cart.items = [CartItem(pid, qty, NOW, NOW) for pid, qty in (cart or [])]
    profile.shopping.cart.total = total
    profile.shopping.wishlist = [WishlistItem(pid, {}, NOW) for pid in wishlist]
    profile.browsing.page_views = [PageView(page, {}, NOW) for page in pages]
    profile.metadata["visit_count"] = visits
    return profile


class MergeGuestDataTestCase(unittest.TestCase):
    def test_guest_cart_replaces_registered_cart(self):
        registered = _profile("uid_1", ProfileType.REGISTERED, cart=[("sku-10", 1)], total=10.0)
        guest = _profile("guest_1", cart=[("sku-25", 1)], total=25.0)

        merge_guest_data(registered, guest)
        self.assertEqual([i.product_id for i in registered.shopping.cart.items], ["sku-25"])
        self.assertEqual(registered.shopping.cart.total, 25.0)

        # merged cart is a copy, not shared with the guest
        guest.shopping.cart.items[0].quantity = 9
        self.assertEqual(registered.shopping.cart.items[0].quantity, 1)

    def test_empty_guest_cart_keeps_registered_cart(self):
        registered = _profile("uid_1", ProfileType.REGISTERED, cart=[("sku-10", 1)], total=10.0)
        guest = _profile("guest_1")

        merge_guest_data(registered, guest)
        self.assertEqual(cart_stats(registered), (1, 10.0))

    def test_wishlist_is_a_union(self):
        registered = _profile("uid_1", ProfileType.REGISTERED, wishlist=["A"])
        guest = _profile("guest_1", wishlist=["A", "B"])

        merge_guest_data(registered, guest)
        self.assertEqual([w.product_id for w in registered.shopping.wishlist], ["A", "B"])

    def test_histories_concatenate_and_visits_sum(self):
        registered = _profile("uid_1", ProfileType.REGISTERED, pages=["home", "about"], visits=4)
        registered.analytics.events = [AnalyticsEvent("login", {}, NOW)]
        guest = _profile("guest_1", pages=["home", "cart"], visits=2)
        guest.analytics.events = [AnalyticsEvent("click", {}, NOW)]

        merge_guest_data(registered, guest)
        self.assertEqual([p.page for p in registered.browsing.page_views], ["home", "about", "home", "cart"])
        self.assertEqual([e.action for e in registered.analytics.events], ["login", "click"])
        self.assertEqual(registered.metadata["visit_count"], 6)
        self.assertEqual(registered.id, "uid_1")


class BuildRegisteredTestCase(unittest.TestCase):
    def test_conversion_keeps_guest_data_under_new_identity(self):
        guest = _profile("guest_session_1", cart=[("sku-1", 2)], total=19.98, wishlist=["sku-2"])
        guest.preferences["currency"] = "EUR"
        identity = Identity("uid_abc", "ada@example.com")
        details = SignupDetails(email="ada@example.com", name="Ada", phone="555", marketing_emails=True)

        registered = build_registered_from_guest(guest, identity, details, "session_1")

        self.assertEqual(registered.id, "uid_abc")
        self.assertEqual(registered.type, ProfileType.REGISTERED)
        self.assertEqual(cart_stats(registered), (1, 19.98))
        self.assertEqual(registered.shopping.wishlist[0].product_id, "sku-2")
        self.assertEqual(registered.personal_info.email, "ada@example.com")
        self.assertEqual(registered.personal_info.name, "Ada")
        self.assertEqual(registered.personal_info.phone, "555")
        self.assertEqual(registered.preferences["currency"], "EUR")
        self.assertTrue(registered.preferences["marketing_emails"])

        record = registered.converted_from_guest
        self.assertEqual(record.original_guest_id, "guest_session_1")
        self.assertEqual(record.guest_session_id, "session_1")
        self.assertEqual(record.converted_at, registered.updated_at)

        # the guest itself is untouched
        self.assertEqual(guest.type, ProfileType.GUEST)
        self.assertIsNone(guest.converted_from_guest)
        registered.shopping.cart.items[0].quantity = 5
        self.assertEqual(guest.shopping.cart.items[0].quantity, 2)
