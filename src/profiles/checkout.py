"""
Checkout hand-off.

The payment provider is out of reach of this package: a CheckoutGateway gets
a snapshot of the cart plus customer details and reports whether the order
went through. The only obligation on this side is to record the purchase
(which empties the cart) on success and to leave the cart alone otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol

from profiles.cart import CartProjection
from profiles.errors import CheckoutError
from profiles.events import EventShipper
from profiles.manager import ProfileManager
from utils.logger import get_logger
from utils.pure import epoch_millis, make_token

_logger = get_logger(__name__)

TAX_RATE = 0.085
# (max total weight, shipping cost); anything heavier pays HEAVY_SHIPPING
SHIPPING_BANDS = ((1, 5.99), (3, 8.99), (5, 12.99))
HEAVY_SHIPPING = 15.99


@dataclass(frozen=True)
class CheckoutResult:
    success: bool
    session_id: Optional[str] = None
    error: Optional[str] = None


class CheckoutGateway(Protocol):
    async def create_session(
        self, items: List[Dict[str, Any]], customer_info: Mapping[str, Any]
    ) -> CheckoutResult: ...


class SimulatedCheckoutGateway:
    """
    Local development gateway: accepts every order without a payment provider.

    Pass `fail_with` to simulate a declined payment.
    """

    def __init__(self, fail_with: Optional[str] = None):
        self.fail_with = fail_with
        self.sessions: List[Dict[str, Any]] = []

    async def create_session(
        self, items: List[Dict[str, Any]], customer_info: Mapping[str, Any]
    ) -> CheckoutResult:
        _logger.info(f"Local development mode - simulating checkout of {len(items)} line(s)")
        if self.fail_with:
            return CheckoutResult(success=False, error=self.fail_with)
        session_id = make_token("cs_sim")
        self.sessions.append({"id": session_id, "items": items, "customer": dict(customer_info)})
        return CheckoutResult(success=True, session_id=session_id)


def calculate_shipping(items: List[Dict[str, Any]]) -> float:
    total_weight = sum(float(item.get("weight") or 0) * item["quantity"] for item in items)
    for limit, cost in SHIPPING_BANDS:
        if total_weight < limit:
            return cost
    return HEAVY_SHIPPING


def calculate_tax(subtotal: float) -> float:
    return round(subtotal * TAX_RATE, 2)


def build_order(items: List[Dict[str, Any]], customer_info: Mapping[str, Any]) -> Dict[str, Any]:
    """Order record stored in purchase history, built from a cart snapshot."""
    subtotal = round(sum(item["price"] * item["quantity"] for item in items), 2)
    shipping = calculate_shipping(items)
    tax = calculate_tax(subtotal)
    return {
        "customer": dict(customer_info),
        "items": [
            {
                "product_id": item["id"],
                "name": item.get("name"),
                "sku": item.get("sku"),
                "price": item["price"],
                "quantity": item["quantity"],
                "total": round(item["price"] * item["quantity"], 2),
            }
            for item in items
        ],
        "totals": {
            "subtotal": subtotal,
            "shipping": shipping,
            "tax": tax,
            "total": round(subtotal + shipping + tax, 2),
        },
        "payment_method": "gateway",
        "order_source": "website",
        "order_id": f"order_{epoch_millis()}",
    }


async def run_checkout(
    manager: ProfileManager,
    projection: CartProjection,
    gateway: CheckoutGateway,
    customer_info: Mapping[str, Any],
    events: EventShipper,
) -> Dict[str, Any]:
    """
    Hand the current cart to the gateway and record the purchase on success.

    Raises CheckoutError for an empty cart or when the gateway does not
    confirm; the cart is untouched in both cases.
    """
    projection.sync_with_profile()
    items = projection.snapshot()
    if not items:
        raise CheckoutError("Cart is empty")

    order = build_order(items, customer_info)
    events.ship(
        "checkout_initiated",
        {"cart_items": len(items), "cart_value": order["totals"]["subtotal"]},
    )
    try:
        result = await gateway.create_session(items, customer_info)
    except Exception as exc:
        _logger.error(f"Checkout gateway error: {exc}")
        events.ship("checkout_error", {"error": str(exc), "cart_items": len(items)})
        raise CheckoutError("Checkout failed, please try again") from exc

    if not result.success:
        _logger.warning(f"Checkout declined: {result.error}")
        events.ship("checkout_error", {"error": result.error, "cart_items": len(items)})
        raise CheckoutError(result.error or "Checkout failed, please try again")

    order["checkout_session_id"] = result.session_id
    await manager.add_purchase(order)
    projection.sync_with_profile()
    events.ship(
        "checkout_completed",
        {"order_id": order["order_id"], "total": order["totals"]["total"]},
    )
    _logger.info(f"Order {order['order_id']} recorded")
    return order
