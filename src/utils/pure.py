import random
import string
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, TypeVar

T = TypeVar("T")

_BASE36 = string.digits + string.ascii_lowercase


def utc_now_iso() -> str:
    """ISO-8601 timestamp in UTC with millisecond precision, e.g. 2025-11-01T12:00:00.000Z"""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def epoch_millis() -> int:
    return int(time.time() * 1000)


def random_suffix(length: int = 9) -> str:
    return "".join(random.choice(_BASE36) for _ in range(length))


def make_token(prefix: str) -> str:
    """
    Build an identifier of the form `<prefix>_<epoch ms>_<9 base36 chars>`.

    Used for session ids and for ids of profiles that never touch the
    remote store.
    """
    return f"{prefix}_{epoch_millis()}_{random_suffix()}"


def keep_last(items: List[T], limit: int) -> List[T]:
    """
    Return `items` truncated to its newest `limit` entries (FIFO drop).

    The list is returned unchanged when it is within bounds.
    """
    if limit <= 0:
        return []
    if len(items) <= limit:
        return items
    return items[-limit:]


def priced_total(
    lines: Iterable[tuple[str, int]],
    price_of: Callable[[str], Optional[float]],
) -> float:
    """
    Sum price x quantity over (product_id, quantity) pairs.

    Lines whose product has no known price contribute nothing. The result is
    rounded to cents.
    """
    total = 0.0
    for product_id, quantity in lines:
        price = price_of(product_id)
        if price is None:
            continue
        total += price * quantity
    return round(total, 2)


def set_path(doc: dict, dotted: str, value) -> None:
    """Assign `value` at a dotted path like `browsing.last_active`, creating dicts on the way."""
    keys = dotted.split(".")
    node = doc
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[keys[-1]] = value


def deep_merge(base: dict, patch: dict) -> dict:
    """
    Merge `patch` into a copy of `base`; nested dicts merge, everything else
    (lists included) is replaced.
    """
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
