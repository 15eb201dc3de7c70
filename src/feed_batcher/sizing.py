"""
Wire encoding and exact size estimation for product groups.

A group is encoded as one compact JSON array of ``{"id","title","description"}``
objects in UTF-8. The size used for batching is the byte length of exactly that
encoding, so the estimate for a hypothetical group and the payload the sink
eventually receives always agree.
"""

from __future__ import annotations

import json
from typing import Iterable, List

from .models import Product

_FIELDS = ("id", "title", "description")


def _as_wire(product: Product) -> dict:
    return {k: getattr(product, k) for k in _FIELDS}


def encode_group(products: Iterable[Product]) -> bytes:
    """Serialize products into the canonical wire form."""
    doc = [_as_wire(p) for p in products]
    return json.dumps(doc, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def estimate(products: Iterable[Product]) -> int:
    """Exact encoded byte length of the group (not a character count)."""
    return len(encode_group(products))


def decode_group(payload: bytes) -> List[Product]:
    """Parse a wire payload back into products (used by receiving sinks)."""
    return [Product(**row) for row in json.loads(payload.decode("utf-8"))]


def item_size(product: Product) -> int:
    """Bytes one product adds to the array body, excluding separators."""
    return estimate([product]) - 2


def grown_size(current_size: int, current_count: int, product: Product) -> int:
    """Exact ``estimate(group + [product])`` given ``estimate(group)``.

    Compact encoding means a group is ``[`` + items joined by ``,`` + ``]``, so
    appending one product adds its own bytes plus one comma when the group is
    not empty.
    """
    return current_size + item_size(product) + (1 if current_count else 0)
