"""
Unit tests for wire encoding and size estimation.
"""

import json

from feed_batcher.models import Product
from feed_batcher.sizing import decode_group, encode_group, estimate, grown_size, item_size


def test_empty_group_is_two_bytes():
    assert encode_group([]) == b"[]"
    assert estimate([]) == 2


def test_encoding_is_compact_json_with_fixed_keys():
    payload = encode_group([Product(id="A", title="B", description="C")])
    assert payload == b'[{"id":"A","title":"B","description":"C"}]'


def test_estimate_counts_utf8_bytes_not_characters():
    group = [Product(id="1", title="Café ☕", description="Résumé 日本語")]
    text = json.dumps(
        [{"id": "1", "title": "Café ☕", "description": "Résumé 日本語"}],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    assert estimate(group) == len(text.encode("utf-8"))
    assert estimate(group) > len(text)


def test_grown_size_matches_full_estimate():
    products = [
        Product(id=f"P{i}", title=f"Product {i}", description="é" * i) for i in range(6)
    ]
    size = estimate([])
    for n, p in enumerate(products):
        size = grown_size(size, n, p)
        assert size == estimate(products[: n + 1])


def test_item_size_excludes_brackets():
    p = Product(id="A", title="B", description="C")
    assert item_size(p) == estimate([p]) - 2


def test_decode_returns_products_in_order():
    group = [Product(id="A", title="T1"), Product(id="B", title="T2", description="d")]
    assert decode_group(encode_group(group)) == group
