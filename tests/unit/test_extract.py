"""
Unit tests for product field extraction.
"""

from types import SimpleNamespace

from feed_batcher.driver import extract_product
from feed_batcher.models import Product


def test_extract_namespaced_fields():
    item = {
        "g:id": "PROD123",
        "title": "Test Product",
        "g:description": "This is a test product description",
    }
    assert extract_product(item) == Product(
        id="PROD123", title="Test Product", description="This is a test product description"
    )


def test_extract_bare_fields():
    item = {"id": "PROD456", "title": "Another Product", "description": "Another description"}
    assert extract_product(item) == Product(
        id="PROD456", title="Another Product", description="Another description"
    )


def test_namespaced_preferred_over_bare():
    item = {"g:id": "G1", "id": "B1", "title": "T", "g:description": "gd", "description": "bd"}
    p = extract_product(item)
    assert p.id == "G1"
    assert p.description == "gd"


def test_summary_fallback_for_description():
    p = extract_product({"id": "E1", "title": "Entry", "summary": "  short summary "})
    assert p.description == "short summary"


def test_trims_whitespace():
    item = {
        "g:id": "  PROD789  ",
        "title": "  Product with spaces  ",
        "g:description": "  Description with spaces  ",
    }
    assert extract_product(item) == Product(
        id="PROD789", title="Product with spaces", description="Description with spaces"
    )


def test_text_holder_values():
    item = {
        "g:id": {"$text": " PROD999 "},
        "title": {"$text": "Complex Product", "lang": "en"},
        "g:description": SimpleNamespace(text=" Complex description "),
    }
    assert extract_product(item) == Product(
        id="PROD999", title="Complex Product", description="Complex description"
    )


def test_missing_fields_become_empty():
    p = extract_product({"title": "Product Without ID"})
    assert p == Product(id="", title="Product Without ID", description="")
    assert not p.is_batchable


def test_empty_namespaced_falls_back_to_bare():
    p = extract_product({"g:id": "   ", "id": "B2", "title": "T"})
    assert p.id == "B2"
