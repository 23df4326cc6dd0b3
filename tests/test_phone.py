"""Phone normalization and caller lookup."""
from peachhaus import db
from peachhaus.phone import (
    Contact,
    PhoneLookupCache,
    normalize_phone,
    to_e164,
)


def test_normalize_keeps_last_ten_digits():
    assert normalize_phone("+1 (404) 800-5932") == "4048005932"
    assert normalize_phone("14048005932") == "4048005932"
    assert normalize_phone("404.800.5932") == "4048005932"


def test_normalize_rejects_short_numbers():
    assert normalize_phone("800-5932") is None
    assert normalize_phone("") is None
    assert normalize_phone(None) is None


def test_e164():
    assert to_e164("(404) 800-5932") == "+14048005932"
    assert to_e164("1-404-800-5932") == "+14048005932"


def test_cache_prefers_owner_over_lead(c):
    db.insert(c, "property_owners", {"id": "o1", "name": "Olivia Owner", "phone": "404-555-0101",
                                     "email": "olivia@example.com"})
    db.insert(c, "leads", {"id": "l1", "name": "Lee Lead", "phone": "+1 404 555 0101"})
    db.insert(c, "leads", {"id": "l2", "name": "Lana Lead", "phone": "(678) 555-0199",
                           "email": "Lana@Example.com"})
    cache = PhoneLookupCache.load(c)

    hit = cache.lookup("4045550101")
    assert hit.kind == "owner" and hit.id == "o1"
    assert cache.lookup("678.555.0199").id == "l2"
    assert cache.lookup_email(" lana@example.com ").id == "l2"
    assert cache.lookup("555-0101") is None, "short inputs never match"
    assert cache.lookup(None) is None


def test_cache_ignores_unusable_numbers():
    cache = PhoneLookupCache()
    cache.add(Contact("lead", "x", "No Phone"), "12345")
    assert len(cache) == 0
