"""Tests for navigation label scoring."""

import pytest

from link_engine.resolve.navigation import (
    normalize_label,
    resolve_navigation_link,
    score_navigation_candidate,
    score_path,
    should_reject_homepage,
)

from fakes import FakeVerifier


def test_normalize_label_strips_marketing_suffix_and_filler():
    label = normalize_label("SALE — up to 50% OFF")
    assert label.text == "sale"
    assert label.slug == "sale"

    label = normalize_label("Shop Our Best Sellers!")
    assert label.slug == "shop-our-best-sellers"
    assert label.compact == "shopourbestsellers"
    assert "our" in label.tokens


def test_sale_label_picks_collection_over_homepage():
    url = score_navigation_candidate(
        "SALE — up to 50% OFF",
        ["https://brand.com/", "https://brand.com/collections/sale-2025"],
        "brand.com",
    )
    assert url == "https://brand.com/collections/sale-2025"


def test_sale_collection_score():
    assert score_path("/collections/sale-2025", normalize_label("SALE — up to 50% OFF")) >= 5


def test_homepage_rejected_for_keyword_labels():
    assert should_reject_homepage("Weekly Deals")
    assert not should_reject_homepage("Home")
    assert score_navigation_candidate("Shop", ["https://brand.com/"], "brand.com", min_score=0) is None


def test_products_never_returned():
    urls = [
        "https://brand.com/products/gift-card",
        "https://brand.com/products/gift-cards-gift-card",
    ]
    assert score_navigation_candidate("Gift Card", urls, "brand.com", min_score=0) is None
    assert score_path("/products/gift-card", normalize_label("Gift Card")) is None


def test_utility_pages_get_bonus():
    urls = ["https://brand.com/blogs/faq-news", "https://brand.com/pages/faq"]
    assert score_navigation_candidate("FAQ", urls, "brand.com") == "https://brand.com/pages/faq"


def test_other_hosts_ignored():
    urls = ["https://other.com/collections/sale", "https://www.brand.com/collections/sale?utm_source=x"]
    assert score_navigation_candidate("Sale", urls, "brand.com") == "https://www.brand.com/collections/sale"


def test_first_best_wins_on_tie():
    urls = ["https://brand.com/collections/sale", "https://brand.com/collections/sale-items"]
    assert score_navigation_candidate("Sale", urls, "brand.com") == "https://brand.com/collections/sale"


def test_below_threshold_is_none():
    assert score_navigation_candidate("Contact Us", ["https://brand.com/blogs/news"], "brand.com") is None
    assert score_navigation_candidate("50% OFF", ["https://brand.com/collections/sale"], "brand.com") is None


async def test_resolve_navigation_link_requires_verification():
    urls = ["https://brand.com/collections/sale"]

    assert await resolve_navigation_link("Sale", urls, "brand.com", FakeVerifier()) == urls[0]
    assert await resolve_navigation_link("Sale", urls, "brand.com", FakeVerifier(dead=urls)) is None
