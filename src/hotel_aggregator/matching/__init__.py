"""Canonical matching and listing merge."""

from .engine import CanonicalMatcher, MatchThresholds
from .merger import merge_listings, should_show_price_comparison
from .similarity import haversine_km, jaro_winkler, location_score, normalize_name

__all__ = [
    "CanonicalMatcher",
    "MatchThresholds",
    "haversine_km",
    "jaro_winkler",
    "location_score",
    "merge_listings",
    "normalize_name",
    "should_show_price_comparison",
]
