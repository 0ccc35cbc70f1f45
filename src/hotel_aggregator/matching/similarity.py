"""String and geographic similarity helpers used by the matcher and merger."""
from __future__ import annotations

import math
import re

EARTH_RADIUS_KM = 6371.0

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_name(value: str | None) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    if not value:
        return ""
    text = _NON_ALNUM_RE.sub(" ", value.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_facet_value(value: str) -> str:
    """Key used to deduplicate images and amenities across providers."""
    text = value.strip().casefold()
    if text.startswith(("http://", "https://")):
        text = text.rstrip("/")
    return text


def jaro_winkler(left: str, right: str, *, prefix_scale: float = 0.1) -> float:
    """Jaro-Winkler similarity in [0, 1]; 1.0 for identical strings."""
    if left == right:
        return 1.0
    len_left, len_right = len(left), len(right)
    if not len_left or not len_right:
        return 0.0

    window = max(max(len_left, len_right) // 2 - 1, 0)
    left_matches = [False] * len_left
    right_matches = [False] * len_right
    matches = 0
    for i, char in enumerate(left):
        start = max(0, i - window)
        end = min(i + window + 1, len_right)
        for j in range(start, end):
            if right_matches[j] or right[j] != char:
                continue
            left_matches[i] = True
            right_matches[j] = True
            matches += 1
            break
    if not matches:
        return 0.0

    transpositions = 0
    k = 0
    for i in range(len_left):
        if not left_matches[i]:
            continue
        while not right_matches[k]:
            k += 1
        if left[i] != right[k]:
            transpositions += 1
        k += 1

    jaro = (matches / len_left + matches / len_right + (matches - transpositions / 2) / matches) / 3.0

    prefix = 0
    for a, b in zip(left[:4], right[:4]):
        if a != b:
            break
        prefix += 1
    return min(1.0, jaro + prefix * prefix_scale * (1.0 - jaro))


def name_similarity(left: str | None, right: str | None) -> float:
    return jaro_winkler(normalize_name(left), normalize_name(right))


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two WGS84 points in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def location_score(distance_km: float, radius_km: float) -> float:
    """Linear decay from 1.0 at zero distance to 0.0 at the search radius."""
    if radius_km <= 0:
        return 1.0 if distance_km <= 0 else 0.0
    return max(0.0, 1.0 - distance_km / radius_km)
