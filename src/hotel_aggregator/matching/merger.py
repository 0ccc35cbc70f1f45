"""Collapse matched provider results into one listing per canonical hotel."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from hotel_aggregator.hotels.models import MatchedResult, ProviderOffer, UnifiedHotelListing

from .similarity import normalize_facet_value

PRICE_COMPARISON_THRESHOLD = 0.10

logger = logging.getLogger(__name__)

_Member = Tuple[int, MatchedResult]


def merge_listings(
    matched: Iterable[MatchedResult],
    *,
    provider_order: Sequence[str] = (),
) -> List[UnifiedHotelListing]:
    """Group advertisable matches by canonical id and merge each group.

    Unmatched and non-advertisable results are dropped. The cheapest offer wins; ties go
    to the provider registered first, then to the earlier result. Output is sorted by
    price, then canonical id, so identical input always yields identical output.
    """
    ranks = {name: index for index, name in enumerate(provider_order)}
    groups: Dict[str, List[_Member]] = {}
    for index, item in enumerate(matched):
        match = item.match
        if not match.canonical_id or not match.should_advertise:
            continue
        groups.setdefault(match.canonical_id, []).append((index, item))

    listings: List[UnifiedHotelListing] = []
    for canonical_id, members in groups.items():
        try:
            listings.append(_merge_group(canonical_id, members, ranks))
        except Exception:
            logger.exception("Failed to merge %s result(s) for %s", len(members), canonical_id)
    listings.sort(key=lambda listing: (listing.price, listing.canonical_id))
    return listings


def _offer_key(member: _Member, ranks: Mapping[str, int]) -> tuple[float, int, int]:
    index, item = member
    return (item.hotel.price, ranks.get(item.hotel.provider_id, len(ranks)), index)


def _union(members: Sequence[_Member], attr: str) -> tuple[List[str], List[str]]:
    seen: set[str] = set()
    values: List[str] = []
    sources: List[str] = []
    for _, item in members:
        for value in getattr(item.hotel, attr) or ():
            if not isinstance(value, str) or not value.strip():
                continue
            key = normalize_facet_value(value)
            if key in seen:
                continue
            seen.add(key)
            values.append(value.strip())
            if item.hotel.provider_id not in sources:
                sources.append(item.hotel.provider_id)
    return values, sources


def _merge_group(
    canonical_id: str,
    members: Sequence[_Member],
    ranks: Mapping[str, int],
) -> UnifiedHotelListing:
    ordered = sorted(members, key=lambda member: _offer_key(member, ranks))
    selected = ordered[0][1].hotel

    offers = [
        ProviderOffer(
            provider_id=item.hotel.provider_id,
            provider_hotel_id=item.hotel.provider_hotel_id,
            price=item.hotel.price,
            currency=item.hotel.currency,
            confidence=item.match.confidence,
        )
        for _, item in ordered
    ]

    images, image_sources = _union(members, "images")
    amenities, amenity_sources = _union(members, "amenities")

    description = ""
    description_source: List[str] = []
    for _, item in members:
        text = (item.hotel.description or "").strip()
        if len(text) > len(description):
            description = text
            description_source = [item.hotel.provider_id]

    star_rating = next(
        (item.hotel.star_rating for _, item in ordered if item.hotel.star_rating is not None),
        None,
    )

    return UnifiedHotelListing(
        canonical_id=canonical_id,
        name=selected.name,
        price=selected.price,
        currency=selected.currency,
        selected_provider=selected.provider_id,
        all_offers=offers,
        images=images,
        amenities=amenities,
        description=description,
        star_rating=star_rating,
        should_advertise=True,
        data_sources={
            "pricing": [selected.provider_id],
            "images": image_sources,
            "amenities": amenity_sources,
            "description": description_source,
        },
    )


def should_show_price_comparison(
    offers: Sequence[ProviderOffer],
    threshold: float = PRICE_COMPARISON_THRESHOLD,
) -> bool:
    """True when the priciest offer is at least ``threshold`` above the cheapest."""
    if len(offers) < 2:
        return False
    prices = [offer.price for offer in offers]
    cheapest = min(prices)
    if cheapest <= 0:
        return False
    return (max(prices) - cheapest) / cheapest >= threshold
