"""
Listing search: filtering, sorting and pagination over any listing source.
"""

import math
import time
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from nftmeta.models import Listing, SearchCriteria, SearchPage, Pagination, SortField, SortOrder


def _price(listing: Listing) -> Decimal:
    """Parse a listing price; unparseable prices sort as zero."""
    try:
        return Decimal(listing.price)
    except (InvalidOperation, TypeError):
        return Decimal(0)


def _matches(listing: Listing, criteria: SearchCriteria) -> bool:
    if criteria.price_min is not None and _price(listing) < Decimal(str(criteria.price_min)):
        return False
    if criteria.price_max is not None and _price(listing) > Decimal(str(criteria.price_max)):
        return False
    if criteria.collection and listing.nft_contract.lower() != criteria.collection.lower():
        return False
    if criteria.seller and listing.seller.lower() != criteria.seller.lower():
        return False
    if criteria.token_id is not None and listing.token_id != criteria.token_id:
        return False
    return True


def filter_sort_paginate(listings: Iterable[Listing], criteria: SearchCriteria) -> SearchPage:
    """
    Select one page of listings.

    Args:
        listings: Candidate listings, any order
        criteria: Filters, sort key/direction and page position

    Returns:
        SearchPage whose pagination.total counts all filtered listings
    """
    filtered = [listing for listing in listings if _matches(listing, criteria)]

    if criteria.sort_by == SortField.PRICE:
        sort_key = _price
    else:
        sort_key = lambda listing: listing.created_at
    # sorted() is stable, so ties keep source order in both directions
    filtered = sorted(filtered, key=sort_key, reverse=criteria.sort_order == SortOrder.DESC)

    start = (criteria.page - 1) * criteria.limit
    page_items = filtered[start:start + criteria.limit]

    return SearchPage(
        listings=page_items,
        pagination=Pagination(
            page=criteria.page,
            limit=criteria.limit,
            total=len(filtered),
            total_pages=math.ceil(len(filtered) / criteria.limit),
        ),
    )


class MockListingStore:
    """
    Fixed in-memory listing set used until a real listing index exists.
    """

    def __init__(self, listings: Optional[List[Listing]] = None):
        if listings is None:
            listings = [
                Listing(
                    listing_id=1,
                    seller="0x742E4C2F4C7c2B8Ee6F2d8e8e8e8e8e8e8e8e8e8",
                    nft_contract="0x8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e8e",
                    token_id=1,
                    price="100",
                    active=True,
                    created_at=int(time.time() * 1000) - 1000000,
                ),
            ]
        self._listings = list(listings)

    def all(self) -> List[Listing]:
        return list(self._listings)

    def search(self, criteria: SearchCriteria) -> SearchPage:
        return filter_sort_paginate(self._listings, criteria)
