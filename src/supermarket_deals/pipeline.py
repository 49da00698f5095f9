# ==============================================================================
#  Copyright 2025 Matthew Pounsett <matt@conundrum.com>
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.
# ==============================================================================
"""Multi-query search: merge, deduplicate, filter, rank and truncate."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from supermarket_deals.client import MAX_LIMIT, MarktguruClient
from supermarket_deals.models import CanonicalDeal
from supermarket_deals.normalize import to_deal

logger = logging.getLogger(__name__)


@dataclass
class AggregateResult:
    """Ranked deals plus the sum of upstream hit counts."""

    deals: list[CanonicalDeal]
    total_raw_results: int


def dedupe_deals(deals: Iterable[CanonicalDeal]) -> list[CanonicalDeal]:
    """Drop deals whose id was already seen, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for deal in deals:
        if deal.id in seen:
            continue
        seen.add(deal.id)
        unique.append(deal)
    return unique


def filter_by_stores(
    deals: list[CanonicalDeal], stores: list[str] | None
) -> list[CanonicalDeal]:
    """Keep deals whose store name contains any of ``stores``, ignoring case.

    An empty or missing filter keeps every deal.
    """
    if not stores:
        return deals
    wanted = [store.lower() for store in stores]
    return [deal for deal in deals if any(term in deal.store.lower() for term in wanted)]


def sort_by_unit_price(deals: list[CanonicalDeal]) -> list[CanonicalDeal]:
    """Sort by price per litre, cheapest first, unknown unit prices last.

    The sort is stable: ties keep their incoming order.
    """
    return sorted(
        deals,
        key=lambda deal: (
            deal.price_per_litre is None,
            deal.price_per_litre if deal.price_per_litre is not None else 0.0,
        ),
    )


def aggregate(
    client: MarktguruClient,
    queries: list[str],
    postal_code: str,
    store_filter: list[str] | None,
    limit: int,
    on_query: Callable[[int, str], None] | None = None,
) -> AggregateResult:
    """Run every query and rank the merged offers by unit price.

    Queries run one after another in the given order. Each asks upstream for
    twice ``limit`` offers (capped at the API maximum) so filtering and
    deduplication still leave enough to fill the result. The first failing
    query aborts the whole run.

    Args:
        client: Search client.
        queries: Query strings, earliest wins on duplicate offers.
        postal_code: Postal code for every query.
        store_filter: Store name substrings to keep, or None for all stores.
        limit: Maximum number of deals returned.
        on_query: Called with ``(index, query)`` before each request.

    Returns:
        The ranked deals and the summed upstream ``totalResults``.
    """
    fetch_limit = min(limit * 2, MAX_LIMIT)
    total_raw_results = 0
    merged: list[CanonicalDeal] = []

    for index, query in enumerate(queries):
        if on_query is not None:
            on_query(index, query)
        logger.info("Searching for %r in %s", query, postal_code)
        response = client.search(query, postal_code, fetch_limit)
        total_raw_results += response.total_results
        merged.extend(to_deal(offer, query) for offer in response.results)

    unique = dedupe_deals(merged)
    filtered = filter_by_stores(unique, store_filter)
    logger.debug(
        "%d offers, %d unique, %d after store filter", len(merged), len(unique), len(filtered)
    )
    ranked = sort_by_unit_price(filtered)
    return AggregateResult(deals=ranked[:limit], total_raw_results=total_raw_results)
