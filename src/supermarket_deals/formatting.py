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
"""Rendering of ranked deals as a text table or a JSON document."""

import json
import math

from supermarket_deals.models import CanonicalDeal, SearchMeta

NO_RESULTS = "No matching deals found."
ELLIPSIS = "..."
COLUMN_SEPARATOR = " | "

DESCRIPTION_WIDTH = 55
STORE_WIDTH = 14
SIZE_WIDTH = 10
PRICE_WIDTH = 10
UNIT_PRICE_WIDTH = 11
VALIDITY_WIDTH = 21


def format_price(value: float | None) -> str:
    if value is None or math.isnan(value):
        return "-"
    return f"{value:.2f} EUR"


def format_price_per_litre(value: float | None) -> str:
    if value is None or math.isnan(value):
        return "-"
    return f"{value:.2f} EUR/L"


def truncate(text: str, width: int) -> str:
    """Shorten ``text`` to ``width`` characters, ending in ``...`` if cut."""
    if len(text) <= width:
        return text
    if width <= len(ELLIPSIS):
        return text[:width]
    return text[: width - len(ELLIPSIS)] + ELLIPSIS


def pad(text: str, width: int) -> str:
    return truncate(text, width).ljust(width)


def _deal_row(deal: CanonicalDeal) -> str:
    return COLUMN_SEPARATOR.join(
        [
            pad(deal.description or deal.product_name, DESCRIPTION_WIDTH),
            pad(deal.store, STORE_WIDTH),
            pad(deal.size, SIZE_WIDTH),
            pad(format_price(deal.price), PRICE_WIDTH),
            pad(format_price_per_litre(deal.price_per_litre), UNIT_PRICE_WIDTH),
            pad(f"{deal.valid_from} – {deal.valid_to}", VALIDITY_WIDTH),
            deal.url or "-",
        ]
    )


def format_deals_table(deals: list[CanonicalDeal]) -> str:
    """Render deals as a fixed-width table.

    Args:
        deals: Deals in display order.

    Returns:
        Header, separator and one line per deal, or a single "no results"
        line when ``deals`` is empty.
    """
    if not deals:
        return NO_RESULTS

    header = COLUMN_SEPARATOR.join(
        [
            pad("Description", DESCRIPTION_WIDTH),
            pad("Store", STORE_WIDTH),
            pad("Size", SIZE_WIDTH),
            pad("Price", PRICE_WIDTH),
            pad("EUR/L", UNIT_PRICE_WIDTH),
            pad("Valid", VALIDITY_WIDTH),
            "URL",
        ]
    )
    separator = "-" * len(header)
    return "\n".join([header, separator, *(_deal_row(deal) for deal in deals)])


def format_deals_json(deals: list[CanonicalDeal], meta: SearchMeta) -> str:
    """Render deals and their search metadata as pretty-printed JSON."""
    document = {
        "meta": meta.model_dump(by_alias=True),
        "results": [deal.model_dump(by_alias=True) for deal in deals],
    }
    return json.dumps(document, indent=2, ensure_ascii=False)
