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
"""Normalization of raw Marktguru offers into ranked deals."""

import math
import re
from datetime import datetime, timezone

from supermarket_deals.models import CanonicalDeal, RawOffer

OFFER_URL_TEMPLATE = "https://www.marktguru.de/offers/{offer_id}"

UNKNOWN_PRODUCT = "Unknown product"
UNKNOWN_STORE = "Unknown store"
PLACEHOLDER = "-"

_NUMERIC_ID = re.compile(r"[0-9]+")


def _number_text(value: int | float) -> str:
    # 2.0 -> "2", 0.5 -> "0.5"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def compute_price_per_litre(offer: RawOffer) -> float | None:
    """Return the offer's price per litre, or None if it cannot be derived.

    A litre-based offer that already carries a reference price uses it as is.
    Otherwise the price is divided by ``volume * quantity``, with a missing
    quantity counting as 1.
    """
    unit = offer.unit.short_name if offer.unit else None
    reference_price = offer.reference_price
    if (
        unit is not None
        and unit.lower() == "l"
        and reference_price is not None
        and math.isfinite(reference_price)
    ):
        return float(reference_price)

    if offer.price is None or offer.volume is None:
        return None

    quantity = offer.quantity if offer.quantity is not None else 1
    total_volume = float(offer.volume) * float(quantity)
    if not math.isfinite(total_volume) or total_volume <= 0:
        return None

    per_litre = float(offer.price) / total_volume
    return per_litre if math.isfinite(per_litre) else None


def format_size(offer: RawOffer) -> str:
    """Render the pack size, e.g. ``1.5L`` or ``6×0.33L``."""
    if offer.volume is None:
        return PLACEHOLDER

    unit = (offer.unit.short_name if offer.unit else None) or "L"
    size = f"{_number_text(offer.volume)}{unit}"
    if offer.quantity is not None and offer.quantity > 1:
        return f"{_number_text(offer.quantity)}×{size}"
    return size


def sanitize_offer_id(raw_id: int | str | None) -> str | None:
    """Return the id as text if it is purely numeric, otherwise None.

    Ids are only ever placed into URLs after passing this check; anything
    else is rejected outright rather than cleaned up.
    """
    if raw_id is None:
        return None
    text = str(raw_id).strip()
    return text if _NUMERIC_ID.fullmatch(text) else None


def offer_url(raw_id: int | str | None) -> str | None:
    safe_id = sanitize_offer_id(raw_id)
    return OFFER_URL_TEMPLATE.format(offer_id=safe_id) if safe_id else None


def normalize_date(value: str | None) -> str:
    """Render an ISO timestamp as a ``YYYY-MM-DD`` date in UTC.

    Timestamps without an offset are taken to be UTC. Text that does not
    parse is returned unchanged, and an empty value becomes ``-``.
    """
    if not value:
        return PLACEHOLDER

    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return value

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return f"{parsed.year:04d}-{parsed.month:02d}-{parsed.day:02d}"


def deal_id(offer: RawOffer) -> str:
    """Return the deduplication key for an offer.

    Offers without an upstream id get a composite key of product name, store,
    price and description, so identical offers still collapse into one.
    """
    if offer.id is not None:
        return str(offer.id)

    product_name = offer.product.name if offer.product else None
    store = offer.advertisers[0].name if offer.advertisers else None
    parts = [
        product_name if product_name is not None else "unknown",
        store if store is not None else "unknown",
        _number_text(offer.price) if offer.price is not None else "na",
        offer.description if offer.description is not None else "",
    ]
    return "|".join(parts)


def to_deal(offer: RawOffer, source_query: str) -> CanonicalDeal:
    """Map a raw offer onto a CanonicalDeal.

    Never raises; missing fields fall back to placeholders.

    Args:
        offer: The upstream offer.
        source_query: The query that returned it.

    Returns:
        The normalized deal.
    """
    validity = offer.validity_dates[0] if offer.validity_dates else None
    product_name = offer.product.name if offer.product else None
    store = offer.advertisers[0].name if offer.advertisers else None

    return CanonicalDeal(
        id=deal_id(offer),
        product_name=(product_name or "").strip() or UNKNOWN_PRODUCT,
        description=(offer.description or "").strip(),
        store=(store or "").strip() or UNKNOWN_STORE,
        price=offer.price,
        price_per_litre=compute_price_per_litre(offer),
        valid_from=normalize_date(validity.valid_from if validity else None),
        valid_to=normalize_date(validity.valid_to if validity else None),
        source_query=source_query,
        size=format_size(offer),
        url=offer_url(offer.id),
    )
