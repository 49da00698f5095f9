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
"""Data models for Marktguru offers, ranked deals and local state.

Upstream offers are untrusted: every field is optional and values of the
wrong type are dropped to ``None`` during validation rather than raising, so
an offer can always be built from whatever the API returns.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _number_or_none(value: Any) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, int):
        # JSON integers are unbounded; anything a float cannot hold is unusable
        try:
            float(value)
        except OverflowError:
            return None
    return value


def _text_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _mapping_or_none(value: Any) -> dict | None:
    return value if isinstance(value, dict) else None


def _mapping_list(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, dict) else {} for item in value]


class CamelModel(BaseModel):
    """Base model using camelCase names on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CredentialPair(CamelModel):
    """The two Marktguru API keys and when they were captured."""

    api_key: str
    client_key: str
    fetched_at: int = Field(description="Capture time in epoch milliseconds.")

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        """Return True if both keys are present and younger than ``ttl_ms``."""
        if not self.api_key or not self.client_key:
            return False
        return now_ms - self.fetched_at < ttl_ms


class OfferProduct(CamelModel):
    name: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str | None:
        return _text_or_none(value)


class Advertiser(CamelModel):
    name: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str | None:
        return _text_or_none(value)


class OfferUnit(CamelModel):
    short_name: str | None = None

    @field_validator("short_name", mode="before")
    @classmethod
    def _coerce_short_name(cls, value: Any) -> str | None:
        return _text_or_none(value)


class ValidityDate(CamelModel):
    valid_from: str | None = Field(default=None, alias="from")
    valid_to: str | None = Field(default=None, alias="to")

    @field_validator("valid_from", "valid_to", mode="before")
    @classmethod
    def _coerce_dates(cls, value: Any) -> str | None:
        return _text_or_none(value)


class RawOffer(CamelModel):
    """One flyer entry as returned by the Marktguru search API."""

    id: int | str | None = None
    product: OfferProduct | None = None
    advertisers: list[Advertiser] = []
    price: int | float | None = None
    reference_price: int | float | None = None
    description: str | None = None
    volume: int | float | None = None
    quantity: int | float | None = None
    unit: OfferUnit | None = None
    validity_dates: list[ValidityDate] = []

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> int | str | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, float):
            return int(value) if value.is_integer() else str(value)
        if isinstance(value, (int, str)):
            return value
        return None

    @field_validator("price", "reference_price", "volume", "quantity", mode="before")
    @classmethod
    def _coerce_numbers(cls, value: Any) -> int | float | None:
        return _number_or_none(value)

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> str | None:
        return _text_or_none(value)

    @field_validator("product", "unit", mode="before")
    @classmethod
    def _coerce_nested(cls, value: Any) -> dict | None:
        return _mapping_or_none(value)

    @field_validator("advertisers", "validity_dates", mode="before")
    @classmethod
    def _coerce_lists(cls, value: Any) -> list[dict]:
        return _mapping_list(value)

    @classmethod
    def from_payload(cls, payload: Any) -> "RawOffer":
        """Build an offer from any decoded JSON value.

        Args:
            payload: One entry of the ``results`` array.

        Returns:
            The parsed offer; an empty offer if ``payload`` is not an object.
        """
        if not isinstance(payload, dict):
            return cls()
        return cls.model_validate(payload)


class SearchResponse(BaseModel):
    """Result of one search request."""

    total_results: int = 0
    results: list[RawOffer] = []


class CanonicalDeal(CamelModel):
    """A normalized offer, ready for ranking and display."""

    id: str
    product_name: str
    description: str
    store: str
    price: float | None
    price_per_litre: float | None
    valid_from: str
    valid_to: str
    source_query: str
    size: str
    url: str | None


class SearchMeta(CamelModel):
    """Metadata emitted alongside JSON results."""

    queries: list[str]
    zip: str
    stores: list[str]
    total_raw_results: int
    result_count: int


class Preferences(CamelModel):
    """Persisted user defaults."""

    default_zip: str
    default_stores: list[str]
