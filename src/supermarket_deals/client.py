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
"""Marktguru offer search API client."""

import logging
import math

import httpx
from furl import furl

from supermarket_deals.config import ZIP_PATTERN
from supermarket_deals.credentials import (
    CredentialCache,
    CredentialResolver,
    HomepageCredentialSource,
)
from supermarket_deals.errors import UpstreamError, ValidationError
from supermarket_deals.models import CredentialPair, RawOffer, SearchResponse

logger = logging.getLogger(__name__)

SEARCH_ENDPOINT = "https://api.marktguru.de/api/v1/offers/search"

MAX_QUERY_LENGTH = 100
MAX_LIMIT = 100
ERROR_BODY_LENGTH = 200


def validate_search(query: str, postal_code: str, limit: int) -> None:
    """Check search parameters before anything goes over the network.

    Raises:
        ValidationError: If the query is blank or too long, the postal code is
            not 4-6 digits, or the limit is not an integer in [1, 100].
    """
    if not query or not query.strip():
        raise ValidationError("Query must not be empty.")
    if len(query) > MAX_QUERY_LENGTH:
        raise ValidationError(f"Query too long (max {MAX_QUERY_LENGTH} characters).")
    if not isinstance(postal_code, str) or not ZIP_PATTERN.fullmatch(postal_code):
        raise ValidationError(f'Invalid ZIP code: "{postal_code}". Expected 4-6 digits.')
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LIMIT:
        raise ValidationError(f"Limit must be an integer between 1 and {MAX_LIMIT}.")


def build_search_url(query: str, postal_code: str, limit: int) -> str:
    """Return the search endpoint URL with its query string."""
    url = furl(SEARCH_ENDPOINT)
    url.args["as"] = "web"
    url.args["limit"] = str(limit)
    url.args["q"] = query
    url.args["zipCode"] = postal_code
    return str(url)


def parse_search_response(data: object) -> SearchResponse:
    """Validate a decoded search response body.

    Args:
        data: The decoded JSON body.

    Returns:
        The response with each result parsed as a RawOffer.

    Raises:
        UpstreamError: If the body is not an object with a ``results`` list.
    """
    if not isinstance(data, dict):
        raise UpstreamError("Unexpected Marktguru response: not an object.")

    results = data.get("results")
    if not isinstance(results, list):
        raise UpstreamError("Unexpected Marktguru response: results is not an array.")

    total = data.get("totalResults")
    if isinstance(total, bool) or not isinstance(total, (int, float)) or not math.isfinite(total):
        total = 0

    return SearchResponse(
        total_results=int(total),
        results=[RawOffer.from_payload(item) for item in results],
    )


class MarktguruClient:
    """Client for the Marktguru offer search.

    Args:
        resolver: Supplies the API keys. Defaults to scraping the homepage
            with this client's HTTP session and caching in ``keys.json``.
        client: HTTP client to use. A new one is created if omitted.
    """

    def __init__(
        self,
        resolver: CredentialResolver | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client with an HTTPX session."""
        self.client = client or httpx.Client(
            timeout=30.0,
            follow_redirects=True,
            headers={
                "User-Agent": (
                    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
                    "AppleWebKit/537.36 (KHTML, like Gecko) "
                    "Chrome/120.0.0.0 Safari/537.36"
                ),
            },
        )
        self.resolver = resolver or CredentialResolver(
            HomepageCredentialSource(self.client), CredentialCache()
        )

    def __enter__(self) -> "MarktguruClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - close the client."""
        self.close()

    def close(self) -> None:
        """Close the httpx client."""
        self.client.close()

    def search(self, query: str, postal_code: str, limit: int) -> SearchResponse:
        """Search current flyer offers.

        If the API rejects the keys (HTTP 401 or 403), the request is repeated
        once with freshly scraped keys. Any other failure, or a failure of the
        repeated request, is raised as is.

        Args:
            query: Free-text product query.
            postal_code: German postal code scoping the flyers.
            limit: Maximum number of offers to request.

        Returns:
            The total hit count reported upstream and the returned offers.

        Raises:
            ValidationError: If the parameters are invalid.
            CredentialError: If no API keys can be obtained.
            UpstreamError: If the search request fails.
        """
        validate_search(query, postal_code, limit)

        try:
            return self._search_once(query, postal_code, limit, force_refresh=False)
        except UpstreamError as e:
            if not e.is_auth_failure:
                raise
            logger.info("Search rejected with HTTP %s, refreshing API keys", e.status_code)
            return self._search_once(query, postal_code, limit, force_refresh=True)

    def _search_once(
        self, query: str, postal_code: str, limit: int, force_refresh: bool
    ) -> SearchResponse:
        keys = self.resolver.resolve(force_refresh=force_refresh)
        url = build_search_url(query, postal_code, limit)
        logger.debug("Searching: %s", url)

        try:
            response = self.client.get(url, headers=self._auth_headers(keys))
        except httpx.RequestError as e:
            raise UpstreamError(f"Marktguru search failed: {e}") from e

        if not response.is_success:
            body = response.text[:ERROR_BODY_LENGTH]
            raise UpstreamError(
                f"Marktguru search failed: HTTP {response.status_code} {body}".strip(),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("Unexpected Marktguru response: invalid JSON.") from e

        return parse_search_response(data)

    @staticmethod
    def _auth_headers(keys: CredentialPair) -> dict[str, str]:
        return {
            "x-apikey": keys.api_key,
            "x-clientkey": keys.client_key,
            "Accept": "application/json",
        }
