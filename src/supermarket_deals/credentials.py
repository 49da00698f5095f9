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
"""Marktguru API keys: scraping them from the homepage and caching them.

The search API wants two short-lived keys, ``x-apikey`` and ``x-clientkey``.
The homepage embeds them in a ``<script type="application/json">`` block
under ``config.apiKey`` and ``config.clientKey``.
"""

import json
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, TypeVar

import httpx
from bs4 import BeautifulSoup

from supermarket_deals.config import keys_path
from supermarket_deals.errors import CredentialError
from supermarket_deals.models import CredentialPair

logger = logging.getLogger(__name__)

MARKTGURU_HOME = "https://www.marktguru.de"
CACHE_TTL_MS = 6 * 60 * 60 * 1000

T = TypeVar("T")


def now_ms() -> int:
    """Return the current time in epoch milliseconds."""
    return int(time.time() * 1000)


def retry_once(operation: Callable[[], T], retry_on: type[Exception]) -> T:
    """Run ``operation``, running it a second time if it raises ``retry_on``.

    There is never a third attempt. If the second attempt fails as well, the
    error from the first attempt is raised.
    """
    try:
        return operation()
    except retry_on as first_error:
        logger.warning("%s (retrying once)", first_error)
        try:
            return operation()
        except retry_on:
            raise first_error


def _is_json_script(script_type: str | None) -> bool:
    return bool(script_type) and script_type.strip().lower() == "application/json"


def extract_credentials(html: str) -> tuple[str, str]:
    """Find the API keys in the homepage HTML.

    Args:
        html: The homepage document.

    Returns:
        A ``(api_key, client_key)`` tuple from the first JSON script block
        that carries both.

    Raises:
        CredentialError: If no block contains both keys.
    """
    soup = BeautifulSoup(html, "html.parser")

    for script in soup.find_all("script", attrs={"type": _is_json_script}):
        content = (script.string or "").strip()
        if not content:
            continue

        try:
            parsed = json.loads(content)
        except ValueError:
            logger.debug("Skipping malformed JSON script block")
            continue

        config = parsed.get("config") if isinstance(parsed, dict) else None
        if not isinstance(config, dict):
            continue

        api_key = config.get("apiKey")
        client_key = config.get("clientKey")
        if isinstance(api_key, str) and api_key and isinstance(client_key, str) and client_key:
            return api_key, client_key

    raise CredentialError("Could not extract API keys from marktguru homepage JSON config.")


class CredentialSource(Protocol):
    """Anything that can produce a fresh pair of API keys."""

    def fetch_pair(self) -> CredentialPair: ...


class HomepageCredentialSource:
    """Scrapes the API keys from the Marktguru homepage.

    Args:
        client: HTTP client used for the request.
        url: Homepage URL.
    """

    def __init__(self, client: httpx.Client, url: str = MARKTGURU_HOME) -> None:
        self.client = client
        self.url = url

    def fetch_pair(self) -> CredentialPair:
        try:
            response = self.client.get(self.url, headers={"Accept": "text/html"})
        except httpx.RequestError as e:
            raise CredentialError(f"Failed to fetch Marktguru homepage: {e}") from e

        if not response.is_success:
            raise CredentialError(
                f"Failed to fetch Marktguru homepage: HTTP {response.status_code}"
            )

        api_key, client_key = extract_credentials(response.text)
        return CredentialPair(api_key=api_key, client_key=client_key, fetched_at=now_ms())


class CredentialCache:
    """The ``keys.json`` file holding the last scraped pair."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or keys_path()

    def load(self) -> CredentialPair | None:
        """Return the cached pair, or None if there is no usable cache."""
        try:
            return CredentialPair.model_validate_json(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.debug("Ignoring unreadable key cache %s: %s", self.path, e)
            return None

    def save(self, pair: CredentialPair) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(pair.model_dump(by_alias=True), indent=2) + "\n", encoding="utf-8"
        )


class CredentialResolver:
    """Hands out API keys, preferring the cache while it is fresh.

    Args:
        source: Where fresh keys come from.
        cache: Where keys are persisted between runs.
        ttl_ms: Maximum age of cached keys.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self,
        source: CredentialSource,
        cache: CredentialCache,
        ttl_ms: int = CACHE_TTL_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.source = source
        self.cache = cache
        self.ttl_ms = ttl_ms
        self.clock = clock

    def resolve(self, force_refresh: bool = False) -> CredentialPair:
        """Return usable API keys.

        Args:
            force_refresh: Skip the cache and scrape new keys.

        Returns:
            The cached pair if it is fresh, otherwise a newly fetched one.

        Raises:
            CredentialError: If fetching fails twice in a row.
        """
        if not force_refresh:
            cached = self.cache.load()
            if cached is not None and cached.is_fresh(self.clock(), self.ttl_ms):
                logger.debug("Using cached API keys from %s", self.cache.path)
                return cached

        return retry_once(self._fetch_fresh, CredentialError)

    def _fetch_fresh(self) -> CredentialPair:
        logger.info("Fetching API keys from Marktguru homepage")
        pair = self.source.fetch_pair().model_copy(update={"fetched_at": self.clock()})
        self.cache.save(pair)
        return pair
