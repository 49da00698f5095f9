import json

import httpx
import pytest

from supermarket_deals.credentials import (
    CACHE_TTL_MS,
    CredentialCache,
    CredentialResolver,
    HomepageCredentialSource,
    extract_credentials,
    retry_once,
)
from supermarket_deals.errors import CredentialError
from supermarket_deals.models import CredentialPair
from tests.helpers import FakeSource

HOMEPAGE = """
<html>
  <head>
    <script type="application/json">{not json</script>
    <script type="application/ld+json">{"config": {"apiKey": "ld", "clientKey": "ld"}}</script>
    <script type="application/json">{"page": "home"}</script>
    <script type="application/json">{"config": {"apiKey": "", "clientKey": "c0"}}</script>
    <script>var config = {"apiKey": "js"};</script>
  </head>
  <body>
    <script type="application/json">
      {"config": {"apiKey": "api-key-1", "clientKey": "client-key-1", "locale": "de"}}
    </script>
    <script type="application/json">{"config": {"apiKey": "later", "clientKey": "later"}}</script>
  </body>
</html>
"""

T = 1_700_000_000_000
MINUTE_MS = 60 * 1000


def test_extract_credentials_skips_irrelevant_blocks():
    assert extract_credentials(HOMEPAGE) == ("api-key-1", "client-key-1")


def test_extract_credentials_fails_without_keys():
    html = '<script type="application/json">{"config": {"apiKey": "only-one"}}</script>'

    with pytest.raises(CredentialError, match="Could not extract API keys"):
        extract_credentials(html)


def test_homepage_source_fetches_html():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text=HOMEPAGE)

    source = HomepageCredentialSource(httpx.Client(transport=httpx.MockTransport(handler)))
    pair = source.fetch_pair()

    assert (pair.api_key, pair.client_key) == ("api-key-1", "client-key-1")
    assert seen[0].url.host == "www.marktguru.de"
    assert seen[0].headers["Accept"] == "text/html"


def test_homepage_source_rejects_error_status():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))

    with pytest.raises(CredentialError, match="HTTP 503"):
        HomepageCredentialSource(client).fetch_pair()


def test_homepage_source_wraps_transport_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))

    with pytest.raises(CredentialError, match="connection refused"):
        HomepageCredentialSource(client).fetch_pair()


def test_cache_round_trip(tmp_path):
    cache = CredentialCache(tmp_path / "nested" / "keys.json")
    pair = CredentialPair(api_key="a", client_key="c", fetched_at=T)

    cache.save(pair)

    assert json.loads(cache.path.read_text()) == {"apiKey": "a", "clientKey": "c", "fetchedAt": T}
    assert cache.load() == pair


@pytest.mark.parametrize("content", ["", "{broken", "[]", '{"apiKey": "a"}'])
def test_cache_treats_bad_files_as_missing(tmp_path, content):
    path = tmp_path / "keys.json"
    path.write_text(content)

    assert CredentialCache(path).load() is None


def test_cache_missing_file(tmp_path):
    assert CredentialCache(tmp_path / "keys.json").load() is None


def make_resolver(tmp_path, source, now):
    return CredentialResolver(source, CredentialCache(tmp_path / "keys.json"), clock=lambda: now)


def test_cached_pair_reused_before_ttl(tmp_path, fake_source):
    cached = CredentialPair(api_key="cached-api", client_key="cached-client", fetched_at=T)
    CredentialCache(tmp_path / "keys.json").save(cached)

    resolver = make_resolver(tmp_path, fake_source, T + 5 * 60 * MINUTE_MS + 59 * MINUTE_MS)

    assert resolver.resolve() == cached
    assert fake_source.calls == 0


def test_cached_pair_refreshed_after_ttl(tmp_path, fake_source):
    CredentialCache(tmp_path / "keys.json").save(
        CredentialPair(api_key="cached-api", client_key="cached-client", fetched_at=T)
    )
    now = T + 6 * 60 * MINUTE_MS + MINUTE_MS

    pair = make_resolver(tmp_path, fake_source, now).resolve()

    assert fake_source.calls == 1
    assert (pair.api_key, pair.client_key, pair.fetched_at) == ("api-1", "client-1", now)
    assert CredentialCache(tmp_path / "keys.json").load() == pair


def test_ttl_is_six_hours():
    assert CACHE_TTL_MS == 6 * 60 * MINUTE_MS


def test_force_refresh_bypasses_fresh_cache(tmp_path, fake_source):
    CredentialCache(tmp_path / "keys.json").save(
        CredentialPair(api_key="cached-api", client_key="cached-client", fetched_at=T)
    )

    pair = make_resolver(tmp_path, fake_source, T + 1).resolve(force_refresh=True)

    assert pair.api_key == "api-1"
    assert fake_source.calls == 1


def test_missing_cache_fetches_and_creates_directory(tmp_path, fake_source):
    resolver = CredentialResolver(
        fake_source, CredentialCache(tmp_path / "a" / "b" / "keys.json"), clock=lambda: T
    )

    resolver.resolve()

    assert (tmp_path / "a" / "b" / "keys.json").exists()


def test_fresh_fetch_retried_once(tmp_path):
    source = FakeSource(failures=1)

    pair = make_resolver(tmp_path, source, T).resolve()

    assert pair.api_key == "api-2"
    assert source.calls == 2


def test_fresh_fetch_gives_up_after_second_failure(tmp_path):
    source = FakeSource(failures=5)

    with pytest.raises(CredentialError, match="homepage failure 1"):
        make_resolver(tmp_path, source, T).resolve()

    assert source.calls == 2
    assert not (tmp_path / "keys.json").exists()


def test_retry_once_does_not_retry_other_errors():
    calls = []

    def boom():
        calls.append(1)
        raise KeyError("nope")

    with pytest.raises(KeyError):
        retry_once(boom, CredentialError)

    assert len(calls) == 1
