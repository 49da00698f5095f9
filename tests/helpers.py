"""Shared test doubles."""

from supermarket_deals.errors import CredentialError
from supermarket_deals.models import CredentialPair, RawOffer


class FakeSource:
    """Credential source handing out numbered key pairs."""

    def __init__(self, failures=0):
        self.calls = 0
        self.failures = failures

    def fetch_pair(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise CredentialError(f"homepage failure {self.calls}")
        return CredentialPair(
            api_key=f"api-{self.calls}", client_key=f"client-{self.calls}", fetched_at=0
        )


def make_offer(**fields):
    """Build a RawOffer from upstream (camelCase) fields."""
    return RawOffer.from_payload(fields)
