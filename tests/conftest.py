import pytest

from tests.helpers import FakeSource


@pytest.fixture(autouse=True)
def state_home(tmp_path, monkeypatch):
    """Point the per-user state directory at a temporary path."""
    home = tmp_path / "state"
    monkeypatch.setenv("SUPERMARKET_DEALS_HOME", str(home))
    return home


@pytest.fixture
def fake_source():
    return FakeSource()
