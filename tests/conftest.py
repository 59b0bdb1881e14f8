import httpx
import pytest

from app.core.config import get_settings
from app.services.cache import CacheStore
from app.services.tmdb import TMDbClient
from tests.helpers import TMDB_BASE, FakeClock, FakeTMDb, StubCatalog


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    monkeypatch.setenv("TMDB_API_KEY", "test-key")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheStore(clock=clock)


@pytest.fixture
def upstream():
    return FakeTMDb()


@pytest.fixture
def tmdb_client(upstream, cache):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
    return TMDbClient(
        api_key="test-key",
        base_url=TMDB_BASE,
        image_base="https://image.tmdb.org/t/p/w500",
        region="US",
        cache=cache,
        http_client=http_client,
    )


@pytest.fixture
def catalog():
    return StubCatalog()
