import pytest

from app.modules.rbac.cache import InMemoryDecisionCache
from app.modules.rbac.catalog import ConfigCatalogStore
from app.modules.rbac.engine import ResolutionEngine
from app.modules.rbac.invalidation import InvalidationHook
from tests.fakes import FakeDirectory


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def catalog() -> ConfigCatalogStore:
    return ConfigCatalogStore()


@pytest.fixture
def cache(clock) -> InMemoryDecisionCache:
    return InMemoryDecisionCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def engine(catalog, directory, cache) -> ResolutionEngine:
    return ResolutionEngine(catalog=catalog, memberships=directory, resources=directory, cache=cache)


@pytest.fixture
def hook(cache) -> InvalidationHook:
    return InvalidationHook(cache)
