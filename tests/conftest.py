import itertools
import random

import pytest

from eco_dispatch_api.app import create_app
from eco_dispatch_api.cache import CacheAside, MemoryCacheBackend
from eco_dispatch_api.kpis import RakeRegistry
from eco_dispatch_api.ledger import HashChainLedger
from eco_dispatch_api.routing import build_resolver
from eco_dispatch_api.scoring import RouteScorer


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class CountingResolver:
    """Wraps a real resolver and counts resolve() calls."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    def resolve(self, route_key):
        self.calls += 1
        return self.inner.resolve(route_key)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    return CacheAside(MemoryCacheBackend(clock=clock), timeout=1.0)


@pytest.fixture
def counting_resolver():
    return CountingResolver(build_resolver(store=None))


@pytest.fixture
def scorer(counting_resolver, memory_cache):
    return RouteScorer(counting_resolver, cache=memory_cache, rnd=random.Random(42), ttl_seconds=30)


@pytest.fixture
def ledger():
    ticks = itertools.count(1_700_000_000_000)
    return HashChainLedger(clock=lambda: next(ticks))


@pytest.fixture
def rakes():
    return RakeRegistry(rakes=[
        {"id": "RK001", "status": "Loading"},
        {"id": "RK002", "status": "Loading"},
        {"id": "RK003", "status": "Dispatched"},
    ])


@pytest.fixture
def client(scorer, ledger, rakes, memory_cache):
    app = create_app(scorer=scorer, ledger=ledger, rakes=rakes, cache=memory_cache)
    app.config['TESTING'] = True
    return app.test_client()
