# eco_dispatch_api/scoring.py
"""ScoreRoute: resolve -> segment emissions -> eco pick, behind the cache."""
import logging
import random

from eco_dispatch_api.cache import CacheAside, route_cache_key
from eco_dispatch_api.emissions import (
    EmissionContext,
    ScoringResult,
    compute_segments,
    emission_factor_per_km,
    select_eco,
)
from eco_dispatch_api.routing import DEFAULT_ORIGIN, normalize_route_key

logger = logging.getLogger(__name__)


class RouteScorer:
    def __init__(self, resolver, cache=None, rnd=None, congestion=None, ttl_seconds=30):
        self.resolver = resolver
        self.cache = cache or CacheAside(None)
        self.rnd = rnd or random.Random()
        self.congestion = congestion
        self.ttl_seconds = ttl_seconds

    def compute(self, route_key, ctx: EmissionContext) -> ScoringResult:
        """Score a route directly, bypassing the cache."""
        tier, waypoints = self.resolver.resolve(route_key)
        ef = emission_factor_per_km(ctx)
        segments = compute_segments(waypoints, ef, self.rnd, self.congestion)
        best_index, savings = select_eco(segments)
        logger.debug("scored %s via %s tier: %d segments, ef=%s",
                     route_key or 'default', tier, len(segments), ef)
        return ScoringResult(route_key, ctx, ef, tuple(segments), best_index, savings,
                             origin=DEFAULT_ORIGIN)

    def score_route(self, route_key=None, cargo=None, loco=None, grade=None, tonnage=None):
        """Return the wire-format ScoringResult, served from cache when fresh."""
        key = normalize_route_key(route_key)
        ctx = EmissionContext.from_params(cargo, loco, grade, tonnage)
        return self.cache.get_or_compute(
            route_cache_key(ctx, key),
            self.ttl_seconds,
            lambda: self.compute(key, ctx).to_dict(),
        )
