# eco_dispatch_api/routing.py
"""
Route graph resolution: route key -> ordered waypoints (at least two).

Tiers are tried in order and the first hit wins, no merging:
  1. authoritative route store (timeout-bounded, errors count as "not found")
  2. static preset table of named multi-hop routes
  3. generic default near the Bokaro yard
"""
import logging
from typing import List, Optional

from eco_dispatch_api.geo import Waypoint
from eco_dispatch_api.jsonstore import load_json
from eco_dispatch_api.ports import call_with_timeout

logger = logging.getLogger(__name__)

# ---------- Static tables ----------

STATIONS = {
    'BKSC': (23.658, 86.151), 'DGR': (23.538, 87.291), 'Dhanbad': (23.795, 86.430),
    'Asansol': (23.685, 86.974), 'Andal': (23.593, 87.242),
    'ROU': (22.227, 84.857), 'Purulia': (23.332, 86.365),
    'BPHB': (21.208, 81.379), 'Norla': (19.188, 82.787),
}

PRESET_ROUTES = {
    'BKSC-DGR': ['BKSC', 'Dhanbad', 'Asansol', 'Andal', 'DGR'],
    'BKSC-ROU': ['BKSC', 'Purulia', 'ROU'],
    'BKSC-BPHB': ['BKSC', 'Norla', 'BPHB'],
}

DEFAULT_ORIGIN = 'Bokaro'
DEFAULT_ROUTE = (
    Waypoint('YardA', 23.66, 86.15),
    Waypoint('YardB', 23.63, 86.18),
    Waypoint('Alt', 23.60, 86.20),
)


def normalize_route_key(route_key):
    return str(route_key or '').strip().upper()


# ---------- Route store (authoritative) ----------

class JsonRouteStore:
    """
    File-backed route store. The file maps route keys to
    {"name": ..., "plant": ..., "stations": [{"code", "lat", "lng"}, ...]}
    with stations in travel order. Re-read on every call so edits apply live.
    """

    def __init__(self, path):
        self.path = path

    def _routes(self):
        data = load_json(self.path)
        return {normalize_route_key(k): v for k, v in data.items()}

    def find_route(self, route_key):
        route = self._routes().get(route_key)
        if not route:
            return None
        return [Waypoint(str(s['code']), float(s['lat']), float(s['lng']))
                for s in route.get('stations', [])]

    def list_routes(self):
        return [{'key': k, 'name': v.get('name', k), 'plant': v.get('plant')}
                for k, v in self._routes().items()]


# ---------- Resolver strategies ----------

class RouteStoreResolver:
    name = 'store'

    def __init__(self, store, timeout=1.0):
        self.store = store
        self.timeout = timeout

    def try_resolve(self, route_key) -> Optional[List[Waypoint]]:
        if not route_key or self.store is None:
            return None
        result = call_with_timeout('route-store', self.store.find_route, route_key,
                                   timeout=self.timeout)
        if not result.ok or not result.value or len(result.value) < 2:
            return None
        return list(result.value)


class PresetRouteResolver:
    name = 'preset'

    def __init__(self, presets=None, stations=None):
        self.presets = PRESET_ROUTES if presets is None else presets
        self.stations = STATIONS if stations is None else stations

    def try_resolve(self, route_key) -> Optional[List[Waypoint]]:
        codes = self.presets.get(route_key)
        if not codes:
            return None
        waypoints = []
        for code in codes:
            coord = self.stations.get(code)
            if coord is None:
                logger.warning("Preset %s names unknown station %s; skipping it", route_key, code)
                continue
            waypoints.append(Waypoint(code, coord[0], coord[1]))
        return waypoints if len(waypoints) >= 2 else None


class DefaultRouteResolver:
    name = 'default'

    def try_resolve(self, route_key) -> Optional[List[Waypoint]]:
        return list(DEFAULT_ROUTE)


class RouteGraphResolver:
    def __init__(self, strategies):
        self.strategies = list(strategies)

    def resolve(self, route_key):
        """Return (tier_name, waypoints) from the first strategy that answers."""
        key = normalize_route_key(route_key)
        for strategy in self.strategies:
            waypoints = strategy.try_resolve(key)
            if waypoints:
                if strategy.name != 'store' and key:
                    logger.info("Route %s resolved from %s tier", key, strategy.name)
                return strategy.name, waypoints
        # only reachable when the chain has no default tier
        logger.warning("No tier resolved %r; using default route", key)
        return 'default', list(DEFAULT_ROUTE)

    def resolve_waypoints(self, route_key):
        return self.resolve(route_key)[1]


def build_resolver(store=None, timeout=1.0):
    return RouteGraphResolver([
        RouteStoreResolver(store, timeout),
        PresetRouteResolver(),
        DefaultRouteResolver(),
    ])


def list_routes(store=None, timeout=1.0):
    """Known routes from the store plus the presets, sorted by key (store wins)."""
    routes = {k: {'key': k, 'name': k.replace('-', ' → '), 'plant': DEFAULT_ORIGIN}
              for k in PRESET_ROUTES}
    if store is not None:
        result = call_with_timeout('route-store', store.list_routes, timeout=timeout)
        if result.ok:
            for r in result.value or []:
                routes[normalize_route_key(r['key'])] = dict(r, key=normalize_route_key(r['key']))
    return [routes[k] for k in sorted(routes)]
