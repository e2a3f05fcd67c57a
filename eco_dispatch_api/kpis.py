# eco_dispatch_api/kpis.py
"""Dashboard KPI aggregation over the rake registry."""
import logging
import threading

from eco_dispatch_api.jsonstore import load_json

logger = logging.getLogger(__name__)

DEFAULT_UTILIZATION = 0.78
DELAY_PROBABILITY = 0.18
ECO_SAVINGS_PERCENT = 12
FUEL_CONSUMPTION = [10, 12, 8, 9, 11, 7, 10]
ECO_ROUTE_HINT = 'Avoid Segment S1 congestion; choose S3 to save ~12% emissions.'

DISPATCHED = 'dispatched'


def _load_rakes_safe(path):
    try:
        return load_json(path)
    except FileNotFoundError:
        logger.warning("Rake file %s missing; using built-in rakes", path)
        return [
            {"id": "RK001", "name": "Rake 1", "route": "BKSC-DGR", "status": "Under Construction"},
            {"id": "RK002", "name": "Rake 2", "route": "BKSC-ROU", "status": "Loading"},
            {"id": "RK003", "name": "Rake 3", "route": "BKSC-BPHB", "status": "Dispatched"},
        ]


class RakeRegistry:
    """In-memory rake status board, seeded from the JSON rake file."""

    def __init__(self, rakes=None, path=None):
        if rakes is None:
            rakes = _load_rakes_safe(path) if path else []
        self._rakes = {r['id']: dict(r) for r in rakes}
        self._lock = threading.Lock()

    def all(self):
        with self._lock:
            return [dict(r) for r in self._rakes.values()]

    def mark_dispatched(self, rake_id):
        """Flag a rake as dispatched; unknown rakes are registered on the fly."""
        with self._lock:
            rake = self._rakes.setdefault(rake_id, {'id': rake_id, 'name': f"Rake {rake_id}"})
            rake['status'] = 'Dispatched'


def compute_kpis(rakes):
    """
    Aggregate dashboard KPIs:
      - pendingRakes / dispatchedRakes: status counts
      - utilization: dispatched share (0.78 when no rakes are known)
      - carbonIntensityPerRake: max(0.4, 1.8 - 1.2 * utilization), tCO2
      - co2Total: intensity times dispatched rakes (at least one)
    """
    dispatched = sum(1 for r in rakes if (r.get('status') or '').lower() == DISPATCHED)
    pending = len(rakes) - dispatched
    utilization = dispatched / (dispatched + pending) if (dispatched + pending) > 0 else DEFAULT_UTILIZATION
    intensity = round(max(0.4, 1.8 - utilization * 1.2), 2)
    return {
        'pendingRakes': pending,
        'dispatchedRakes': dispatched,
        'utilization': utilization,
        'delayProbability': DELAY_PROBABILITY,
        'fuelConsumption': list(FUEL_CONSUMPTION),
        'carbonIntensityPerRake': intensity,
        'co2Total': round(intensity * (dispatched or 1), 2),
        'ecoSavingsPercent': ECO_SAVINGS_PERCENT,
        'ecoRouteHint': ECO_ROUTE_HINT,
    }
