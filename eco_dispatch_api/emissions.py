# eco_dispatch_api/emissions.py
"""
Emission factor model, per-segment emission calculator and eco-selector.

The factor model is the single source of tCO2/km for every caller:

    ef = base_by_cargo * (tonnage_curve * loco_factor) * grade_multiplier

with tonnage clamped to [1000, 6000] and grade clamped to [0, 6] percent,
rounded to 5 decimals.
"""
import logging
import math
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from eco_dispatch_api.geo import Waypoint, distance

logger = logging.getLogger(__name__)

# ---------- Factor tables (tCO2 per km) ----------

BASE_BY_CARGO = {'ore': 0.022, 'coal': 0.024, 'steel': 0.020, 'cement': 0.021}
DEFAULT_CARGO_BASE = 0.022

LOCO_FACTOR = {'diesel': 1.0, 'electric': 0.6, 'hybrid': 0.8}

# (intercept, slope) of the tonnage curve, evaluated at (t - 3000) / 3000
LOCO_TONNAGE_CURVE = {
    'diesel': (1.0, 0.15),
    'electric': (0.8, 0.08),
    'hybrid': (0.9, 0.10),
}

TONNAGE_MIN, TONNAGE_MAX = 1000.0, 6000.0
GRADE_MIN, GRADE_MAX = 0.0, 6.0
GRADE_STEP = 0.03

STATUSES = ('clear', 'busy', 'congested')
STATUS_MULTIPLIER = {'clear': 1.0, 'busy': 1.1, 'congested': 1.25}


def clamp(value, lo, hi):
    return max(lo, min(value, hi))


@dataclass(frozen=True)
class EmissionContext:
    cargo_type: str = 'ore'
    locomotive_type: str = 'diesel'
    grade_percent: float = 0.0
    tonnage: float = 3000.0

    @classmethod
    def from_params(cls, cargo=None, loco=None, grade=None, tonnage=None):
        """Normalize raw request values; blanks fall back to the defaults."""
        return cls(
            cargo_type=str(cargo or 'ore').strip().lower(),
            locomotive_type=str(loco or 'diesel').strip().lower(),
            grade_percent=_to_float(grade, 0.0),
            tonnage=_to_float(tonnage, 3000.0),
        )

    @property
    def effective_grade(self):
        return clamp(self.grade_percent, GRADE_MIN, GRADE_MAX)

    @property
    def effective_tonnage(self):
        return clamp(self.tonnage, TONNAGE_MIN, TONNAGE_MAX)


def _to_float(value, default):
    if value is None or value == '':
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    # NaN compares false against everything and would slip past clamp()
    return default if result != result else result


def locomotive_multiplier(ctx: EmissionContext) -> float:
    """Tonnage curve times locomotive base factor; unknown locomotives are neutral."""
    curve = LOCO_TONNAGE_CURVE.get(ctx.locomotive_type)
    if curve is None:
        return 1.0
    intercept, slope = curve
    t = ctx.effective_tonnage
    curve_factor = intercept + (t - 3000) / 3000 * slope
    return curve_factor * LOCO_FACTOR[ctx.locomotive_type]


def grade_multiplier(ctx: EmissionContext) -> float:
    return 1 + ctx.effective_grade * GRADE_STEP


def emission_factor_per_km(ctx: EmissionContext) -> float:
    """Return tCO2 per km for the given context, rounded to 5 decimals."""
    base_km = BASE_BY_CARGO.get(ctx.cargo_type, DEFAULT_CARGO_BASE)
    return round(base_km * locomotive_multiplier(ctx) * grade_multiplier(ctx), 5)


# ---------- Segments ----------

@dataclass(frozen=True)
class Segment:
    from_waypoint: Waypoint
    to_waypoint: Waypoint
    status: str
    distance_km: float
    emission_tons: float

    @property
    def label(self):
        return f"{self.from_waypoint.code}→{self.to_waypoint.code}"

    def to_dict(self):
        return {
            'from': self.from_waypoint.coord,
            'to': self.to_waypoint.coord,
            'status': self.status,
            'label': self.label,
            'km': round(self.distance_km, 2),
            'co2_tons': self.emission_tons,
        }


def pick_status(rnd, congestion=None, label=None):
    """Live congestion signal when it knows the segment, otherwise a random draw."""
    if congestion is not None:
        status = congestion(label)
        if status in STATUS_MULTIPLIER:
            return status
        if status is not None:
            logger.warning("Ignoring unknown congestion status %r for %s", status, label)
    return rnd.choice(STATUSES)


def compute_segments(waypoints: Sequence[Waypoint], ef_per_km: float,
                     rnd: Optional[random.Random] = None, congestion=None) -> List[Segment]:
    """Build one Segment per consecutive waypoint pair."""
    rnd = rnd or random.Random()
    segments = []
    for a, b in zip(waypoints, waypoints[1:]):
        status = pick_status(rnd, congestion, f"{a.code}→{b.code}")
        km = distance(a, b)
        co2 = round(km * ef_per_km * STATUS_MULTIPLIER[status], 3)
        segments.append(Segment(a, b, status, km, co2))
    return segments


# ---------- Eco-selector ----------

def select_eco(segments: Sequence[Segment]):
    """
    Return (best_index, savings_percent) for a non-empty segment list.

    best_index is the first segment with minimal emissions; savings compare it
    against the worst segment and are 0 when every segment emits the same.
    """
    if not segments:
        raise ValueError("select_eco needs at least one segment")
    emissions = [s.emission_tons for s in segments]
    best_index = min(range(len(emissions)), key=emissions.__getitem__)
    best = emissions[best_index]
    worst = max(emissions)
    if worst <= 0 or best == worst:
        return best_index, 0
    # halves round up: 12.5 -> 13
    savings = int(math.floor((1 - best / worst) * 100 + 0.5))
    return best_index, clamp(savings, 0, 100)


@dataclass(frozen=True)
class ScoringResult:
    route_key: str
    context: EmissionContext
    ef_per_km: float
    segments: tuple
    best_index: int
    savings_percent: int
    origin: str = 'Bokaro'

    def to_dict(self):
        return {
            'origin': self.origin,
            'routes': [s.to_dict() for s in self.segments],
            'eco': {'bestIndex': self.best_index, 'savingsPercent': self.savings_percent},
            'meta': {
                'cargo': self.context.cargo_type,
                'loco': self.context.locomotive_type,
                'grade': self.context.grade_percent,
                'tonnage': self.context.tonnage,
                'efPerKm': self.ef_per_km,
                'routeKey': self.route_key,
                'factors': {
                    'locoMul': locomotive_multiplier(self.context),
                    'gradeMul': grade_multiplier(self.context),
                },
            },
        }
