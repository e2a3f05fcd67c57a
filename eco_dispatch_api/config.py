# eco_dispatch_api/config.py
import os

# ---------- Paths for local JSON "database" ----------
DATA_DIR = os.path.join(os.path.dirname(__file__), 'data')
ROUTE_STORE_FILE = os.getenv('ROUTE_STORE_FILE', os.path.join(DATA_DIR, 'routes.json'))
RAKES_FILE = os.getenv('RAKES_FILE', os.path.join(DATA_DIR, 'rakes.json'))
LEDGER_FILE = os.getenv('LEDGER_FILE') or None


def env_flag(name, default='false'):
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


def env_float(name, default):
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return float(default)


# ---------- Cache controls ----------
REDIS_URL = os.getenv('REDIS_URL') or None
CACHE_ENABLED = env_flag('CACHE_ENABLED', 'true')
CACHE_TIMEOUT_SECONDS = env_float('CACHE_TIMEOUT_SECONDS', 0.5)
ROUTE_CACHE_TTL_SECONDS = int(env_float('ROUTE_CACHE_TTL_SECONDS', 30))
KPI_CACHE_TTL_SECONDS = int(env_float('KPI_CACHE_TTL_SECONDS', 60))

# ---------- Route store controls ----------
ROUTE_STORE_ENABLED = env_flag('ROUTE_STORE_ENABLED', 'true')
ROUTE_STORE_TIMEOUT_SECONDS = env_float('ROUTE_STORE_TIMEOUT_SECONDS', 1.0)

# ---------- Simulation controls ----------
_seed = os.getenv('CONGESTION_SEED', '')
CONGESTION_SEED = int(_seed) if _seed.lstrip('-').isdigit() else None

PORT = int(os.environ.get('PORT', 5000))
