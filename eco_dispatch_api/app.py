# eco_dispatch_api/app.py
import logging
import random
import time

from flask import Flask, jsonify, request

from eco_dispatch_api import config
from eco_dispatch_api.cache import KPI_CACHE_KEY, build_cache
from eco_dispatch_api.errors import IntegrityError, ValidationError
from eco_dispatch_api.kpis import RakeRegistry, compute_kpis
from eco_dispatch_api.ledger import HashChainLedger, JsonlLedgerSink
from eco_dispatch_api.routing import JsonRouteStore, build_resolver, list_routes
from eco_dispatch_api.scoring import RouteScorer

logger = logging.getLogger(__name__)

ANONYMOUS_ACTOR = 'anonymous'


def current_actor():
    """Identity is established upstream; we only record what it hands us."""
    return request.headers.get('X-Actor') or ANONYMOUS_ACTOR


def json_object_body():
    """Request body as a dict; an absent body counts as empty."""
    data = request.get_json(force=True, silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def create_app(scorer=None, ledger=None, rakes=None, cache=None, route_store=None):
    """
    Wire the API. Every collaborator can be injected; anything left out is
    built from `config` (Redis or in-process cache, JSON route store, JSON rakes).
    """
    app = Flask(__name__)
    started_at = time.monotonic()

    if cache is None:
        cache = build_cache(config.REDIS_URL, config.CACHE_ENABLED, config.CACHE_TIMEOUT_SECONDS)
    if route_store is None and config.ROUTE_STORE_ENABLED:
        route_store = JsonRouteStore(config.ROUTE_STORE_FILE)
    if scorer is None:
        scorer = RouteScorer(
            build_resolver(route_store, config.ROUTE_STORE_TIMEOUT_SECONDS),
            cache=cache,
            rnd=random.Random(config.CONGESTION_SEED),
            ttl_seconds=config.ROUTE_CACHE_TTL_SECONDS,
        )
    if ledger is None:
        sink = JsonlLedgerSink(config.LEDGER_FILE) if config.LEDGER_FILE else None
        ledger = HashChainLedger(sink=sink)
    if rakes is None:
        rakes = RakeRegistry(path=config.RAKES_FILE)

    # ---------- Error mapping ----------

    @app.errorhandler(ValidationError)
    def handle_validation(exc):
        return jsonify({"error": exc.message, "field": exc.field}), 400

    @app.errorhandler(IntegrityError)
    def handle_integrity(exc):
        return jsonify({
            "error": str(exc),
            "valid": False,
            "firstInvalidIndex": exc.index,
            "length": len(ledger),
        }), 409

    # ---------- Health ----------

    @app.get('/health')
    def health():
        return {"status": "ok"}, 200

    @app.get('/healthz')
    def healthz():
        return jsonify({
            "ok": True,
            "uptimeSec": int(time.monotonic() - started_at),
            "cacheConnected": cache.healthy(),
            "routeStoreConfigured": route_store is not None,
            "ledgerLength": len(ledger),
        })

    # ---------- Eco-route scoring ----------

    @app.get('/map/routes')
    def map_routes():
        """
        Score every segment of a route for CO2 and pick the eco segment.
        Query: cargo, loco, grade (% slope), tonnage (t), routeKey.
        """
        payload = scorer.score_route(
            route_key=request.args.get('routeKey'),
            cargo=request.args.get('cargo'),
            loco=request.args.get('loco'),
            grade=request.args.get('grade'),
            tonnage=request.args.get('tonnage'),
        )
        return jsonify(payload)

    @app.get('/routes')
    def routes():
        """Route keys available for the selector (store first, then presets)."""
        return jsonify(list_routes(route_store, config.ROUTE_STORE_TIMEOUT_SECONDS))

    @app.get('/kpis')
    def kpis():
        payload = cache.get_or_compute(
            KPI_CACHE_KEY, config.KPI_CACHE_TTL_SECONDS, lambda: compute_kpis(rakes.all()))
        return jsonify(payload)

    # ---------- Ledger ----------

    def process_dispatch(rake_id, data):
        block = ledger.append_event(
            'DISPATCH', rake_id,
            actor=current_actor(),
            **{'from': data.get('from'), 'to': data.get('to'),
               'cargo': data.get('cargo'), 'tonnage': data.get('tonnage')},
        )
        rakes.mark_dispatched(block.payload['rakeId'])
        return block

    @app.post('/ledger/dispatch')
    def ledger_dispatch():
        data = json_object_body()
        block = process_dispatch(data.get('rakeId'), data)
        return jsonify(block.to_dict())

    @app.post('/yard/rake/<code>/confirm-loading')
    def confirm_loading(code):
        block = ledger.append_event('LOADING_CONFIRMED', code, actor=current_actor())
        return jsonify(block.to_dict())

    @app.post('/yard/rake/<code>/dispatch')
    def yard_dispatch(code):
        data = json_object_body()
        block = process_dispatch(code, data)
        return jsonify(block.to_dict())

    @app.get('/ledger')
    def ledger_list():
        return jsonify(ledger.list())

    @app.get('/ledger/verify')
    def ledger_verify():
        result = ledger.verify()
        if not result.valid:
            logger.error("Ledger integrity failure at block %s: %s",
                         result.first_invalid_index, result.reason)
        result.raise_for_integrity()
        return jsonify(result.to_dict())

    return app


app = create_app()

# ---------- Entrypoint for local run (production uses Gunicorn) ----------
if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app.run(host='0.0.0.0', port=config.PORT)
