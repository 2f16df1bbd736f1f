"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  - simple 200 for load balancers
    GET /api/v1/health/live   - configuration health (destinations, proxies, token store)

The live check never calls Concur; it only verifies that a request could be
built.
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from expense_gateway.core.exceptions import GatewayError
from expense_gateway.integrations.destinations import API_DESTINATION, AUTH_DESTINATION
from expense_gateway.services.token_store import backend_name

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe, always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with configuration status."""
    checks = {}
    overall = True
    gateway = current_app.extensions["concur_gateway"]

    # ── Destinations ─────────────────────────────────────────────────
    destinations = {}
    resolver = gateway.resolver
    if resolver.kind == "static":
        for name in (AUTH_DESTINATION, API_DESTINATION):
            try:
                dest = resolver.get_destination(name)
                destinations[name] = {"status": "ok", "proxy_type": dest.proxy_type or "Internet"}
            except GatewayError as exc:
                destinations[name] = {"status": "error", "detail": str(exc)}
                overall = False
    else:
        # Remote lookups would need a service token; report the resolver only
        destinations = {"status": "skipped", "detail": f"{resolver.kind} resolver"}
    checks["destinations"] = destinations

    # ── Proxies ──────────────────────────────────────────────────────
    checks["proxies"] = gateway.proxy_selector.describe()

    # ── Token store ──────────────────────────────────────────────────
    backend = current_app.extensions["token_store_backend"]
    try:
        t0 = time.perf_counter()
        backend.ping()
        store_ms = (time.perf_counter() - t0) * 1000
        checks["token_store"] = {
            "status": "ok",
            "backend": backend_name(backend),
            "latency_ms": round(store_ms, 1),
        }
    except Exception as exc:
        checks["token_store"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: token store failed: %s", exc)

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "Concur Expense Gateway",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
