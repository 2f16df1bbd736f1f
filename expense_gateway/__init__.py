"""
Concur Expense Gateway
Flask Application Factory.

Usage:
    from expense_gateway import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS

from expense_gateway.config import config
from expense_gateway.integrations.concur_gateway import ConcurGateway
from expense_gateway.integrations.destinations import build_resolver
from expense_gateway.integrations.proxy import ProxyConfig, ProxySelector
from expense_gateway.middleware.diagnostics import run_startup_diagnostics
from expense_gateway.middleware.logging_config import configure_logging
from expense_gateway.middleware.timing import init_request_timing
from expense_gateway.services.tenant import StaticTenantContext
from expense_gateway.services.token_store import create_backend
from expense_gateway.utils.errors import E

logger = logging.getLogger(__name__)


def init_gateway(app):
    """Wire the Concur gateway and its collaborators from app.config.

    Stored in ``app.extensions["concur_gateway"]``; tests replace it with a
    gateway built around a mock requests.Session.
    """
    cfg = app.config
    gateway = ConcurGateway(
        resolver=build_resolver(cfg),
        proxy_selector=ProxySelector(ProxyConfig.from_mapping(cfg)),
        tenant_context=StaticTenantContext(cfg.get("TENANT_ACCOUNT_ID")),
        timeout=(cfg["HTTP_CONNECT_TIMEOUT"], cfg["HTTP_READ_TIMEOUT"]),
        max_payload_bytes=cfg.get("MAX_EXPENSE_PAYLOAD_BYTES"),
    )
    app.extensions["concur_gateway"] = gateway
    app.extensions["token_store_backend"] = create_backend(cfg.get("REDIS_URL"))
    return gateway


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()],
             supports_credentials=True)
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Concur gateway, destinations, proxies, token store ───────────────
    init_gateway(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from expense_gateway.blueprints.expenses_bp import expenses_bp
    from expense_gateway.blueprints.health_bp import health_bp

    app.register_blueprint(expenses_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500, {"X-Error-Code": E.INTERNAL}

    run_startup_diagnostics(app)

    return app
