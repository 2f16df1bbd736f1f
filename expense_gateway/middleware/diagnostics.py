"""
Startup diagnostics: runs once when the Flask app starts.

Checks destination, proxy and token-store configuration and logs a
summary banner. Nothing here talks to Concur.
"""

import logging
import sys

from flask import Flask

from expense_gateway.core.exceptions import GatewayError
from expense_gateway.integrations.destinations import API_DESTINATION, AUTH_DESTINATION
from expense_gateway.services.token_store import backend_name

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []
    gateway = app.extensions["concur_gateway"]

    py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

    # ── Destinations ─────────────────────────────────────────────────
    resolver = gateway.resolver
    if resolver.kind == "static":
        for name in (AUTH_DESTINATION, API_DESTINATION):
            try:
                resolver.get_destination(name)
            except GatewayError as exc:
                issues.append(str(exc))
        dest_status = ", ".join(resolver.known_names()) or "NONE"
    else:
        dest_status = f"{resolver.kind} resolver"

    # ── Proxies ──────────────────────────────────────────────────────
    proxies = gateway.proxy_selector.describe()
    for route, status in proxies.items():
        if status.startswith("invalid"):
            issues.append(f"{route} proxy: {status}")

    # ── Tenant ───────────────────────────────────────────────────────
    account = app.config.get("TENANT_ACCOUNT_ID") or "NOT SET"

    store = backend_name(app.extensions["token_store_backend"])

    banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  Concur Expense Gateway - Startup Diagnostics                ║
╠══════════════════════════════════════════════════════════════╣
║  Python       : {py:<45s}║
║  Debug        : {str(app.debug):<45s}║
║  Destinations : {dest_status[:45]:<45s}║
║  OnPremise    : {proxies['OnPremise'][:45]:<45s}║
║  Internet     : {proxies['Internet'][:45]:<45s}║
║  Account      : {account[:45]:<45s}║
║  Token store  : {store:<45s}║
╚══════════════════════════════════════════════════════════════╝"""
    logger.info(banner)

    if issues:
        logger.warning("Startup issues detected:")
        for issue in issues:
            logger.warning("  ⚠ %s", issue)
    else:
        logger.info("✅ All startup checks passed")
