"""
Expenses blueprint.

Endpoints:
    GET    /api/v1/expenses        - Concur expense entries as JSON
    DELETE /api/v1/expenses/token  - drop this session's cached Concur token

The browser session is the only input: the first request of a session
obtains a Concur token, later requests reuse it.
"""

import logging

from flask import Blueprint, Response, current_app

import expense_gateway.services.expense_service as expense_svc
from expense_gateway.services.token_store import token_store_for_request
from expense_gateway.utils.errors import error_response

logger = logging.getLogger(__name__)

expenses_bp = Blueprint("expenses_bp", __name__, url_prefix="/api/v1/expenses")


def _gateway():
    return current_app.extensions["concur_gateway"]


@expenses_bp.route("", methods=["GET"])
def list_expenses():
    """Return all expense entries, transcoded from Concur's XML to JSON."""
    result = expense_svc.handle(
        token_store_for_request(),
        _gateway(),
        invalidate_on_unauthorized=current_app.config["INVALIDATE_TOKEN_ON_401"],
    )
    if not result.ok:
        return error_response(result.error_code, result.body, status=result.status)
    return Response(result.body + "\n", status=result.status, mimetype="application/json")


@expenses_bp.route("/token", methods=["DELETE"])
def clear_token():
    """Forget the cached token; the next GET obtains a new one."""
    token_store_for_request().clear()
    logger.info("Authentication token cleared on request")
    return "", 204
