"""Standardised plaintext error responses.

The expenses endpoint answers failures the way a servlet container's
``sendError`` does: an HTTP status with a short plaintext diagnostic.
A machine-readable code travels in the ``X-Error-Code`` header so
scripts can tell the failure classes apart without parsing prose.

Usage
-----
    from expense_gateway.utils.errors import error_response, E

    return error_response(E.INVALID_TOKEN, "Invalid authentication token.")
"""

from __future__ import annotations

from flask import Response


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for every gateway error
    """

    # Configuration – HTTP 500
    DESTINATION = "ERR_DESTINATION"
    PROXY = "ERR_PROXY"

    # Authentication token – HTTP 500
    TOKEN_CREATION = "ERR_TOKEN_CREATION"
    INVALID_TOKEN = "ERR_INVALID_TOKEN"

    # Upstream – HTTP 500
    UPSTREAM = "ERR_UPSTREAM"
    UNAUTHORIZED = "ERR_UPSTREAM_UNAUTHORIZED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.DESTINATION: 500,
    E.PROXY: 500,
    E.TOKEN_CREATION: 500,
    E.INVALID_TOKEN: 500,
    E.UPSTREAM: 500,
    E.UNAUTHORIZED: 500,
    E.INTERNAL: 500,
}


def error_response(
    code: str,
    message: str,
    *,
    status: int | None = None,
) -> Response:
    """Return a standard plaintext error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable diagnostic for the browser / operator.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``500``.

    Returns
    -------
    Response
        ``text/plain`` response with the ``X-Error-Code`` header set.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 500)

    response = Response(message, status=http_status, mimetype="text/plain")
    response.headers["X-Error-Code"] = code
    return response
