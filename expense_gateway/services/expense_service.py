"""
Expense request handling.

Orchestrates one GET of the expenses endpoint:

    cached token?  ──no──▶  gateway.obtain_token()  ──▶  store.set()
         │                                                  │
         └──────────────yes─────────────┬───────────────────┘
                                        ▼
                         gateway.fetch_expenses(token)  ──▶  JSON body

Every failure is terminal for the request and maps to a 500 with a short
plaintext diagnostic; the full exception goes to the log only.

All collaborators are passed in explicitly; nothing is read from flask.g.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from expense_gateway.core.exceptions import (
    ConfigurationError,
    GatewayError,
    ProxyConfigurationError,
    UnauthorizedError,
)
from expense_gateway.integrations.concur_gateway import ConcurGateway
from expense_gateway.integrations.destinations import API_DESTINATION, AUTH_DESTINATION
from expense_gateway.services.token_store import SessionTokenStore
from expense_gateway.utils.errors import E

logger = logging.getLogger(__name__)

TOKEN_CREATION_MESSAGE = (
    "Exception occurred while trying to create authentication token."
    " Hint: Make sure to have the destination configured. See the logs for more details."
)
INVALID_TOKEN_MESSAGE = "Invalid authentication token."
API_CONFIGURATION_MESSAGE = (
    "Configuring the API connection failed."
    " Hint: Make sure to have the destination configured. See the logs for more details."
)
UPSTREAM_MESSAGE = "Fetching expenses from Concur failed. See the logs for more details."
UNAUTHORIZED_MESSAGE = (
    "Concur rejected the authentication token. Reload the page to obtain a new one."
)


class HandlerResult(NamedTuple):
    """Outcome of one expenses request.

    Attributes:
        status:     HTTP status code.
        body:       JSON text on success, plaintext diagnostic on failure.
        error_code: ``E.*`` code on failure, None on success.
    """

    status: int
    body: str
    error_code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_code is None


def _ensure_token(store: SessionTokenStore, gateway: ConcurGateway) -> str | HandlerResult:
    """Return the session token, creating and caching it when absent."""
    token = store.get()
    if token:
        return token

    logger.debug("Authentication token not found. Creating new one.")
    try:
        token = gateway.obtain_token(AUTH_DESTINATION)
    except GatewayError:
        logger.exception("Exception occurred while trying to create authentication token.")
        return HandlerResult(500, TOKEN_CREATION_MESSAGE, E.TOKEN_CREATION)

    if not token or not token.strip() or token.strip() == "OAuth":
        logger.error("Empty authentication token created!")
        return HandlerResult(500, INVALID_TOKEN_MESSAGE, E.INVALID_TOKEN)

    logger.debug("Setting authentication token for the current user session")
    store.set(token)
    return token


def handle(
    store: SessionTokenStore,
    gateway: ConcurGateway,
    *,
    invalidate_on_unauthorized: bool = True,
) -> HandlerResult:
    """Serve one expenses request for the session behind *store*.

    Args:
        store:   Token store of the caller's session.
        gateway: Concur gateway (destination resolver + proxy already wired).
        invalidate_on_unauthorized: Clear the cached token when Concur
            answers 401 so the next request obtains a fresh one.

    Returns:
        HandlerResult; never raises for gateway failures.
    """
    token = _ensure_token(store, gateway)
    if isinstance(token, HandlerResult):
        return token

    try:
        body = gateway.fetch_expenses(API_DESTINATION, token)
    except ProxyConfigurationError:
        logger.exception("Exception occurred while configuring the proxy for the API connection")
        return HandlerResult(500, API_CONFIGURATION_MESSAGE, E.PROXY)
    except ConfigurationError:
        logger.exception("Exception occurred while configuring API connection")
        return HandlerResult(500, API_CONFIGURATION_MESSAGE, E.DESTINATION)
    except UnauthorizedError:
        logger.exception("Concur rejected the session authentication token")
        if invalidate_on_unauthorized:
            store.clear()
            logger.info("Cleared cached authentication token for session")
        return HandlerResult(500, UNAUTHORIZED_MESSAGE, E.UNAUTHORIZED)
    except GatewayError:
        logger.exception("Exception occurred while fetching expenses")
        return HandlerResult(500, UPSTREAM_MESSAGE, E.UPSTREAM)

    return HandlerResult(200, body)
