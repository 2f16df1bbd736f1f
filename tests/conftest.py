"""
Shared pytest fixtures for the Concur Expense Gateway test suite.

Provides:
    - app: Flask application (session-scoped)
    - client: Flask test client (function-scoped)
    - http_session: mock requests.Session wired into the app's gateway
    - fake_response: factory for real requests.Response objects
    - _clear_token_store: empties the token store between tests (autouse)

No test talks to a real Concur instance: every outbound call goes through
a MagicMock(spec=requests.Session).
"""

import io
import json
from unittest.mock import MagicMock

import pytest
import requests

from expense_gateway import create_app
from expense_gateway.integrations.concur_gateway import ConcurGateway

AUTH_URL = "https://concur.example.com/net2/oauth2/accesstoken.ashx"
API_URL = "https://concur.example.com/api"

ENTRIES_XML = (
    b"<Entries>"
    b"<Entry><Amount>10</Amount></Entry>"
    b"<Entry><Amount>20</Amount></Entry>"
    b"</Entries>"
)


def _build_response(status=200, body=b"", url="https://concur.example.com/"):
    if isinstance(body, (dict, list)):
        body = json.dumps(body).encode("utf-8")
    elif isinstance(body, str):
        body = body.encode("utf-8")
    resp = requests.Response()
    resp.status_code = status
    resp.raw = io.BytesIO(body)
    resp.url = url
    resp.reason = "OK" if status < 400 else "Error"
    return resp


# ── App fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture()
def client(app):
    """Flask test client (keeps its session cookie between requests)."""
    return app.test_client()


@pytest.fixture(autouse=True)
def _clear_token_store(app):
    """Every test starts with no cached Concur tokens."""
    app.extensions["token_store_backend"].flushdb()
    yield
    app.extensions["token_store_backend"].flushdb()


# ── HTTP fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def fake_response():
    """Factory: fake_response(status=200, body=b"...") → requests.Response."""
    return _build_response


@pytest.fixture()
def auth_response():
    """A well-formed Concur token response."""
    return _build_response(
        200,
        {"Access_Token": {"Token": "abc123", "Expiration_date": "1/1/2030 10:00:00 AM"}},
        url=AUTH_URL,
    )


@pytest.fixture()
def entries_response():
    """A two-entry XML expense payload."""
    return _build_response(200, ENTRIES_XML, url=API_URL + "/v3.0/expense/entries?user=all")


@pytest.fixture()
def http_session(app):
    """Swap the app's gateway for one whose requests.Session is a mock.

    Resolver, proxy selector and tenant context stay those built from
    TestingConfig.
    """
    original = app.extensions["concur_gateway"]
    session = MagicMock(spec=requests.Session)
    app.extensions["concur_gateway"] = ConcurGateway(
        resolver=original.resolver,
        proxy_selector=original.proxy_selector,
        tenant_context=original.tenant_context,
        session=session,
        timeout=original.timeout,
        max_payload_bytes=original.max_payload_bytes,
    )
    yield session
    app.extensions["concur_gateway"] = original
