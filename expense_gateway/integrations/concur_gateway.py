"""
Concur API Gateway.

All outbound HTTP calls to Concur go through this class. Blueprints and
services never call `requests` directly.

Two operations:
  obtain_token(auth_destination)         - Basic-auth exchange against the
                                           concur-auth destination, returns
                                           "OAuth <token>"
  fetch_expenses(api_destination, token) - GET expense entries from the
                                           concur-api destination, returns the
                                           XML payload transcoded to JSON

Every call:
  - resolves its destination first (unknown name → DestinationNotFoundError)
  - selects the forward proxy from the destination's ProxyType
  - adds SAP-Connectivity-ConsumerAccount on the on-premise route
  - uses explicit (connect, read) timeouts
  - is attempted exactly once; there is no retry or token refresh here

All configuration problems are raised before the request is sent.

Testability: pass a mock `session` to ConcurGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import base64
import json
import logging
import time

import requests

from expense_gateway.core.exceptions import (
    ConfigurationError,
    TokenResponseError,
    UnauthorizedError,
    UpstreamError,
)
from expense_gateway.integrations.destinations import (
    AUTH_DESTINATION,
    Destination,
    DestinationResolver,
)
from expense_gateway.integrations.proxy import ProxyEndpoint, ProxySelector, is_on_premise
from expense_gateway.services.tenant import TenantContext
from expense_gateway.utils.xml_json import xml_to_json

logger = logging.getLogger(__name__)

EXPENSES_PATH = "/v3.0/expense/entries?user=all"
CONSUMER_ACCOUNT_HEADER = "SAP-Connectivity-ConsumerAccount"
TOKEN_SCHEME = "OAuth"

# ── Transport constants ────────────────────────────────────────────────────
BUFFER_SIZE = 1024
_DEFAULT_TIMEOUT = (10, 30)     # (connect, read) seconds


def basic_credentials(user: str | None, password: str | None) -> str:
    """Return base64("user:password") for an HTTP Basic Authorization header."""
    raw = f"{user or ''}:{password or ''}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


class ConcurGateway:
    """Concur REST API gateway.

    Args:
        resolver:          Destination lookup (static config or platform service).
        proxy_selector:    Chooses the forward proxy per ProxyType.
        tenant_context:    Supplies the consumer account id for on-premise calls.
        session:           Optional requests.Session (inject a mock in tests).
        timeout:           (connect, read) seconds for every call.
        max_payload_bytes: Abort the expense download beyond this size
                           (None = unlimited).
    """

    def __init__(
        self,
        resolver: DestinationResolver,
        proxy_selector: ProxySelector,
        tenant_context: TenantContext,
        session: requests.Session | None = None,
        timeout: tuple[float, float] = _DEFAULT_TIMEOUT,
        max_payload_bytes: int | None = None,
    ) -> None:
        self.resolver = resolver
        self.proxy_selector = proxy_selector
        self.tenant_context = tenant_context
        self._session: requests.Session | None = session
        self.timeout = timeout
        self.max_payload_bytes = max_payload_bytes

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Header helpers ────────────────────────────────────────────────────────

    def _proxy_headers(self, proxy_type: str | None) -> dict[str, str]:
        """Consumer-account header for the on-premise route, nothing otherwise."""
        if is_on_premise(proxy_type):
            return {CONSUMER_ACCOUNT_HEADER: self.tenant_context.get_account_id()}
        return {}

    @staticmethod
    def _auth_headers(consumer_key: str | None) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "X-ConsumerKey": consumer_key or "",
        }

    # ── Core request dispatcher ───────────────────────────────────────────────

    def _resolve(self, name: str) -> Destination:
        destination = self.resolver.get_destination(name)
        if not destination.url:
            raise ConfigurationError(f"Destination [ {name} ] has no URL property")
        return destination

    def _get(
        self,
        url: str,
        headers: dict[str, str],
        proxy: ProxyEndpoint | None,
        *,
        stream: bool = False,
    ) -> requests.Response:
        """Send a single GET; no retry logic here."""
        proxies = proxy.as_requests_proxies() if proxy else None
        t0 = time.perf_counter()
        try:
            resp = self.session.get(
                url,
                headers=headers,
                proxies=proxies,
                timeout=self.timeout,
                stream=stream,
            )
        except requests.Timeout as exc:
            raise UpstreamError(f"Request to {url} timed out: {exc}") from exc
        except requests.RequestException as exc:
            raise UpstreamError(f"Request to {url} failed: {exc}") from exc

        duration_ms = int((time.perf_counter() - t0) * 1000)
        logger.debug(
            "Concur GET %s status=%s proxy=%s duration_ms=%d",
            url, resp.status_code, proxy.url if proxy else "direct", duration_ms,
        )
        return resp

    def _read_body(self, resp: requests.Response) -> bytes:
        """Drain the streamed body in BUFFER_SIZE chunks."""
        chunks: list[bytes] = []
        total = 0
        try:
            for chunk in resp.iter_content(chunk_size=BUFFER_SIZE):
                total += len(chunk)
                if self.max_payload_bytes is not None and total > self.max_payload_bytes:
                    raise UpstreamError(
                        f"Response body exceeds {self.max_payload_bytes} bytes",
                        status_code=resp.status_code,
                    )
                chunks.append(chunk)
        except requests.RequestException as exc:
            raise UpstreamError(f"Reading response body failed: {exc}") from exc
        return b"".join(chunks)

    # ── Token Provider ────────────────────────────────────────────────────────

    def obtain_token(self, auth_destination: str = AUTH_DESTINATION) -> str:
        """Exchange Basic credentials for a Concur token.

        GET <URL>
        Authorization: Basic {base64 LoginID:Password}
        X-ConsumerKey: {Consumer Key}

        The JSON answer is ``{"Access_Token": {"Token": "..."}}``.

        Returns:
            The token prefixed with its scheme, ready for an Authorization
            header: ``"OAuth <token>"``.

        Raises:
            ConfigurationError: Unknown destination, bad proxy or tenant setup.
            UpstreamError:      Network failure or non-2xx status.
            TokenResponseError: Body is not JSON or lacks Access_Token.Token.
        """
        logger.debug("Configuring connection for authentication")
        destination = self._resolve(auth_destination)
        proxy = self.proxy_selector.select_proxy(destination.proxy_type)

        headers = {}
        headers.update(self._proxy_headers(destination.proxy_type))
        headers.update(self._auth_headers(destination.consumer_key))
        headers["Authorization"] = "Basic " + basic_credentials(destination.user, destination.password)

        resp = self._get(destination.url, headers, proxy)
        if not resp.ok:
            raise UpstreamError(
                f"Authentication endpoint returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        return f"{TOKEN_SCHEME} {self._extract_token(resp.content)}"

    @staticmethod
    def _extract_token(body: bytes) -> str:
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise TokenResponseError(f"Authentication response is not valid JSON: {exc}") from exc
        try:
            token = payload["Access_Token"]["Token"]
        except (KeyError, TypeError) as exc:
            raise TokenResponseError("Authentication response has no Access_Token.Token field") from exc
        if isinstance(token, str):
            return token
        if token is None or isinstance(token, (dict, list)):
            raise TokenResponseError("Access_Token.Token is not a scalar value")
        # Numbers and booleans keep their JSON spelling: 12345, true
        return json.dumps(token)

    # ── Expense Fetcher ───────────────────────────────────────────────────────

    def fetch_expenses(self, api_destination: str, token: str) -> str:
        """Fetch all users' expense entries and return them as indented JSON.

        Args:
            api_destination: Destination holding the API base URL.
            token: Full Authorization header value, e.g. "OAuth abc123".

        Raises:
            ConfigurationError: Unknown destination, bad proxy or tenant setup.
            UnauthorizedError:  Concur answered 401 (token rejected).
            UpstreamError:      Network failure, other non-2xx status, or the
                                body exceeds max_payload_bytes.
            TranscodeError:     Body is not well-formed XML.
        """
        logger.debug("Configuring connection for the API")
        destination = self._resolve(api_destination)
        expenses_url = destination.url + EXPENSES_PATH
        proxy = self.proxy_selector.select_proxy(destination.proxy_type)

        headers = self._proxy_headers(destination.proxy_type)
        headers["Authorization"] = token

        resp = self._get(expenses_url, headers, proxy, stream=True)
        try:
            if resp.status_code == 401:
                raise UnauthorizedError()
            if not resp.ok:
                raise UpstreamError(
                    f"Expense endpoint returned HTTP {resp.status_code}",
                    status_code=resp.status_code,
                )
            body = self._read_body(resp)
        finally:
            resp.close()

        return xml_to_json(body)
