"""
Destination resolution: where Concur lives and how to log in to it.

A destination is a named, read-only bag of properties:

    URL            base URL of the endpoint
    User/Password  Basic credentials (auth destination only)
    X-ConsumerKey  Concur consumer key (auth destination only)
    ProxyType      "OnPremise" or "Internet"

Two resolvers implement the same interface:

  StaticDestinationResolver   - properties come from app config
                                (DESTINATIONS env JSON or DESTINATIONS_FILE);
                                used locally and in tests.
  DestinationServiceResolver  - properties come from the platform's
                                destination service over REST, using an
                                OAuth2 client-credentials token cached until
                                60 s before expiry.

Testability: pass a mock `session` to DestinationServiceResolver() instead
of letting it create a real requests.Session internally.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

import requests

from expense_gateway.core.exceptions import DestinationNotFoundError, UpstreamError

logger = logging.getLogger(__name__)

API_DESTINATION = "concur-api"
AUTH_DESTINATION = "concur-auth"

# ── Destination service constants ──────────────────────────────────────────
_FIND_DESTINATION_PATH = "/destination-configuration/v1/destinations/{name}"
_TOKEN_EXPIRY_MARGIN_SECONDS = 60
_DEFAULT_TIMEOUT = (10, 30)


@dataclass(frozen=True)
class Destination:
    """Typed view over a destination's properties."""

    name: str
    properties: Mapping[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str | None:
        return self.properties.get("URL")

    @property
    def user(self) -> str | None:
        return self.properties.get("User")

    @property
    def password(self) -> str | None:
        return self.properties.get("Password")

    @property
    def consumer_key(self) -> str | None:
        return self.properties.get("X-ConsumerKey")

    @property
    def proxy_type(self) -> str | None:
        return self.properties.get("ProxyType")


class DestinationResolver(ABC):
    """Look up destination properties by name."""

    kind = "abstract"

    @abstractmethod
    def get_properties(self, name: str) -> Mapping[str, str]:
        """Return all properties of destination *name*.

        Raises:
            DestinationNotFoundError: If no destination has that name.
        """

    def get_destination(self, name: str) -> Destination:
        properties = self.get_properties(name)
        logger.debug("Getting destination properties for destination [ %s ]", name)
        return Destination(name=name, properties=properties)

    def known_names(self) -> list[str]:
        """Names this resolver can answer for without a network call (may be empty)."""
        return []


# ═════════════════════════════════════════════════════════════════════════
# Static (config-backed) resolver
# ═════════════════════════════════════════════════════════════════════════


def _normalise_entries(raw: Any) -> dict[str, dict[str, str]]:
    """Accept ``{"name": {...}}`` or ``[{"Name": "name", ...}]`` shapes."""
    if isinstance(raw, Mapping):
        return {str(name): {str(k): str(v) for k, v in props.items()} for name, props in raw.items()}
    if isinstance(raw, list):
        entries = {}
        for item in raw:
            name = item.get("Name") or item.get("name")
            if not name:
                raise ValueError(f"Destination entry without a Name: {item!r}")
            entries[str(name)] = {str(k): str(v) for k, v in item.items() if k not in ("Name", "name")}
        return entries
    raise ValueError(f"Unsupported destinations format: {type(raw).__name__}")


class StaticDestinationResolver(DestinationResolver):
    """Resolver over a fixed, in-process set of destinations."""

    kind = "static"

    def __init__(self, destinations: Mapping[str, Mapping[str, str]] | Iterable | None = None) -> None:
        entries = _normalise_entries(destinations or {})
        self._destinations = {
            name: MappingProxyType(dict(props)) for name, props in entries.items()
        }

    @classmethod
    def from_json(cls, text: str) -> "StaticDestinationResolver":
        return cls(json.loads(text))

    @classmethod
    def from_file(cls, path: str | Path) -> "StaticDestinationResolver":
        with open(path, encoding="utf-8") as f:
            return cls(json.load(f))

    def get_properties(self, name: str) -> Mapping[str, str]:
        try:
            return self._destinations[name]
        except KeyError:
            raise DestinationNotFoundError(name) from None

    def known_names(self) -> list[str]:
        return sorted(self._destinations)


# ═════════════════════════════════════════════════════════════════════════
# Platform destination service resolver
# ═════════════════════════════════════════════════════════════════════════


class DestinationServiceResolver(DestinationResolver):
    """Resolver backed by the platform destination service REST API.

    Args:
        service_uri:   Base URI of the destination service instance.
        token_url:     OAuth2 token endpoint of the service's auth server.
        client_id:     Client id from the service binding.
        client_secret: Client secret from the service binding.
        session:       Optional requests.Session (inject a mock in tests).
        timeout:       (connect, read) seconds for every call.
    """

    kind = "service"

    def __init__(
        self,
        service_uri: str,
        token_url: str,
        client_id: str,
        client_secret: str,
        session: requests.Session | None = None,
        timeout: tuple[float, float] = _DEFAULT_TIMEOUT,
    ) -> None:
        self.service_uri = service_uri.rstrip("/")
        self.token_url = token_url
        self.client_id = client_id
        self._client_secret = client_secret
        self._session: requests.Session | None = session
        self.timeout = timeout

        # {"access_token": str, "expires_at": datetime}
        self._token_entry: dict | None = None
        self._lock = threading.Lock()

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── OAuth2 token management ───────────────────────────────────────────────

    def _get_cached_token(self) -> str | None:
        entry = self._token_entry
        if not entry:
            return None
        margin = timedelta(seconds=_TOKEN_EXPIRY_MARGIN_SECONDS)
        if datetime.now(timezone.utc) >= entry["expires_at"] - margin:
            return None
        return entry["access_token"]

    def get_token(self) -> str:
        """Return a client-credentials access token for the destination service.

        Raises:
            UpstreamError: If the token endpoint fails or omits access_token.
        """
        with self._lock:
            cached = self._get_cached_token()
            if cached:
                return cached

            logger.info("Fetching destination service token client_id=%s", self.client_id)
            try:
                resp = self.session.post(
                    self.token_url,
                    data={"grant_type": "client_credentials"},
                    auth=(self.client_id, self._client_secret),
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                body = resp.json()
            except requests.RequestException as exc:
                raise UpstreamError(
                    f"Destination service token request failed: {exc}",
                    status_code=getattr(exc.response, "status_code", None),
                ) from exc
            except ValueError as exc:
                raise UpstreamError(f"Destination service token response is not JSON: {exc}") from exc

            access_token = body.get("access_token")
            if not access_token:
                raise UpstreamError("Destination service token response missing access_token")

            expires_in = int(body.get("expires_in", 3600))
            self._token_entry = {
                "access_token": access_token,
                "expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            }
            logger.info("Destination service token obtained expires_in=%ss", expires_in)
            return access_token

    def invalidate_token(self) -> None:
        """Evict the cached token; next lookup re-fetches it."""
        with self._lock:
            self._token_entry = None

    # ── Lookup ────────────────────────────────────────────────────────────────

    def get_properties(self, name: str) -> Mapping[str, str]:
        url = self.service_uri + _FIND_DESTINATION_PATH.format(name=name)
        headers = {
            "Authorization": f"Bearer {self.get_token()}",
            "Accept": "application/json",
        }
        try:
            resp = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise UpstreamError(f"Destination service lookup for [ {name} ] failed: {exc}") from exc

        if resp.status_code == 404:
            raise DestinationNotFoundError(name)
        if resp.status_code == 401:
            self.invalidate_token()
        if not resp.ok:
            raise UpstreamError(
                f"Destination service returned HTTP {resp.status_code} for [ {name} ]: {resp.text[:500]}",
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"Destination service response for [ {name} ] is not JSON") from exc

        configuration = body.get("destinationConfiguration") if isinstance(body, dict) else None
        if not configuration:
            raise DestinationNotFoundError(name)
        return MappingProxyType(
            {str(k): str(v) for k, v in configuration.items() if k != "Name"}
        )


# ── Factory ──────────────────────────────────────────────────────────────────


def build_resolver(cfg: Mapping) -> DestinationResolver:
    """Create the resolver selected by ``DESTINATION_RESOLVER`` in *cfg*.

    "static"  (default) - DESTINATIONS_FILE if set, else the DESTINATIONS JSON.
    "service"           - the platform destination service.
    """
    kind = (cfg.get("DESTINATION_RESOLVER") or "static").lower()
    timeout = (cfg.get("HTTP_CONNECT_TIMEOUT", 10), cfg.get("HTTP_READ_TIMEOUT", 30))

    if kind == "service":
        missing = [
            key for key in (
                "DESTINATION_SERVICE_URI",
                "DESTINATION_SERVICE_TOKEN_URL",
                "DESTINATION_SERVICE_CLIENT_ID",
                "DESTINATION_SERVICE_CLIENT_SECRET",
            )
            if not cfg.get(key)
        ]
        if missing:
            raise RuntimeError(f"Destination service resolver requires: {', '.join(missing)}")
        return DestinationServiceResolver(
            service_uri=cfg["DESTINATION_SERVICE_URI"],
            token_url=cfg["DESTINATION_SERVICE_TOKEN_URL"],
            client_id=cfg["DESTINATION_SERVICE_CLIENT_ID"],
            client_secret=cfg["DESTINATION_SERVICE_CLIENT_SECRET"],
            timeout=timeout,
        )

    if kind != "static":
        raise RuntimeError(f"Unknown DESTINATION_RESOLVER {kind!r} (expected 'static' or 'service')")

    path = cfg.get("DESTINATIONS_FILE")
    if path:
        return StaticDestinationResolver.from_file(path)
    raw = cfg.get("DESTINATIONS")
    if isinstance(raw, str):
        return StaticDestinationResolver.from_json(raw) if raw.strip() else StaticDestinationResolver()
    return StaticDestinationResolver(raw)
