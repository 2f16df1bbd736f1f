"""
Forward-proxy selection for outbound Concur calls.

Two routes exist:
  OnPremise - through the cloud connector tunnel; host/port are injected by
              the hosting platform as HC_OP_HTTP_PROXY_HOST / _PORT.
  Internet  - everything else; host/port come from HTTP_PROXY_HOST / _PORT
              when running outside the platform. No host means a direct
              connection.

The selector never reads os.environ itself: a ProxyConfig is built once
from app.config at start-up and injected. Port values are parsed on every
selection so a bad value fails the request that needs it, before any
socket is opened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from expense_gateway.core.exceptions import ProxyConfigurationError

logger = logging.getLogger(__name__)

ON_PREMISE_PROXY = "OnPremise"
INTERNET_PROXY = "Internet"


@dataclass(frozen=True)
class ProxyConfig:
    """Raw proxy settings as read from configuration (unparsed strings)."""

    on_premise_host: str | None = None
    on_premise_port: str | None = None
    internet_host: str | None = None
    internet_port: str | None = None

    @classmethod
    def from_mapping(cls, cfg: Mapping) -> "ProxyConfig":
        """Build from a Flask config (or any mapping with the same keys)."""
        return cls(
            on_premise_host=cfg.get("ON_PREMISE_PROXY_HOST"),
            on_premise_port=cfg.get("ON_PREMISE_PROXY_PORT"),
            internet_host=cfg.get("INTERNET_PROXY_HOST"),
            internet_port=cfg.get("INTERNET_PROXY_PORT"),
        )


@dataclass(frozen=True)
class ProxyEndpoint:
    """A resolved HTTP forward proxy."""

    kind: str
    host: str
    port: int

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def as_requests_proxies(self) -> dict[str, str]:
        """Return the ``proxies=`` mapping understood by ``requests``."""
        return {"http": self.url, "https": self.url}


def is_on_premise(proxy_type: str | None) -> bool:
    return proxy_type == ON_PREMISE_PROXY


def _parse_port(kind: str, raw: str | None) -> int:
    if raw is None or not str(raw).strip():
        raise ProxyConfigurationError(kind, "proxy port is not set")
    try:
        port = int(str(raw).strip())
    except ValueError as exc:
        raise ProxyConfigurationError(kind, f"proxy port {raw!r} is not a number") from exc
    if not 0 < port < 65536:
        raise ProxyConfigurationError(kind, f"proxy port {port} is out of range")
    return port


class ProxySelector:
    """Pick the forward proxy for a destination's ProxyType."""

    def __init__(self, config: ProxyConfig) -> None:
        self.config = config

    def select_proxy(self, proxy_type: str | None) -> ProxyEndpoint | None:
        """Return the proxy for *proxy_type*, or None for a direct connection.

        Raises:
            ProxyConfigurationError: on-premise host missing, or a configured
                port that is not a valid TCP port number.
        """
        if is_on_premise(proxy_type):
            logger.debug("Configuring on-premise proxy")
            host = self.config.on_premise_host
            if not host:
                raise ProxyConfigurationError(ON_PREMISE_PROXY, "proxy host is not set")
            port = _parse_port(ON_PREMISE_PROXY, self.config.on_premise_port)
            return ProxyEndpoint(kind=ON_PREMISE_PROXY, host=host, port=port)

        logger.debug("Configuring internet proxy")
        host = self.config.internet_host
        if not host:
            # A port without a host is still validated so typos surface early
            if self.config.internet_port:
                _parse_port(INTERNET_PROXY, self.config.internet_port)
            return None
        port = _parse_port(INTERNET_PROXY, self.config.internet_port)
        return ProxyEndpoint(kind=INTERNET_PROXY, host=host, port=port)

    def describe(self) -> dict[str, str]:
        """Summarise both routes for diagnostics / health output (never raises)."""
        summary = {}
        for proxy_type in (ON_PREMISE_PROXY, INTERNET_PROXY):
            try:
                endpoint = self.select_proxy(proxy_type)
            except ProxyConfigurationError as exc:
                summary[proxy_type] = f"invalid ({exc})"
                continue
            summary[proxy_type] = endpoint.url if endpoint else "direct"
        return summary
