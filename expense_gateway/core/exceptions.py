"""
Gateway-wide exception hierarchy.

Every failure the request flow can hit is one of these types, so the
expenses blueprint registers a single mapping from exception class to
HTTP response instead of catching library errors one by one.

Taxonomy:
  ConfigurationError   - destination / proxy / tenant setup is wrong or missing
  UpstreamError        - network, HTTP status or body problems talking to Concur
                         or to the destination service

Usage:
    from expense_gateway.core.exceptions import DestinationNotFoundError

    raise DestinationNotFoundError("concur-api")
"""


class GatewayError(Exception):
    """Base class for all errors raised by the expense gateway."""


# ── Configuration errors ─────────────────────────────────────────────────


class ConfigurationError(GatewayError):
    """Raised when local configuration prevents a call from being built.

    Always raised BEFORE any outbound network I/O is attempted.
    """


class DestinationNotFoundError(ConfigurationError):
    """Raised when the resolver has no destination with the given name.

    Args:
        name: The destination name that was looked up (e.g. "concur-auth").
    """

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Destination [ {name} ] not found. "
            "Hint: Make sure to have the destination configured."
        )


class ProxyConfigurationError(ConfigurationError):
    """Raised when proxy host/port settings cannot be turned into an endpoint.

    Args:
        proxy_type: The route being configured ("OnPremise" / "Internet").
        detail: What was wrong with the configured values.
    """

    def __init__(self, proxy_type: str, detail: str) -> None:
        self.proxy_type = proxy_type
        super().__init__(f"Invalid {proxy_type} proxy configuration: {detail}")


# ── Upstream (transport / payload) errors ────────────────────────────────


class UpstreamError(GatewayError):
    """Raised when a remote call fails at the transport or HTTP level.

    Args:
        message: Human-readable description, logged in full.
        status_code: HTTP status returned by the remote side, None for
                     network-level failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UnauthorizedError(UpstreamError):
    """Raised when the remote API rejects the bearer token (HTTP 401)."""

    def __init__(self, message: str = "Remote API rejected the authentication token") -> None:
        super().__init__(message, status_code=401)


class TokenResponseError(UpstreamError):
    """Raised when the auth response body is not JSON or lacks Access_Token.Token."""


class TranscodeError(UpstreamError):
    """Raised when the expense payload is not well-formed XML."""
