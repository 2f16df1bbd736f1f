"""
Tenant context: who the gateway is calling Concur on behalf of.

The consumer account id is only needed on the on-premise route, where the
cloud connector uses the SAP-Connectivity-ConsumerAccount header to pick
the right tunnel. On the hosting platform the account id is exposed as the
HC_ACCOUNT environment variable; config.TENANT_ACCOUNT_ID reads it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from expense_gateway.core.exceptions import ConfigurationError


class TenantContext(ABC):
    """Supplies the current tenant's consumer account id."""

    @abstractmethod
    def get_account_id(self) -> str:
        """Return the account id, or raise ConfigurationError if unknown."""


class StaticTenantContext(TenantContext):
    """Single-tenant context with a fixed account id from configuration."""

    def __init__(self, account_id: str | None) -> None:
        self.account_id = account_id

    def get_account_id(self) -> str:
        if not self.account_id:
            raise ConfigurationError(
                "Tenant account id is not configured (set HC_ACCOUNT) "
                "but is required for on-premise connectivity"
            )
        return self.account_id
