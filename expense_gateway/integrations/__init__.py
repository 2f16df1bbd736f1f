"""expense_gateway.integrations: Outbound gateway modules.

All outbound HTTP calls go through a module in this package, never via bare
`requests` calls in services or blueprints.

Every call is:
  - Resolved against a named destination (URL, credentials, ProxyType)
  - Routed through the proxy selected for that ProxyType
  - Bounded by explicit connect/read timeouts
  - Attempted once; failures surface as GatewayError subclasses

Current modules:
  concur_gateway.ConcurGateway  - Concur token exchange + expense entries
  destinations                  - static and destination-service resolvers
  proxy.ProxySelector           - on-premise / internet forward proxy
"""
