"""Partner API access -- OAuth2 token cache, organization catalog, client fetcher.

Provides TokenProvider (client-credentials token with single-flight refresh),
ExternalCatalog (configured code -> name registry), and ExternalFetcher
(authenticated client list reads with local search, pagination and stats).
"""
