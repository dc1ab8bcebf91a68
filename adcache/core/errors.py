"""adcache — Error Types.

Library-level operations return result objects; these exceptions cover the
conditions that are raised and caught at a boundary (live fetch, API route).
"""


class AdCacheError(Exception):
    """Base class for adcache errors."""


class ClientNotFoundError(AdCacheError):
    """Raised when a client id has no stored record."""

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client not found: {client_id}")


class PlatformNotConfiguredError(AdCacheError):
    """Raised when a client has no account on the requested ad platform."""

    def __init__(self, client_id: str, platform: str):
        self.client_id = client_id
        self.platform = platform
        super().__init__(f"Client {client_id} has no {platform} account configured")


class LiveFetchError(AdCacheError):
    """Raised when a live fetch from an ad platform fails or times out."""
