"""
Exception types for the catalog search engine.

Retrieval problems inside the engine are absorbed (tier fallback, lexical
proxy ranking, lexicon-only expansion, hydration gaps). Only configuration
problems reach callers, so "storage is gone" never looks like "no matches".
"""


class CatalogSearchError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(CatalogSearchError):
    """The engine was set up with something it cannot work with."""


class StorageUnavailableError(ConfigurationError):
    """The catalog database cannot be opened or queried at all."""


class TierError(CatalogSearchError):
    """A lexical retrieval tier failed; the coordinator moves to the next tier."""

    def __init__(self, tier: str, cause: BaseException):
        self.tier = tier
        self.cause = cause
        super().__init__(f"{tier} failed: {type(cause).__name__}: {cause}")
