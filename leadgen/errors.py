"""Exception taxonomy shared by the orchestration engine."""
from __future__ import annotations


class LeadgenError(Exception):
    """Base class for all engine errors."""


class SearchNotFound(LeadgenError):
    def __init__(self, search_id: str):
        super().__init__(f"Search not found: {search_id}")
        self.search_id = search_id


class ProviderError(LeadgenError):
    """A generator call failed (timeout, transport, bad status, malformed output)."""

    def __init__(self, provider: str, message: str, *, status_code: int | None = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class RateLimitError(ProviderError):
    """HTTP 429 from a generator. The only provider error that is retried in place."""

    def __init__(self, provider: str, message: str = "rate limited"):
        super().__init__(provider, message, status_code=429)


class ValidationFailure(LeadgenError):
    """Output parsed but did not pass the realism check."""


class ToolError(LeadgenError):
    """A lookup tool failed for one query or region."""


class PersistenceError(LeadgenError):
    """A datastore read or write failed."""

    def __init__(self, operation: str, table: str, message: str):
        super().__init__(f"{operation} {table} failed: {message}")
        self.operation = operation
        self.table = table


class MarketResearchFailed(LeadgenError):
    """Generator output could not be turned into structured market insights."""
