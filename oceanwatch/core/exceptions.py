"""
Error types for the scrape pipeline.

Item-level errors (FetchError, ParseError, ReconcileError) are counted against
the running job and never abort a batch. ListingError marks a listing page as
unusable, which fails single-entity-type jobs.
"""
from typing import Optional


class OceanwatchError(Exception):
    """Base class for all pipeline errors."""


class FetchError(OceanwatchError):
    """Transport error, timeout or non-2xx response."""

    def __init__(self, url: str, cause: str, status_code: Optional[int] = None):
        self.url = url
        self.cause = cause
        self.status_code = status_code
        super().__init__(f"fetch {url} failed: {cause}")


class ParseError(OceanwatchError):
    """A structurally required field was missing or malformed."""

    def __init__(self, message: str, context: Optional[str] = None):
        self.context = context
        super().__init__(f"{context}: {message}" if context else message)


class ListingError(OceanwatchError):
    """A listing page could not be fetched or yielded no records."""

    def __init__(self, ocean: str, listing: str, message: str):
        self.ocean = ocean
        self.listing = listing
        super().__init__(f"{listing} listing for {ocean}: {message}")


class ReconcileError(OceanwatchError):
    """Storage write for one entity failed; its transaction was rolled back."""

    def __init__(self, entity: str, key, cause: BaseException):
        self.entity = entity
        self.key = key
        self.cause = cause
        super().__init__(f"failed to reconcile {entity} {key}: {cause}")
