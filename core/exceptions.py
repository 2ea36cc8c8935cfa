"""Custom exception hierarchy for the Midgard history mirror.

This module defines a base exception and several specific exception types to
enable precise and predictable error handling across the ingestion pipeline
and the history query path.
"""


class MidgardHistoryError(Exception):
    """Base exception for all application-specific errors."""

    pass


class APIError(MidgardHistoryError):
    """Errors related to upstream API interactions."""

    pass


class TransportError(APIError):
    """Upstream unreachable, timed out, or answered with a non-2xx status."""

    pass


class DecodeError(APIError):
    """Upstream response body does not match the expected JSON shape."""

    pass


class NormalizationError(MidgardHistoryError):
    """Errors raised while converting raw intervals into typed records."""

    pass


class FieldParseError(NormalizationError):
    """A single numeric field could not be parsed; recovered as 0.0."""

    pass


class KeyParseError(NormalizationError):
    """startTime/endTime could not be parsed; the record is dropped."""

    pass


class DatabaseError(MidgardHistoryError):
    """Errors related to database operations."""

    pass


class StoreWriteError(DatabaseError):
    """A single record could not be written."""

    pass


class StoreReadError(DatabaseError):
    """A scan or count against the store failed."""

    pass


class ValidationError(MidgardHistoryError):
    """Bad history query parameters; surfaced to the caller as a 400."""

    status = 400


class NotFoundError(MidgardHistoryError):
    """A history query matched no buckets; surfaced as a 404."""

    status = 404
