"""Error taxonomy shared by the ingestion, storage, notify and refresh layers."""

from __future__ import annotations


class TickertapeError(Exception):
    """Base class for all tickertape errors"""
    pass


class FormatError(TickertapeError):
    """A URL (or other identity input) could not be parsed"""
    pass


class ValidationError(TickertapeError):
    """A listing is missing a required field or carries a malformed one"""
    pass


class ExtractionError(TickertapeError):
    """A source listing could not be fetched or parsed"""
    pass


class DatabaseError(TickertapeError):
    """Storage could not be opened or queried"""
    pass


class DuplicateError(DatabaseError):
    """An insert hit a unique constraint (url or hash). Expected, not a failure."""
    pass


class PersistenceWriteError(DatabaseError):
    """An insert or update failed for a reason other than a duplicate"""
    pass


class NotificationDeliveryError(TickertapeError):
    """A rendered message could not be delivered to its destination"""
    pass


class RefreshFetchError(TickertapeError):
    """Re-fetching an article body failed"""
    pass


class SummaryError(TickertapeError):
    """The summarization endpoint failed or returned no usable choice"""
    pass


class ScheduleError(TickertapeError):
    """A schedule expression could not be turned into a trigger"""
    pass
