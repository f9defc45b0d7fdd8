"""Errors raised inside the notification core.

Public tracker and gateway operations catch these at their boundary and
turn them into empty results or OperationResult records; only
PermissionDenied is surfaced to direct callers of an alert dispatcher.
"""


class NotificationError(Exception):
    """Base class for notification core failures."""


class StorageReadFailure(NotificationError):
    """Reading the dedup store, the document store or the feed failed."""


class StorageWriteFailure(NotificationError):
    """Writing the dedup store or the feed failed."""


class RecordNotFound(StorageWriteFailure):
    """A field-level update targeted a feed record that does not exist."""


class PermissionDenied(NotificationError):
    """The alert surface refused to show an alert."""


class PublishFailure(NotificationError):
    """A business notification could not be appended to the feed."""
