"""
Exceptions raised by podhost operations.

Missing feeds or episodes are reported as ``None``/``False`` return values;
these exceptions cover the failures a caller must handle explicitly.
"""


class PodhostError(Exception):
    """Base class for podhost errors."""


class ConflictError(PodhostError):
    """Operation conflicts with current feed state.

    Raised for duplicate feed ids, updates or renames of unknown feeds,
    attempts to change an immutable id, and move/copy with a missing source
    or target feed.
    """


class ValidationError(PodhostError):
    """Caller supplied unusable input (bad date, missing upload file)."""


class StorageError(PodhostError):
    """The object store could not complete a required operation."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path
