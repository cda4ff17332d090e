"""
Error types raised inside scriptmanager.

Service level methods translate these into {'error': ...} responses; batch
operations log them and move on to the next file.
"""


class ScriptManagerError(Exception):
    """Base class for all scriptmanager errors"""


class ParseFailure(ScriptManagerError):
    """File content has no metablock, or the metablock has no @name."""

    NO_METABLOCK = 'NoMetablock'
    MISSING_NAME = 'MissingName'

    def __init__(self, reason: str, message: str = ''):
        self.reason = reason
        super().__init__(message or reason)


class ValidationFailure(ScriptManagerError):
    """Filename collision, filename too long, invalid url or argument."""


class IOFailure(ScriptManagerError):
    """Read, write or delete failed at the storage layer."""


class NetworkFailure(ScriptManagerError):
    """Fetch failed, returned a non-200 status or timed out."""


class MalformedPattern(ScriptManagerError):
    """A match pattern does not fit the scheme://host/path grammar."""
