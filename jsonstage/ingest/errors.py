"""Exceptions that abort the staging of a table."""


class StagingError(Exception):
    """Exception raised when a table cannot be staged."""
    pass


class PageFormatError(StagingError):
    """A page file is missing, unreadable or not well-formed JSON."""
    pass


class SchemaInferenceError(StagingError):
    """A field's statistics do not resolve to a single column type."""
    pass
