"""Errors raised by the content server client."""


class ContentServerError(Exception):
    """Raised when the content server is unreachable or answers with garbage."""
    pass


class EntityNotFoundError(ContentServerError):
    """Raised when a referenced entity or content file does not exist remotely."""
    pass
