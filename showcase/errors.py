"""Errors surfaced by the showcase core and mapped to HTTP responses."""


class ShowcaseError(Exception):
    """Base class for errors that carry an HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(ShowcaseError):
    """A required field is missing or a value is not acceptable."""

    status_code = 400


class Unauthorized(ShowcaseError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFound(ShowcaseError):
    status_code = 404


class PersistFailed(ShowcaseError):
    """The remote document could not be written; local state was reverted."""

    status_code = 500
