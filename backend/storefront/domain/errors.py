class DomainError(Exception):
    """Base for errors the HTTP boundary maps to a status code."""

    status_code = 500


class ValidationError(DomainError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class DateNotFoundError(NotFoundError):
    """A slot allocation references a ledger day that no longer exists."""


class ConflictError(DomainError):
    status_code = 409


class CapacityError(DomainError):
    status_code = 400
