class FinanceError(Exception):
    """Base for errors the API layer turns into a JSON response."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(FinanceError):
    status_code = 401


class Forbidden(FinanceError):
    status_code = 403


class NotFound(FinanceError):
    status_code = 404


class ValidationError(FinanceError, ValueError):
    status_code = 400


class ConflictError(ValidationError):
    pass


class CryptoError(FinanceError):
    status_code = 500
