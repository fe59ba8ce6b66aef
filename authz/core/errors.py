"""
Application error types.

Each error carries the HTTP status it maps to; main.py turns any AppError
into a JSON response of the form {"error": message}.
"""


class AppError(Exception):
    status_code: int = 500

    def __init__(self, message: str = "Internal server error", status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class UnauthorizedError(AppError):
    """No authenticated identity is present."""
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(AppError):
    """Authenticated identity lacks the required permission."""
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(AppError):
    status_code = 409

    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message)


class StoreError(AppError):
    """Reading the permission graph failed. Never surfaced to callers."""
    status_code = 500

    def __init__(self, message: str = "Permission store unavailable"):
        super().__init__(message)
