"""Service layer — business logic orchestration."""


class ServiceError(Exception):
    """Base service exception."""


class NotFoundError(ServiceError):
    """Resource not found, or not ready yet (-> HTTP 404)."""


class ValidationError(ServiceError):
    """Input validation error (-> HTTP 422)."""
