"""Service layer — business logic orchestration."""


class ServiceError(Exception):
    """Base service exception."""


class NotFoundError(ServiceError):
    """Resource not found (-> HTTP 404)."""


class ConflictError(ServiceError):
    """Business rule conflict (-> HTTP 409)."""


class ValidationError(ServiceError):
    """Input validation or state transition error (-> HTTP 422)."""


class ScanInProgressError(ConflictError):
    """The project already has a pending or running scan (-> HTTP 409)."""

    def __init__(self, project_id: object) -> None:
        self.project_id = project_id
        super().__init__(f"project {project_id} already has a scan in progress")
