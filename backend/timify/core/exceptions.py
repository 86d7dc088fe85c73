class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulerError(AppError):
    """Raised when the scheduler encounters a logical error or invalid state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class CatalogValidationError(SchedulerError):
    """Raised when a catalog snapshot is not a valid scheduling input."""

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConcurrentCatalogChange(AppError):
    """Raised when the catalog version moved between snapshot and publish."""
    def __init__(self, expected_version: int, current_version: int):
        super().__init__(
            "Catalog changed while the timetable was being generated; re-run generation",
            status_code=409,
            details={"expected_version": expected_version, "current_version": current_version},
        )
        self.expected_version = expected_version
        self.current_version = current_version

class PersistenceError(AppError):
    """Raised when the store rejects a write. The previous state stays authoritative."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=503, details=details)


class ConstraintViolation(Exception):
    """Internal to the constraint checker; carries the failed check name."""
    def __init__(self, reason):
        self.reason = reason
        super().__init__(getattr(reason, "value", str(reason)))


class GridMismatchError(AppError):
    """Raised when stored slot rows no longer fit the configured slot grid."""
    def __init__(self, timetable_id: str, reason: str):
        super().__init__(
            "Timetable does not fit the current slot grid; regenerate it",
            status_code=409,
            details={"timetable_id": timetable_id, "reason": reason},
        )
