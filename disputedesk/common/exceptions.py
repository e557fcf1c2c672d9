from fastapi import HTTPException, status


class DisputeDeskException(HTTPException):
    error_code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(
            status_code=status_code,
            detail=detail,
            headers={
                "X-Error-Code": self.error_code,
                "X-Retryable": "true" if self.retryable else "false",
            },
        )


class NotFoundError(DisputeDeskException):
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class UnauthorizedError(DisputeDeskException):
    error_code = "UNAUTHORIZED"

    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN)


class ValidationFailedError(DisputeDeskException):
    error_code = "VALIDATION_FAILED"

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class InvalidTransitionError(DisputeDeskException):
    error_code = "INVALID_TRANSITION"

    def __init__(self, current_status: str, action: str, detail: str | None = None):
        self.current_status = current_status
        self.action = action
        msg = f"Cannot {action} a dispute in status {current_status}"
        if detail:
            msg += f": {detail}"
        super().__init__(detail=msg, status_code=status.HTTP_409_CONFLICT)


class ConcurrentModificationError(DisputeDeskException):
    error_code = "CONCURRENT_MODIFICATION"
    retryable = True

    def __init__(self, resource_id: str, expected_version: int | None = None):
        detail = f"Dispute '{resource_id}' was modified concurrently; reload and retry"
        if expected_version is not None:
            detail += f" (expected version {expected_version})"
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT)


class StoreUnavailableError(DisputeDeskException):
    error_code = "STORE_UNAVAILABLE"
    retryable = True

    def __init__(self, detail: str = "Dispute store is temporarily unavailable"):
        super().__init__(detail=detail, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class ExternalServiceError(DisputeDeskException):
    error_code = "EXTERNAL_SERVICE_ERROR"
    retryable = True

    def __init__(self, service: str, detail: str | None = None):
        msg = f"External service error: {service}"
        if detail:
            msg += f" - {detail}"
        super().__init__(detail=msg, status_code=status.HTTP_502_BAD_GATEWAY)
