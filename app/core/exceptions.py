from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidStreamError(ServiceError):
    def __init__(self, stream: str, valid: list) -> None:
        super().__init__(
            f"Invalid stream: \"{stream}\". Must be one of: {', '.join(valid)}",
            status.HTTP_400_BAD_REQUEST,
        )
        self.stream = stream


class InvalidSemesterError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class RosterNameError(ServiceError):
    """Bucket name could not be derived (bad subject name, semester out of range)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class PromotionError(ServiceError):
    """Promotion run aborted; every write of the run has been rolled back."""

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        from_semester: Optional[int] = None,
        to_semester: Optional[int] = None,
    ) -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.stage = stage
        self.from_semester = from_semester
        self.to_semester = to_semester
