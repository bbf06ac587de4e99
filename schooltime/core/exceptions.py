from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidInput(ServiceError):
    """Malformed request data, rejected before any persistence call."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
        self.field = field


class InvalidDate(InvalidInput):
    pass


class InvalidDayOfWeek(InvalidInput):
    pass


class InvalidPeriod(InvalidInput):
    pass


class InvalidTimeFormat(InvalidInput):
    pass


class InvalidTimeRange(InvalidInput):
    pass


class NotAuthorized(ServiceError):
    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFound(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class Conflict(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class HolidayConflict(Conflict):
    """Interactive assignment into a blocked day (holiday or non-working day)."""

    def __init__(self, day_of_week: int) -> None:
        super().__init__(f"Cannot add entries on a holiday (day_of_week={day_of_week})")
        self.day_of_week = day_of_week


class GridStateError(Conflict):
    pass


class PersistenceFailure(ServiceError):
    """The data store rejected or failed the operation. Carries the underlying message."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        detail = f"{message}: {cause}" if cause is not None else message
        super().__init__(detail, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.cause = cause


class ConfigurationError(Exception):
    """Invalid deployment configuration, raised at startup rather than per request."""
