"""Domain-specific exceptions."""


class ServiceError(Exception):
    pass


class ConfigurationError(ServiceError):
    pass


class GeocodingError(ServiceError):
    """Raised when the geocoding provider fails or returns an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
