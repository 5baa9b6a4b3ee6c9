from typing import Optional


class StreetMetricsError(Exception):
    """Base class for failures surfaced at the HTTP boundary."""

    status_code = 500
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(StreetMetricsError):
    """A required request field is missing or malformed."""

    status_code = 400
    kind = "invalid_request"


class NotFound(StreetMetricsError):
    """A device directory or image file does not exist."""

    status_code = 404
    kind = "not_found"


class ProtocolViolation(StreetMetricsError):
    """The inference service answered without the forced tool invocation."""

    kind = "protocol_violation"


class SchemaViolation(StreetMetricsError):
    """The tool payload does not satisfy the scene analysis schema."""

    kind = "schema_violation"

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class TransportFailure(StreetMetricsError):
    """Network or service level failure calling the inference service."""

    kind = "transport_failure"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class StorageFailure(StreetMetricsError):
    """Reading or writing an analysis document failed."""

    kind = "storage_failure"
