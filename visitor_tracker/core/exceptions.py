"""
Custom Exceptions

Domain exceptions for the visitor tracker. Endpoints translate these into
HTTP responses; the geo resolver and the background pipeline catch them at
their own boundary.
"""


class VisitorTrackerException(Exception):
    """Base exception for the visitor tracker service."""
    pass


class GeoProviderError(VisitorTrackerException):
    """Raised when a geolocation provider returns an unusable response."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider}: {reason}")


class VisitorNotFoundError(VisitorTrackerException):
    """Raised when a visitor record is not found in the database."""

    def __init__(self, visitor_id: int):
        self.visitor_id = visitor_id
        super().__init__(f"Visitor '{visitor_id}' not found")


class InvalidLocationUpdateError(VisitorTrackerException):
    """Raised when a client-submitted location update cannot be applied."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class DatabaseError(VisitorTrackerException):
    """Raised when database operations fail."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")


class StoreUnavailableError(VisitorTrackerException):
    """Raised on startup when the visitor store cannot be reached."""

    def __init__(self, database_url: str, original_error: Exception = None):
        self.database_url = database_url
        self.original_error = original_error
        super().__init__(f"Visitor store unavailable at '{database_url}'")
