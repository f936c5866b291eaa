class TrackingError(Exception):
    """Base error carrying the HTTP status the routers answer with."""

    status_code = 500

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFound(TrackingError):
    status_code = 404


class Unauthorized(TrackingError):
    status_code = 401


class Conflict(TrackingError):
    status_code = 400


class DependencyUnavailable(TrackingError):
    status_code = 500
