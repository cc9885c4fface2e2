"""Error kinds raised by the planner API and the HTTP status each maps to."""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400


class AuthError(AppError):
    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class ServerError(AppError):
    status_code = 500


class RecurrenceParseError(Exception):
    """A task's recurrence rule could not be parsed.

    Never surfaces over HTTP; the calendar aggregator recovers per task.
    """

    def __init__(self, rule: str, reason: str):
        super().__init__(f"Invalid recurrence rule {rule!r}: {reason}")
        self.rule = rule
        self.reason = reason
