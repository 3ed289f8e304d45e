class PreconditionViolation(ValueError):
    """Raised when an assessment is requested without a usable assessed value."""


class CacheUnavailable(RuntimeError):
    """The durable property cache could not be reached or queried."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Property cache unavailable during {operation}{detail}")
