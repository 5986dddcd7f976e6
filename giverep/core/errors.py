class ServiceError(Exception):
    """An expected failure raised by a service, rendered as ``{"error": message, **extra}``."""

    def __init__(self, status_code: int, message: str, /, **extra):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.extra = extra

    def to_content(self) -> dict:
        return {"error": self.message, **self.extra}
