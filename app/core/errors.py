"""Error taxonomy shared by the relay, the ledger and the story store."""


class ServiceError(Exception):
    """Base error rendered to clients as ``{"error": message}``."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class InvalidRequest(ServiceError):
    status_code = 400


class ConfigurationError(ServiceError):
    status_code = 500


class UpstreamError(ServiceError):
    """Non-success status from the generation API; status is passed through."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message, status_code=status_code)


class TransportError(ServiceError):
    status_code = 500


class SinkWriteError(ServiceError):
    """Durable sink append failed. Logged by the ledger, never surfaced."""


class StoreError(ServiceError):
    status_code = 500
