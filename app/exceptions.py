class PriceServiceError(Exception):
    """Base class for token price service errors."""


class ServiceUnavailableError(PriceServiceError):
    """The price store is not initialized (service stopped or failed to start)."""


class BatchTooLargeError(PriceServiceError, ValueError):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"At most {limit} tokens per request, got {size}")
