class FetchError(Exception):
    """Base class for everything that can go wrong while loading trade history"""


class ValidationError(FetchError, ValueError):
    """Raised before any network call when the request parameters are invalid"""


class RemoteError(FetchError):
    """Non-success response (or transport failure) from the trade-history endpoint"""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.message = message
        self.status = status


class PartialBatchFailure(FetchError):
    """A page inside a concurrent batch failed, so the whole fetch is aborted"""

    def __init__(self, page: int, cause: Exception):
        super().__init__(str(cause))
        self.page = page
        self.cause = cause


class FetchCancelled(FetchError):
    """The fetch was superseded by a newer one before it finished"""
