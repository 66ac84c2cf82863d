"""Custom exception classes for the application."""


class BrickDealsException(Exception):
    """Base exception for all brickdeals errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class InvalidInputError(BrickDealsException):
    """Raised for a missing or unsupported target URL. Never retried."""

    def __init__(self, value: object, reason: str = "unsupported URL"):
        self.value = value
        super().__init__(f"Invalid input {value!r}: {reason}")


class ScrapeAttemptError(BrickDealsException):
    """Base class for failures that only fail the current scrape attempt."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Scrape attempt failed for {url}: {message}")


class NavigationError(ScrapeAttemptError):
    """Raised when a page fails to load or render within its timeout."""


class ZeroResultExtractionError(ScrapeAttemptError):
    """Raised when a listing page yields no candidate records."""

    def __init__(self, url: str):
        super().__init__(url, "listing page yielded no candidate records")


class PersistenceError(BrickDealsException):
    """Base class for store failures. Always surfaced to the caller."""


class PersistenceWriteError(PersistenceError):
    """Raised when the deal store cannot be written."""

    def __init__(self, target: str, message: str):
        self.target = target
        super().__init__(f"Failed to write deal store {target}: {message}")


class StoreReadError(PersistenceError):
    """Raised when an existing deal store cannot be read back."""

    def __init__(self, target: str, message: str):
        self.target = target
        super().__init__(f"Failed to read deal store {target}: {message}")
