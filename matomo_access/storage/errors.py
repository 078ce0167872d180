"""Exceptions for the durable stores."""


class StorageError(Exception):
    """Base exception for durable store failures."""


class StoreConnectionError(StorageError):
    """Raised when the database is used before connect() or after close()."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)
