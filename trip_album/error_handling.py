"""
Error handling and logging infrastructure for Trip Album.
"""

import logging
import os
import sys
from typing import Optional
from pathlib import Path

# Configure logging
def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Setup logging configuration for the trip engine.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
    """
    logger = logging.getLogger('trip_album')
    logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger

# Global logger instance
logger = setup_logging(
    os.getenv("TRIP_ALBUM_LOG_LEVEL", "INFO"),
    os.getenv("TRIP_ALBUM_LOG_FILE") or None,
)

class TripAlbumError(Exception):
    """Base exception class for Trip Album errors."""
    pass

class InvalidInput(TripAlbumError):
    """Raised for empty or invalid photo id sets and bad thresholds."""
    pass

class NotFound(TripAlbumError):
    """Raised when a referenced trip or photo does not exist."""
    pass

class Forbidden(TripAlbumError):
    """Raised when a record belongs to a different owner."""
    pass

class DatabaseError(TripAlbumError):
    """Exception raised by the stores for database operation errors."""
    pass

class StoreFailure(TripAlbumError):
    """
    A persistence error surfaced from a multi-step trip operation.

    Attributes:
        step: Name of the write or read that failed (e.g. "insert_trip")
        cause: The underlying store error
    """

    def __init__(self, message: str, step: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.step = step
        self.cause = cause

    def __str__(self):
        base = super().__str__()
        if self.cause is not None:
            return f"{base} (step={self.step}: {self.cause})"
        return f"{base} (step={self.step})"

def handle_error(error: Exception, context: str = "", raise_error: bool = True):
    """
    Handle and log errors consistently.

    Args:
        error: The exception that occurred
        context: Additional context about where the error occurred
        raise_error: Whether to re-raise the error after logging
    """
    error_msg = f"Error in {context}: {str(error)}" if context else f"Error: {str(error)}"
    logger.error(error_msg, exc_info=error)

    if raise_error:
        raise error
