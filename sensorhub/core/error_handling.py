"""
Centralized Error Handling
Custom exceptions and error handling utilities for SensorHub
"""
import functools
import logging
from typing import Optional, Dict, Any
from enum import Enum

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """Standard error codes for the application"""
    # Control plane errors (1xxx)
    INVALID_SENSOR_TYPE = 1001
    INVALID_ARGUMENT = 1002

    # Telemetry pipeline errors (2xxx)
    TICK_FAILURE = 2001

    # External sink errors (3xxx)
    SINK_WRITE_FAILURE = 3001

    # System errors (9xxx)
    CONFIGURATION_ERROR = 9001
    UNKNOWN_ERROR = 9999


class SensorHubError(Exception):
    """
    Base exception for SensorHub errors.

    All custom exceptions should inherit from this class.
    """

    # Errors caused by the caller's input are reported as client errors
    client_error = False

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize exception.

        Args:
            message: Error message
            error_code: Error code enum
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or ErrorCode.UNKNOWN_ERROR
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary"""
        return {
            'error': self.__class__.__name__,
            'message': self.message,
            'error_code': self.error_code.value,
            'error_name': self.error_code.name,
            'details': self.details
        }


# Control plane exceptions
class InvalidSensorTypeError(SensorHubError):
    """Unknown sensor type referenced by a caller"""
    client_error = True

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_SENSOR_TYPE, details)


class InvalidArgumentError(SensorHubError):
    """Missing or inconsistent request argument"""
    client_error = True

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_ARGUMENT, details)


# Pipeline exceptions
class TickError(SensorHubError):
    """Unexpected failure inside one telemetry tick"""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.TICK_FAILURE, details)


class SinkWriteError(SensorHubError):
    """Durable alert write failed"""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SINK_WRITE_FAILURE, details)


# Configuration exception
class ConfigurationError(SensorHubError):
    """Configuration error"""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


# Async error handler decorator
def handle_errors_async(
    default_return=None,
    log_error: bool = True,
    raise_on_error: bool = False
):
    """
    Decorator for async error handling.

    Example:
        @handle_errors_async(default_return=False, log_error=True)
        async def write_alert(self, alert):
            ...
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except SensorHubError as e:
                if log_error:
                    logger.error(
                        f"Error in {func.__name__}: {e.message}",
                        extra={'error_code': e.error_code.name, 'details': e.details}
                    )
                if raise_on_error:
                    raise
                return default_return
            except Exception as e:
                if log_error:
                    logger.exception(f"Unexpected error in {func.__name__}: {e}")
                if raise_on_error:
                    raise
                return default_return
        return wrapper
    return decorator
