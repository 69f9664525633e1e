"""Custom exceptions for the ShopSense engine.

Defines the typed failures raised by the forecasting, recommendation and
demand components. Each carries an HTTP status code so the API layer can
render it without a lookup table.
"""

from typing import Any, Dict, Optional


class ShopSenseError(Exception):
    """Base exception for ShopSense errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class InsufficientDataError(ShopSenseError):
    """Raised when a history is too short for the required window."""

    def __init__(self, required: int, actual: int, what: str = "history"):
        message = (
            f"Insufficient {what}: need more than {required} points, got {actual}"
        )
        super().__init__(
            message=message,
            status_code=422,
            details={"required": required, "actual": actual},
        )


class ScalingError(ShopSenseError):
    """Raised when scaler params are missing, mismatched or degenerate."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=500, details=details)


class ModelUnavailableError(ShopSenseError):
    """Raised when no trained regressor exists and none could be trained."""

    def __init__(self, model_name: str, reason: str):
        message = f"Model '{model_name}' is unavailable: {reason}"
        super().__init__(
            message=message,
            status_code=503,
            details={"model_name": model_name, "reason": reason},
        )


class EngineTimeoutError(ShopSenseError, TimeoutError):
    """Raised when an operation exceeds the caller's deadline."""

    def __init__(self, operation: str, timeout: float):
        message = f"Operation '{operation}' exceeded its {timeout:.3f}s deadline"
        super().__init__(
            message=message,
            status_code=504,
            details={"operation": operation, "timeout": timeout},
        )


class InvalidInputError(ShopSenseError):
    """Raised for malformed inputs or mismatched feature vectors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=400, details=details)
