"""
Custom exception classes for the holder rewards bot.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class HolderRewardsException(Exception):
    """Base exception class for the holder rewards bot."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(HolderRewardsException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class DatabaseError(HolderRewardsException):
    """Raised when there's a database error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class InvalidStatusTransitionError(DatabaseError):
    """Raised when a ledger row would move backwards in its lifecycle."""

    def __init__(self, entity: str, key: Any, current: str, requested: str):
        super().__init__(
            f"Illegal {entity} status transition for {key}: {current} -> {requested}",
            {"entity": entity, "key": key, "current": current, "requested": requested}
        )


class ValidationError(HolderRewardsException):
    """Raised when data validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class InvalidDestinationError(ValidationError):
    """Raised when a payout destination cannot receive a transfer."""

    def __init__(self, destination: str, reason: str):
        super().__init__(
            f"Invalid destination {destination}: {reason}",
            {"destination": destination, "reason": reason}
        )


class NotFoundError(HolderRewardsException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class DistributionNotFoundError(NotFoundError):
    """Raised when a distribution is not found."""

    def __init__(self, distribution_id: str):
        super().__init__(
            f"Distribution not found: {distribution_id}",
            {"distribution_id": distribution_id}
        )


class ExternalServiceError(HolderRewardsException):
    """Raised when an external service error occurs."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "EXTERNAL_SERVICE_ERROR"
    ):
        super().__init__(message, code, details)


class SolanaRPCError(ExternalServiceError):
    """Raised when a Solana RPC call fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "SOLANA_RPC_ERROR")


class TransactionFailedError(SolanaRPCError):
    """Raised when a submitted transaction is confirmed with an error."""

    def __init__(self, signature: str, error: Any):
        super().__init__(
            f"Transaction {signature} failed: {error}",
            {"signature": signature, "error": str(error)}
        )


class HolderIndexError(ExternalServiceError):
    """Raised when the holder index cannot produce a complete account listing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "HOLDER_INDEX_ERROR")


class SwapError(ExternalServiceError):
    """Raised when a swap cannot be quoted or executed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "SWAP_ERROR")
