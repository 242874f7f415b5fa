"""
Service layer custom exceptions.

Riot API transport errors live in ``core.riot_api.errors``; these cover the
collection pipeline and the stats store.
"""

from typing import Any, Dict, Optional


class ServiceException(Exception):
    """Base exception for all service layer errors."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.service = service
        self.operation = operation
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        if self.service and self.operation:
            return f"[{self.service}.{self.operation}] {self.message}"
        return self.message


class MalformedTelemetry(ServiceException):
    """A match or timeline payload had an unexpected shape; the item is skipped."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            service="Aggregator",
            operation="extract_telemetry",
            context=context,
        )


class CheckpointMismatch(ServiceException):
    """A stored checkpoint was written for different job parameters."""

    def __init__(
        self,
        message: str,
        expected: Optional[Dict[str, Any]] = None,
        found: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            service="CollectionJob",
            operation="resume",
            context={"expected": expected or {}, "found": found or {}},
        )


class DatabaseError(ServiceException):
    """Exception raised for stats store errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            service="MatchupStatsStore",
            operation=operation,
            context=context,
            original_error=original_error,
        )
