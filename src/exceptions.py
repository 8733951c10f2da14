"""
Module: exceptions

Purpose: Domain-specific exception hierarchy for the engagement engine.

All exceptions include context information and should be raised instead of returning None.
"""

from typing import Any


class EngagementEngineError(Exception):
    """Base exception for all engagement engine errors."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"


class InvalidRecordError(EngagementEngineError):
    """Raised when a client, event or goal record cannot be used for analysis."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        client_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        if field is not None:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = value
        if client_id is not None:
            ctx["client_id"] = client_id
        super().__init__(message, context=ctx)
        self.field = field
        self.value = value
        self.client_id = client_id


class DataSourceError(EngagementEngineError):
    """Raised when a required upstream data source fails to load."""

    def __init__(
        self,
        message: str,
        *,
        source: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        ctx["source"] = source
        super().__init__(message, context=ctx)
        self.source = source


class InsufficientDataError(EngagementEngineError):
    """Raised when there is insufficient data for analysis."""

    def __init__(
        self,
        message: str,
        *,
        required: int,
        actual: int,
        data_type: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        ctx["required"] = required
        ctx["actual"] = actual
        ctx["data_type"] = data_type
        super().__init__(message, context=ctx)
        self.required = required
        self.actual = actual
        self.data_type = data_type


class ConfigurationError(EngagementEngineError):
    """Raised when engine configuration (e.g. a tier price table) is invalid."""

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        if setting is not None:
            ctx["setting"] = setting
        super().__init__(message, context=ctx)
        self.setting = setting
