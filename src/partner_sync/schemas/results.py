"""Result envelopes returned by every public sync/fetch operation.

Callers (the HTTP layer, the CLI script) receive either
``ServiceResult(success=True, data=...)`` or
``ServiceResult(success=False, error=ServiceError(...))`` and map them onto
their own transport.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ServiceError(BaseModel):
    """Machine-readable failure description."""

    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Uniform ``{success, data}`` / ``{success: false, error}`` shape."""

    success: bool
    data: Any = None
    error: ServiceError | None = None

    @classmethod
    def ok(cls, data: Any = None) -> ServiceResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        data: Any = None,
        **details: Any,
    ) -> ServiceResult:
        return cls(
            success=False,
            data=data,
            error=ServiceError(code=code, message=message, details=details),
        )
