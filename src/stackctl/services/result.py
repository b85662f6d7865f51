"""ServiceResult and ServiceError — the universal service contract.

INVARIANT: All orchestrator operations return ServiceResult.
The CLI consumes this type; exceptions never cross that boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from stackctl.domain.errors import StackctlError


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    exit_code: int = 1
    detail: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: StackctlError) -> ServiceError:
        return cls(
            code=exc.code,
            message=exc.message,
            exit_code=exc.exit_code,
            detail=exc.detail,
        )


class ServiceResult(BaseModel):
    """Universal return type for orchestrator operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"start"``).
        data: Operation-specific payload on success.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        exit_code: Process exit code the CLI should use.
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    exit_code: int = 0
