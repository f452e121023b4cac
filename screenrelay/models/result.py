"""
Structured result model for routed operations.

Every router operation returns a ``RelayResult`` instead of raising, so the
host boundary never sees provider-specific shapes or exception objects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from screenrelay.core.errors import RelayError


class RelayResult(BaseModel):
    """Uniform outcome of an initialize/send/close call."""

    ok: bool = Field(..., description="Whether the operation succeeded")
    data: Any = Field(None, description="Result data (if ok=True)")
    error: str | None = Field(None, description="Human-readable error (if ok=False)")
    error_kind: str | None = Field(None, description="Error classification")

    def to_wire(self) -> dict[str, Any]:
        """Convert to the ``{success, data?, error?}`` shape of the host boundary."""
        if self.ok:
            wire: dict[str, Any] = {"success": True}
            if self.data is not None:
                wire["data"] = self.data
            return wire
        return {"success": False, "error": self.error or "Unknown error"}

    @classmethod
    def success(cls, data: Any = None) -> "RelayResult":
        """Create a success result."""
        return cls(ok=True, data=data)

    @classmethod
    def fail(cls, error: str, error_kind: str | None = None) -> "RelayResult":
        """Create a failure result."""
        return cls(ok=False, error=error, error_kind=error_kind)

    @classmethod
    def from_error(cls, error: "RelayError") -> "RelayResult":
        """Create a failure result from a classified error."""
        return cls(ok=False, error=str(error), error_kind=error.kind.value)
