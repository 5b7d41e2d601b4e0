"""Result envelope for administrative operations."""

from typing import Any

from pydantic import BaseModel


class AdminResult(BaseModel):
    """HTTP-shaped outcome of an admin call.

    `status_code` follows HTTP semantics (200, 201, 400, 404, 409, 500) so a
    routing layer can pass it through unchanged.
    """

    success: bool
    status_code: int = 200
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None, status_code: int = 200) -> "AdminResult":
        return cls(success=True, status_code=status_code, data=data)

    @classmethod
    def fail(cls, status_code: int, error: str) -> "AdminResult":
        return cls(success=False, status_code=status_code, error=error)

    def body(self) -> dict[str, Any]:
        """Response body: the data on success, {"error": ...} otherwise."""
        if self.success:
            return self.data if isinstance(self.data, dict) else {"data": self.data}
        return {"error": self.error}
