"""Domain errors raised by the stock and constraint services.

Routers translate these into HTTP responses (see main.py); every error
carries a `to_dict()` payload with enough detail to render a user-facing
message.
"""

from dataclasses import asdict, dataclass
from typing import List, Optional
from uuid import UUID


class StockServiceError(Exception):
    code = "STOCK_SERVICE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class ValidationError(StockServiceError):
    """Bad input: unknown ids, non-positive quantities, duplicates."""

    code = "VALIDATION_ERROR"


class NotFoundError(ValidationError):
    code = "NOT_FOUND"


class ConstraintViolation(StockServiceError):
    code = "CONSTRAINT_VIOLATION"

    def __init__(self, violations: List[str]):
        super().__init__("; ".join(violations) or "Cart violates item constraints")
        self.violations = list(violations)

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["violations"] = self.violations
        return out


@dataclass
class StockShortage:
    item_id: UUID
    item_name: str
    available: int
    required: int

    def describe(self) -> str:
        return (
            f"Insufficient stock for {self.item_name}. "
            f"Available: {self.available}, Required: {self.required}"
        )


class InsufficientStockError(StockServiceError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, shortages: List[StockShortage]):
        super().__init__("; ".join(s.describe() for s in shortages))
        self.shortages = list(shortages)

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["shortages"] = [asdict(s) for s in self.shortages]
        return out


class StoreUnavailableError(StockServiceError):
    code = "STORE_UNAVAILABLE"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ConcurrencyConflictError(StockServiceError):
    """A conditional decrement matched no row; retry the whole unit from a fresh read."""

    code = "CONCURRENCY_CONFLICT"

    def __init__(self, message: str, item_id: Optional[UUID] = None):
        super().__init__(message)
        self.item_id = item_id

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["item_id"] = self.item_id
        return out
