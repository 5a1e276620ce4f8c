"""Derived stock for bill-of-materials products."""

from typing import Iterable, Optional, Tuple

from core.exceptions import ValidationError

# Returned for a product with no components: its stored value is authoritative.
NOT_DERIVED = None


def compute_available(components: Iterable[Tuple[Optional[int], int]]) -> Optional[int]:
    """Units of product buildable from `(item_stock, quantity_per_unit)` pairs.

    MIN(floor(stock_1 / qty_1), ..., floor(stock_n / qty_n)); NOT_DERIVED when
    there are no components.
    """
    available: Optional[int] = NOT_DERIVED
    for item_stock, quantity_per_unit in components:
        if quantity_per_unit is None or quantity_per_unit <= 0:
            raise ValidationError("Component quantity must be greater than zero")
        stock = max(int(item_stock or 0), 0)
        units = stock // quantity_per_unit
        if available is None or units < available:
            available = units
    return available
