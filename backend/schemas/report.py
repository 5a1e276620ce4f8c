from typing import List, Literal
from uuid import UUID

from pydantic import BaseModel


class LowStockItem(BaseModel):
    id: UUID
    name: str
    type: Literal["product", "additional"]
    current_stock: int
    threshold: int


class StockReport(BaseModel):
    low_stock_items: List[LowStockItem]
    total_products: int
    total_additionals: int
    products_out_of_stock: int
    additionals_out_of_stock: int


class StockAlerts(BaseModel):
    has_critical: bool
    items: List[LowStockItem]
