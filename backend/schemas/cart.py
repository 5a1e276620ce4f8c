from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CartAdditional(BaseModel):
    additional_id: UUID
    quantity: int = Field(default=1, gt=0)


class CartLine(BaseModel):
    product_id: Optional[UUID] = None
    additional_id: Optional[UUID] = None
    quantity: int = Field(default=1, gt=0)
    additionals: List[CartAdditional] = []


class CartRequest(BaseModel):
    lines: List[CartLine]


class ReserveRequest(BaseModel):
    quantity: int = Field(gt=0)


class ReserveResponse(BaseModel):
    product_id: UUID
    quantity: int
    stock_quantity: Optional[int] = None


class StockCheckResult(BaseModel):
    valid: bool
    errors: List[str]


class CheckoutResult(BaseModel):
    accepted: bool
    # product id -> stock after the order (None when not stock-controlled)
    stock: Dict[UUID, Optional[int]]
