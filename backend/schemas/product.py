from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class ProductCreate(BaseModel):
    name: str
    # Only meaningful for products without components
    stock_quantity: Optional[int] = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    stock_quantity: Optional[int] = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v


class ComponentCreate(BaseModel):
    item_id: UUID
    quantity: int = Field(gt=0)


class ComponentUpdate(BaseModel):
    quantity: int = Field(gt=0)


class ComponentOut(BaseModel):
    id: UUID
    product_id: UUID
    item_id: UUID
    item_name: Optional[str] = None
    item_stock: Optional[int] = None
    quantity: int


class ProductOut(BaseModel):
    id: UUID
    name: str
    stock_quantity: Optional[int] = None
    created_at: Optional[datetime] = None
    components: List[ComponentOut] = []
