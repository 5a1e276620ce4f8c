from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class ItemCreate(BaseModel):
    name: str
    description: Optional[str] = None
    stock_quantity: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v


class ItemUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v


class ItemStockUpdate(BaseModel):
    stock_quantity: int = Field(ge=0)


class ItemOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    stock_quantity: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
