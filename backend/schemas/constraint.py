from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator


CatalogItemType = Literal["PRODUCT", "ADDITIONAL"]
ConstraintType = Literal["MUTUALLY_EXCLUSIVE", "REQUIRES"]


class ItemConstraintCreate(BaseModel):
    target_item_id: UUID
    target_item_type: CatalogItemType
    constraint_type: ConstraintType
    related_item_id: UUID
    related_item_type: CatalogItemType
    message: Optional[str] = None

    @field_validator("message")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class ItemConstraintUpdate(BaseModel):
    target_item_id: Optional[UUID] = None
    target_item_type: Optional[CatalogItemType] = None
    constraint_type: Optional[ConstraintType] = None
    related_item_id: Optional[UUID] = None
    related_item_type: Optional[CatalogItemType] = None
    message: Optional[str] = None


class ItemConstraintOut(BaseModel):
    id: UUID
    target_item_id: UUID
    target_item_type: str
    related_item_id: UUID
    related_item_type: str
    constraint_type: str
    message: Optional[str] = None
    created_at: Optional[datetime] = None


class ConstraintValidationResult(BaseModel):
    valid: bool
    violations: List[str]
