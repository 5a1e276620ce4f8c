from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from db.database import get_async_session
from schemas.cart import CartRequest
from schemas.constraint import (
    CatalogItemType,
    ConstraintValidationResult,
    ItemConstraintCreate,
    ItemConstraintOut,
    ItemConstraintUpdate,
)
from services import constraints as constraint_service

router = APIRouter()


@router.get("/", response_model=List[ItemConstraintOut])
async def list_constraints(db: AsyncSession = Depends(get_async_session)):
    models = await constraint_service.list_constraints(db)
    return [m.to_schema for m in models]


@router.get("/item/{item_type}/{item_id}", response_model=List[ItemConstraintOut])
async def get_item_constraints(
    item_type: CatalogItemType,
    item_id: UUID,
    db: AsyncSession = Depends(get_async_session),
):
    models = await constraint_service.get_item_constraints(db, item_id, item_type)
    return [m.to_schema for m in models]


@router.post("/validate", response_model=ConstraintValidationResult)
async def validate_cart(payload: CartRequest, db: AsyncSession = Depends(get_async_session)):
    """Check a cart against the registered constraints (no stock is touched)"""
    return await constraint_service.validate_cart(db, payload.lines)


@router.get("/{constraint_id}", response_model=ItemConstraintOut)
async def get_constraint(constraint_id: UUID, db: AsyncSession = Depends(get_async_session)):
    model = await constraint_service.get_constraint(db, constraint_id)
    return model.to_schema


@router.post("/", response_model=ItemConstraintOut, status_code=status.HTTP_201_CREATED)
async def create_constraint(payload: ItemConstraintCreate, db: AsyncSession = Depends(get_async_session)):
    model = await constraint_service.create_constraint(db, payload)
    return model.to_schema


@router.patch("/{constraint_id}", response_model=ItemConstraintOut)
async def update_constraint(
    constraint_id: UUID,
    payload: ItemConstraintUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    model = await constraint_service.update_constraint(db, constraint_id, payload)
    return model.to_schema


@router.delete("/{constraint_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_constraint(constraint_id: UUID, db: AsyncSession = Depends(get_async_session)):
    await constraint_service.delete_constraint(db, constraint_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
