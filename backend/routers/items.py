from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Dict
from uuid import UUID

from db.database import get_async_session
from schemas.item import ItemCreate, ItemOut, ItemStockUpdate, ItemUpdate
from services import catalog

router = APIRouter()


@router.get("/", response_model=List[ItemOut])
async def list_items(db: AsyncSession = Depends(get_async_session)):
    """List all items (additionals and component stock)"""
    items = await catalog.list_items(db)
    return [item.to_schema for item in items]


@router.get("/{item_id}", response_model=ItemOut)
async def get_item(item_id: UUID, db: AsyncSession = Depends(get_async_session)):
    item = await catalog.get_item(db, item_id)
    return item.to_schema


@router.get("/{item_id}/products", response_model=List[Dict])
async def get_products_using_item(item_id: UUID, db: AsyncSession = Depends(get_async_session)):
    """Products that consume this item, with the per-unit quantity"""
    return await catalog.get_products_using_item(db, item_id)


@router.post("/", response_model=ItemOut, status_code=status.HTTP_201_CREATED)
async def create_item(payload: ItemCreate, db: AsyncSession = Depends(get_async_session)):
    item = await catalog.create_item(db, payload)
    return item.to_schema


@router.patch("/{item_id}", response_model=ItemOut)
async def update_item(item_id: UUID, payload: ItemUpdate, db: AsyncSession = Depends(get_async_session)):
    item = await catalog.update_item(db, item_id, payload)
    return item.to_schema


@router.put("/{item_id}/stock", response_model=ItemOut)
async def set_item_stock(item_id: UUID, payload: ItemStockUpdate, db: AsyncSession = Depends(get_async_session)):
    """Set an item's stock; products built from it are recomputed"""
    item = await catalog.set_item_stock(db, item_id, payload.stock_quantity)
    return item.to_schema


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(item_id: UUID, db: AsyncSession = Depends(get_async_session)):
    await catalog.delete_item(db, item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
