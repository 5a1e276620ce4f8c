from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Dict
from uuid import UUID

from db.database import get_async_session, Product as ProductModel
from schemas.product import ComponentCreate, ComponentOut, ComponentUpdate, ProductCreate, ProductOut, ProductUpdate
from services import catalog

router = APIRouter()


def _serialize_product(p: ProductModel) -> Dict:
    return {
        **p.to_schema,
        "components": [c.to_schema for c in (p.components or [])],
    }


@router.get("/", response_model=List[ProductOut])
async def list_products(db: AsyncSession = Depends(get_async_session)):
    products = await catalog.list_products(db)
    return [_serialize_product(p) for p in products]


@router.get("/{product_id}", response_model=ProductOut)
async def get_product(product_id: UUID, db: AsyncSession = Depends(get_async_session)):
    product = await catalog.get_product(db, product_id)
    return _serialize_product(product)


@router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(payload: ProductCreate, db: AsyncSession = Depends(get_async_session)):
    product = await catalog.create_product(db, payload)
    return _serialize_product(product)


@router.patch("/{product_id}", response_model=ProductOut)
async def update_product(product_id: UUID, payload: ProductUpdate, db: AsyncSession = Depends(get_async_session)):
    product = await catalog.update_product(db, product_id, payload)
    return _serialize_product(product)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(product_id: UUID, db: AsyncSession = Depends(get_async_session)):
    await catalog.delete_product(db, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{product_id}/recompute", response_model=Dict)
async def recompute_stock(product_id: UUID, db: AsyncSession = Depends(get_async_session)):
    """Recompute the cached stock from the current component stock"""
    stock = await catalog.recompute_stock(db, product_id)
    return {"product_id": product_id, "stock_quantity": stock}


@router.get("/{product_id}/components", response_model=List[ComponentOut])
async def list_components(product_id: UUID, db: AsyncSession = Depends(get_async_session)):
    components = await catalog.list_components(db, product_id)
    return [c.to_schema for c in components]


@router.post("/{product_id}/components", response_model=ComponentOut, status_code=status.HTTP_201_CREATED)
async def add_component(product_id: UUID, payload: ComponentCreate, db: AsyncSession = Depends(get_async_session)):
    component = await catalog.add_component(db, product_id, payload)
    return component.to_schema


@router.patch("/components/{component_id}", response_model=ComponentOut)
async def update_component(component_id: UUID, payload: ComponentUpdate, db: AsyncSession = Depends(get_async_session)):
    component = await catalog.update_component(db, component_id, payload.quantity)
    return component.to_schema


@router.delete("/components/{component_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_component(component_id: UUID, db: AsyncSession = Depends(get_async_session)):
    await catalog.remove_component(db, component_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
