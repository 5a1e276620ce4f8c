"""
Catalog administration: items, products and their components.

Every change that can move a derived stock value (item stock edit,
component add/update/remove) recomputes the affected products in the same
commit, under the stock locks of every item the recompute reads.
"""

from typing import List, Optional, Set
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.app_logging import get_logger
from core.exceptions import NotFoundError, ValidationError
from db.database import Item as ItemModel, Product as ProductModel, ProductComponent as ProductComponentModel
from schemas.item import ItemCreate, ItemUpdate
from schemas.product import ComponentCreate, ProductCreate, ProductUpdate
from services.stock_transactions import (
    hold_stock,
    lock_stock_rows,
    recompute_product_stock,
    recompute_products_using_items,
)

logger = get_logger(__name__)


# Items

async def create_item(db: AsyncSession, payload: ItemCreate) -> ItemModel:
    model = ItemModel(name=payload.name, description=payload.description, stock_quantity=payload.stock_quantity)
    db.add(model)
    await db.commit()
    await db.refresh(model)
    return model


async def get_item(db: AsyncSession, item_id: UUID) -> ItemModel:
    model = await db.get(ItemModel, item_id, populate_existing=True)
    if model is None:
        raise NotFoundError(f"Item {item_id} not found")
    return model


async def list_items(db: AsyncSession) -> List[ItemModel]:
    res = await db.execute(select(ItemModel).order_by(func.lower(ItemModel.name).asc()))
    return list(res.scalars().all())


async def update_item(db: AsyncSession, item_id: UUID, payload: ItemUpdate) -> ItemModel:
    model = await get_item(db, item_id)
    if payload.name is not None:
        model.name = payload.name
    if payload.description is not None:
        model.description = payload.description
    await db.commit()
    await db.refresh(model)
    return model


async def set_item_stock(db: AsyncSession, item_id: UUID, stock_quantity: int) -> ItemModel:
    """Administrative stock edit (restock, count correction)."""
    if stock_quantity is None or stock_quantity < 0:
        raise ValidationError("Stock quantity cannot be negative")

    async with hold_stock(db, [item_id]) as scope:
        await lock_stock_rows(db, scope)
        model = await get_item(db, item_id)
        model.stock_quantity = int(stock_quantity)
        await db.flush()
        await recompute_products_using_items(db, [item_id], commit=False)
        await db.commit()

    logger.info("item stock set", extra={"item_id": item_id, "stock": stock_quantity})
    await db.refresh(model)
    return model


async def delete_item(db: AsyncSession, item_id: UUID) -> None:
    async with hold_stock(db, [item_id]):
        model = await get_item(db, item_id)
        used = (
            await db.execute(
                select(func.count()).select_from(ProductComponentModel).where(ProductComponentModel.item_id == item_id)
            )
        ).scalar_one()
        if used:
            raise ValidationError("Cannot delete an item that is used by products")
        await db.delete(model)
        await db.commit()


# Products

async def create_product(db: AsyncSession, payload: ProductCreate) -> ProductModel:
    model = ProductModel(name=payload.name, stock_quantity=payload.stock_quantity)
    db.add(model)
    await db.commit()
    return await get_product(db, model.id)


async def get_product(db: AsyncSession, product_id: UUID) -> ProductModel:
    res = await db.execute(
        select(ProductModel)
        .options(selectinload(ProductModel.components).selectinload(ProductComponentModel.item))
        .where(ProductModel.id == product_id)
        .execution_options(populate_existing=True)
    )
    model = res.scalar_one_or_none()
    if model is None:
        raise NotFoundError(f"Product {product_id} not found")
    return model


async def list_products(db: AsyncSession) -> List[ProductModel]:
    res = await db.execute(
        select(ProductModel)
        .options(selectinload(ProductModel.components).selectinload(ProductComponentModel.item))
        .order_by(func.lower(ProductModel.name).asc())
    )
    return list(res.scalars().all())


async def _product_item_ids(db: AsyncSession, product_id: UUID) -> Set[UUID]:
    res = await db.execute(
        select(ProductComponentModel.item_id).where(ProductComponentModel.product_id == product_id)
    )
    return {row[0] for row in res.all()}


async def update_product(db: AsyncSession, product_id: UUID, payload: ProductUpdate) -> ProductModel:
    async with hold_stock(db, (), [product_id]):
        model = await get_product(db, product_id)
        if payload.stock_quantity is not None and model.components:
            raise ValidationError("Stock of a product with components is derived from its items")
        if payload.name is not None:
            model.name = payload.name
        if payload.stock_quantity is not None:
            model.stock_quantity = payload.stock_quantity
        await db.commit()
    return await get_product(db, product_id)


async def recompute_stock(db: AsyncSession, product_id: UUID) -> Optional[int]:
    """Recompute one product's cached stock under its stock locks."""
    await get_product(db, product_id)
    async with hold_stock(db, await _product_item_ids(db, product_id), [product_id]) as scope:
        await lock_stock_rows(db, scope, [product_id])
        return await recompute_product_stock(db, product_id)


async def delete_product(db: AsyncSession, product_id: UUID) -> None:
    async with hold_stock(db, await _product_item_ids(db, product_id), [product_id]):
        model = await get_product(db, product_id)
        await db.delete(model)
        await db.commit()


# Components

async def list_components(db: AsyncSession, product_id: UUID) -> List[ProductComponentModel]:
    await get_product(db, product_id)
    res = await db.execute(
        select(ProductComponentModel)
        .options(selectinload(ProductComponentModel.item))
        .where(ProductComponentModel.product_id == product_id)
        .order_by(ProductComponentModel.created_at.asc())
    )
    return list(res.scalars().all())


async def _get_component(db: AsyncSession, component_id: UUID) -> ProductComponentModel:
    res = await db.execute(
        select(ProductComponentModel)
        .options(selectinload(ProductComponentModel.item))
        .where(ProductComponentModel.id == component_id)
        .execution_options(populate_existing=True)
    )
    model = res.scalar_one_or_none()
    if model is None:
        raise NotFoundError(f"Component {component_id} not found")
    return model


async def add_component(db: AsyncSession, product_id: UUID, payload: ComponentCreate) -> ProductComponentModel:
    if payload.quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    await get_product(db, product_id)
    await get_item(db, payload.item_id)

    item_ids = await _product_item_ids(db, product_id) | {payload.item_id}
    async with hold_stock(db, item_ids, [product_id]) as scope:
        existing = (
            await db.execute(
                select(ProductComponentModel).where(
                    ProductComponentModel.product_id == product_id,
                    ProductComponentModel.item_id == payload.item_id,
                )
            )
        ).scalar_one_or_none()
        if existing:
            raise ValidationError("This item is already a component of the product")

        await lock_stock_rows(db, scope, [product_id])
        model = ProductComponentModel(product_id=product_id, item_id=payload.item_id, quantity=payload.quantity)
        db.add(model)
        await db.flush()
        await recompute_product_stock(db, product_id, commit=False)
        await db.commit()

    logger.info("component added", extra={"product_id": product_id, "item_id": payload.item_id})
    return await _get_component(db, model.id)


async def update_component(db: AsyncSession, component_id: UUID, quantity: int) -> ProductComponentModel:
    if quantity is None or quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    product_id = (await _get_component(db, component_id)).product_id

    async with hold_stock(db, await _product_item_ids(db, product_id), [product_id]) as scope:
        await lock_stock_rows(db, scope, [product_id])
        model = await _get_component(db, component_id)
        model.quantity = quantity
        await db.flush()
        await recompute_product_stock(db, product_id, commit=False)
        await db.commit()
    return await _get_component(db, component_id)


async def remove_component(db: AsyncSession, component_id: UUID) -> None:
    """Remove a component; after the last one the product keeps its last derived value as its own stock."""
    product_id = (await _get_component(db, component_id)).product_id

    async with hold_stock(db, await _product_item_ids(db, product_id), [product_id]) as scope:
        await lock_stock_rows(db, scope, [product_id])
        model = await _get_component(db, component_id)
        await db.delete(model)
        await db.flush()
        await recompute_product_stock(db, product_id, commit=False)
        await db.commit()


async def get_products_using_item(db: AsyncSession, item_id: UUID) -> List[dict]:
    await get_item(db, item_id)
    res = await db.execute(
        select(ProductModel, ProductComponentModel.quantity)
        .join(ProductComponentModel, ProductComponentModel.product_id == ProductModel.id)
        .where(ProductComponentModel.item_id == item_id)
        .order_by(func.lower(ProductModel.name).asc())
    )
    return [
        {**product.to_schema, "component_quantity": quantity}
        for product, quantity in res.all()
    ]
