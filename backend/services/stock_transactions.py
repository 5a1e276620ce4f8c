"""
Check-then-decrement of order stock.

A product with components consumes `component.quantity * ordered` units of
every component item; a product without components consumes its own counter
(or nothing, when that counter is NULL). Additionals consume items directly.

One unit of work:
  1. plan the per-counter needs for the whole order (outside any lock)
  2. take the in-process locks for every affected counter and for every item
     of a product sharing a touched item, in sorted order
  3. SELECT ... FOR UPDATE those rows (ordered by id), verify every need
  4. conditional UPDATE ... WHERE stock_quantity >= needed, per counter
  5. recompute derived stock of every product sharing a touched item
  6. commit; any failure (including the timeout) rolls everything back
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.app_logging import get_logger
from core.config import settings
from core.exceptions import (
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
    StockServiceError,
    StockShortage,
    StoreUnavailableError,
    ValidationError,
)
from db.database import Item as ItemModel, Product as ProductModel, ProductComponent as ProductComponentModel
from db.retry import with_retry
from schemas.cart import CartLine, StockCheckResult
from services.stock_calculator import NOT_DERIVED, compute_available
from services.stock_locks import stock_locks

logger = get_logger(__name__)

SCOPE_ATTEMPTS = 3


@dataclass
class _OrderPlan:
    item_needs: Dict[UUID, int] = field(default_factory=lambda: defaultdict(int))
    # zero-component products with their own counter
    product_needs: Dict[UUID, int] = field(default_factory=lambda: defaultdict(int))
    # zero-component products with stock_quantity NULL
    uncontrolled: Set[UUID] = field(default_factory=set)
    ordered_products: List[UUID] = field(default_factory=list)


def _positive(quantity: int, what: str) -> int:
    if quantity is None or int(quantity) <= 0:
        raise ValidationError(f"{what} must be greater than zero")
    return int(quantity)


async def _build_plan(db: AsyncSession, lines: Sequence[CartLine]) -> _OrderPlan:
    if not lines:
        raise ValidationError("Order has no lines")

    product_ids = {line.product_id for line in lines if line.product_id is not None}
    products: Dict[UUID, ProductModel] = {}
    if product_ids:
        res = await db.execute(
            select(ProductModel)
            .options(selectinload(ProductModel.components))
            .where(ProductModel.id.in_(product_ids))
        )
        products = {p.id: p for p in res.scalars().all()}

    plan = _OrderPlan()
    for line in lines:
        qty = _positive(line.quantity, "Quantity")
        if line.product_id is None and line.additional_id is None and not line.additionals:
            raise ValidationError("Cart line references no product or additional")

        if line.product_id is not None:
            product = products.get(line.product_id)
            if product is None:
                raise NotFoundError(f"Product {line.product_id} not found")
            if line.product_id not in plan.ordered_products:
                plan.ordered_products.append(line.product_id)

            if product.components:
                for component in product.components:
                    plan.item_needs[component.item_id] += _positive(component.quantity, "Component quantity") * qty
            elif product.stock_quantity is None:
                plan.uncontrolled.add(product.id)
            else:
                plan.product_needs[product.id] += qty

        if line.additional_id is not None:
            plan.item_needs[line.additional_id] += qty
        for additional in line.additionals:
            plan.item_needs[additional.additional_id] += _positive(additional.quantity, "Additional quantity")

    return plan


async def component_scope(db: AsyncSession, item_ids: Iterable[UUID]) -> Set[UUID]:
    """`item_ids` plus every item of a product that uses one of them.

    This is exactly the set of item rows read when the products using
    `item_ids` are recomputed.
    """
    item_ids = set(item_ids)
    if not item_ids:
        return set()
    users = select(ProductComponentModel.product_id).where(ProductComponentModel.item_id.in_(item_ids))
    res = await db.execute(
        select(ProductComponentModel.item_id).where(ProductComponentModel.product_id.in_(users)).distinct()
    )
    return item_ids | {row[0] for row in res.all()}


@asynccontextmanager
async def hold_stock(
    db: AsyncSession, item_ids: Iterable[UUID], product_ids: Iterable[UUID] = ()
) -> AsyncIterator[Set[UUID]]:
    """Hold the in-process locks for the component scope of `item_ids` and for `product_ids`.

    Yields the locked item ids. Component membership is read again once the
    locks are held; when it grew while waiting, the locks are taken again
    over the larger scope.
    """
    item_ids = set(item_ids)
    product_keys = [("product", pid) for pid in set(product_ids)]
    for _attempt in range(SCOPE_ATTEMPTS):
        scope = await component_scope(db, item_ids)
        async with stock_locks.hold([("item", iid) for iid in scope] + product_keys):
            if await component_scope(db, item_ids) <= scope:
                yield scope
                return
        logger.info("component membership changed while locking", extra={"items": sorted(map(str, item_ids))})
    raise ConcurrencyConflictError("Product components kept changing while acquiring stock locks")


async def _locked_rows(db: AsyncSession, model, ids: Iterable[UUID]) -> Dict[UUID, object]:
    ids = sorted(set(ids), key=str)
    if not ids:
        return {}
    res = await db.execute(
        select(model)
        .where(model.id.in_(ids))
        .order_by(model.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {row.id: row for row in res.scalars().all()}


async def lock_stock_rows(
    db: AsyncSession, item_ids: Iterable[UUID], product_ids: Iterable[UUID] = ()
) -> Tuple[Dict[UUID, ItemModel], Dict[UUID, ProductModel]]:
    """SELECT ... FOR UPDATE the item rows, then the product rows, each ordered by id."""
    items = await _locked_rows(db, ItemModel, item_ids)
    products = await _locked_rows(db, ProductModel, product_ids)
    return items, products


async def _check_plan(
    db: AsyncSession, plan: _OrderPlan, locked_items: Optional[Iterable[UUID]] = None
) -> tuple:
    if locked_items is not None:
        items, products = await lock_stock_rows(db, set(locked_items) | set(plan.item_needs), plan.product_needs)
    else:
        items, products = {}, {}
        if plan.item_needs:
            res = await db.execute(select(ItemModel).where(ItemModel.id.in_(list(plan.item_needs))))
            items = {it.id: it for it in res.scalars().all()}
        if plan.product_needs:
            res = await db.execute(select(ProductModel).where(ProductModel.id.in_(list(plan.product_needs))))
            products = {p.id: p for p in res.scalars().all()}

    missing = [iid for iid in plan.item_needs if iid not in items]
    if missing:
        raise NotFoundError(f"Item {missing[0]} not found")

    shortages: List[StockShortage] = []
    for iid in sorted(plan.item_needs, key=str):
        needed = plan.item_needs[iid]
        item = items[iid]
        available = int(item.stock_quantity or 0)
        if available < needed:
            shortages.append(StockShortage(item_id=iid, item_name=item.name, available=available, required=needed))
    for pid in sorted(plan.product_needs, key=str):
        needed = plan.product_needs[pid]
        product = products.get(pid)
        if product is None:
            raise NotFoundError(f"Product {pid} not found")
        available = int(product.stock_quantity or 0)
        if available < needed:
            shortages.append(StockShortage(item_id=pid, item_name=product.name, available=available, required=needed))
    return items, products, shortages


async def _derived_stock(db: AsyncSession, product_ids: Iterable[UUID]) -> Dict[UUID, Optional[int]]:
    product_ids = list(set(product_ids))
    if not product_ids:
        return {}
    res = await db.execute(
        select(ProductComponentModel.product_id, ItemModel.stock_quantity, ProductComponentModel.quantity)
        .join(ItemModel, ItemModel.id == ProductComponentModel.item_id)
        .where(ProductComponentModel.product_id.in_(product_ids))
    )
    pairs: Dict[UUID, list] = defaultdict(list)
    for product_id, item_stock, quantity in res.all():
        pairs[product_id].append((item_stock, quantity))
    return {pid: compute_available(pairs.get(pid, [])) for pid in product_ids}


async def recompute_product_stock(db: AsyncSession, product_id: UUID, *, commit: bool = True) -> Optional[int]:
    """Refresh one product's cached stock; a product without components keeps its stored value.

    The caller holds the locks for the product's items (see hold_stock).
    """
    product = await db.get(ProductModel, product_id, populate_existing=True)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")

    derived = (await _derived_stock(db, [product_id]))[product_id]
    if derived is NOT_DERIVED:
        return product.stock_quantity

    await db.execute(
        update(ProductModel).where(ProductModel.id == product_id).values(stock_quantity=derived)
    )
    if commit:
        await db.commit()
    return derived


async def recompute_products_using_items(
    db: AsyncSession, item_ids: Iterable[UUID], *, commit: bool = True
) -> Dict[UUID, Optional[int]]:
    """Refresh the cached stock of every product with a component among `item_ids`.

    The caller holds the locks for component_scope(item_ids).
    """
    item_ids = list(set(item_ids))
    if not item_ids:
        return {}
    res = await db.execute(
        select(ProductComponentModel.product_id)
        .where(ProductComponentModel.item_id.in_(item_ids))
        .distinct()
    )
    product_ids = [row[0] for row in res.all()]

    derived = await _derived_stock(db, product_ids)
    for pid in sorted(derived, key=str):
        await db.execute(
            update(ProductModel).where(ProductModel.id == pid).values(stock_quantity=derived[pid])
        )
    if commit:
        await db.commit()
    return derived


async def _apply_plan(db: AsyncSession, plan: _OrderPlan, scope: Set[UUID]) -> Dict[UUID, Optional[int]]:
    items, products, shortages = await _check_plan(db, plan, locked_items=scope)
    if shortages:
        raise InsufficientStockError(shortages)

    # Snapshot before the UPDATEs: session synchronization rewrites the loaded rows.
    item_before = {iid: (items[iid].name, int(items[iid].stock_quantity)) for iid in plan.item_needs}
    product_before = {pid: (p.name, int(p.stock_quantity)) for pid, p in products.items()}

    new_item_stock: Dict[UUID, int] = {}
    for iid in sorted(plan.item_needs, key=str):
        needed = plan.item_needs[iid]
        res = await db.execute(
            update(ItemModel)
            .where(ItemModel.id == iid, ItemModel.stock_quantity >= needed)
            .values(stock_quantity=ItemModel.stock_quantity - needed)
        )
        if res.rowcount != 1:
            raise ConcurrencyConflictError(f"Stock for item {iid} changed during the order", item_id=iid)
        new_item_stock[iid] = item_before[iid][1] - needed

    new_product_stock: Dict[UUID, Optional[int]] = {}
    for pid in sorted(plan.product_needs, key=str):
        needed = plan.product_needs[pid]
        res = await db.execute(
            update(ProductModel)
            .where(ProductModel.id == pid, ProductModel.stock_quantity >= needed)
            .values(stock_quantity=ProductModel.stock_quantity - needed)
        )
        if res.rowcount != 1:
            raise ConcurrencyConflictError(f"Stock for product {pid} changed during the order", item_id=pid)
        new_product_stock[pid] = product_before[pid][1] - needed

    new_product_stock.update(await recompute_products_using_items(db, new_item_stock, commit=False))
    await db.commit()

    _log_low_stock("item", {iid: (item_before[iid][0], s) for iid, s in new_item_stock.items()})
    _log_low_stock(
        "product",
        {pid: (product_before[pid][0], s) for pid, s in new_product_stock.items() if pid in product_before},
    )
    return new_product_stock


def _log_low_stock(kind: str, levels: Dict[UUID, tuple]) -> None:
    for entity_id, (name, stock) in levels.items():
        if stock is None:
            continue
        if stock == 0:
            logger.warning("critical stock", extra={"type": kind, "id": entity_id, "name": name, "stock": stock})
        elif stock <= settings.low_stock_threshold:
            logger.warning(
                "low stock",
                extra={
                    "type": kind,
                    "id": entity_id,
                    "name": name,
                    "stock": stock,
                    "threshold": settings.low_stock_threshold,
                },
            )


async def decrement_order_stock(db: AsyncSession, lines: Sequence[CartLine]) -> Dict[UUID, Optional[int]]:
    """Decrement stock for a whole order, all or nothing.

    Returns the stock of every ordered product after the decrement (None for
    products that are not stock-controlled). Raises InsufficientStockError
    with every shortage when any counter is short; nothing is written then.

    Any failure rolls back `db`, which expires every object loaded through
    it: callers keep plain ids, not ORM instances, across a failed call.
    """
    try:
        plan = await _build_plan(db, lines)
        async with hold_stock(db, plan.item_needs, plan.product_needs) as scope:
            try:
                new_stock = await asyncio.wait_for(
                    _apply_plan(db, plan, scope), timeout=settings.store_timeout_seconds
                )
            except Exception:
                await db.rollback()
                raise
    except asyncio.TimeoutError as e:
        logger.error("stock decrement timed out", extra={"lines": len(lines)})
        raise StoreUnavailableError(
            f"Stock decrement exceeded {settings.store_timeout_seconds}s and was rolled back", cause=e
        ) from e
    except StockServiceError as e:
        await db.rollback()
        logger.info("stock decrement rejected", extra={"error": e.code, "detail": e.message})
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("stock decrement failed", extra={"error": repr(e)})
        raise StoreUnavailableError(f"Failed to decrement stock: {e}", cause=e) from e

    logger.info(
        "stock decremented",
        extra={"products": plan.ordered_products, "items": {str(k): v for k, v in plan.item_needs.items()}},
    )
    out: Dict[UUID, Optional[int]] = {}
    for pid in plan.ordered_products:
        out[pid] = None if pid in plan.uncontrolled else new_stock.get(pid)
    return out


async def reserve_and_decrement(db: AsyncSession, product_id: UUID, quantity: int) -> Optional[int]:
    """Decrement `quantity` units of one product; returns its new stock."""
    qty = _positive(quantity, "Quantity")
    new_stock = await decrement_order_stock(db, [CartLine(product_id=product_id, quantity=qty)])
    return new_stock[product_id]


async def validate_order_stock(db: AsyncSession, lines: Sequence[CartLine]) -> StockCheckResult:
    """Non-mutating sufficiency check for a cart."""

    async def _shortages():
        plan = await _build_plan(db, lines)
        return (await _check_plan(db, plan))[2]

    try:
        shortages = await with_retry(_shortages, session=db)
    except SQLAlchemyError as e:
        await db.rollback()
        raise StoreUnavailableError(f"Failed to check order stock: {e}", cause=e) from e
    return StockCheckResult(valid=not shortages, errors=[s.describe() for s in shortages])
