"""Read-only stock views: low stock, critical (zero) stock, alert check.

Every query goes through with_retry; these reads are safe to repeat.
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from db.database import Item as ItemModel, Product as ProductModel
from db.retry import with_retry
from schemas.report import LowStockItem, StockAlerts, StockReport


async def _products_at_or_below(db: AsyncSession, threshold: int) -> List[LowStockItem]:
    async def _query():
        res = await db.execute(
            select(ProductModel.id, ProductModel.name, ProductModel.stock_quantity)
            .where(ProductModel.stock_quantity.is_not(None))
            .where(ProductModel.stock_quantity <= threshold)
            .order_by(ProductModel.stock_quantity.asc(), func.lower(ProductModel.name).asc())
        )
        return res.all()

    rows = await with_retry(_query, session=db)
    return [
        LowStockItem(id=pid, name=name, type="product", current_stock=int(stock or 0), threshold=threshold)
        for pid, name, stock in rows
    ]


async def _additionals_at_or_below(db: AsyncSession, threshold: int) -> List[LowStockItem]:
    async def _query():
        res = await db.execute(
            select(ItemModel.id, ItemModel.name, ItemModel.stock_quantity)
            .where(ItemModel.stock_quantity <= threshold)
            .order_by(ItemModel.stock_quantity.asc(), func.lower(ItemModel.name).asc())
        )
        return res.all()

    rows = await with_retry(_query, session=db)
    return [
        LowStockItem(id=iid, name=name, type="additional", current_stock=int(stock or 0), threshold=threshold)
        for iid, name, stock in rows
    ]


async def _count(db: AsyncSession, model, *criteria) -> int:
    async def _query():
        stmt = select(func.count()).select_from(model)
        for c in criteria:
            stmt = stmt.where(c)
        return (await db.execute(stmt)).scalar_one()

    return int(await with_retry(_query, session=db))


async def get_stock_report(db: AsyncSession, threshold: Optional[int] = None) -> StockReport:
    if threshold is None:
        threshold = settings.low_stock_threshold

    low_stock_items = await _products_at_or_below(db, threshold)
    low_stock_items += await _additionals_at_or_below(db, threshold)

    return StockReport(
        low_stock_items=low_stock_items,
        total_products=await _count(db, ProductModel),
        total_additionals=await _count(db, ItemModel),
        products_out_of_stock=await _count(db, ProductModel, ProductModel.stock_quantity == 0),
        additionals_out_of_stock=await _count(db, ItemModel, ItemModel.stock_quantity == 0),
    )


async def get_critical_stock(db: AsyncSession) -> List[LowStockItem]:
    """Everything at exactly zero stock."""
    return await _products_at_or_below(db, 0) + await _additionals_at_or_below(db, 0)


async def has_items_below_threshold(db: AsyncSession, threshold: Optional[int] = None) -> StockAlerts:
    if threshold is None:
        threshold = settings.alert_threshold

    critical = await get_critical_stock(db)
    low = await get_stock_report(db, threshold)
    return StockAlerts(
        has_critical=bool(critical) or bool(low.low_stock_items),
        items=critical + low.low_stock_items,
    )
