from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from db.database import get_async_session
from schemas.report import LowStockItem, StockAlerts, StockReport
from services import stock_report

router = APIRouter()


@router.get("/stock", response_model=StockReport)
async def get_stock_report(
    threshold: Optional[int] = Query(None, ge=0),
    db: AsyncSession = Depends(get_async_session),
):
    return await stock_report.get_stock_report(db, threshold)


@router.get("/critical", response_model=List[LowStockItem])
async def get_critical_stock(db: AsyncSession = Depends(get_async_session)):
    return await stock_report.get_critical_stock(db)


@router.get("/alerts", response_model=StockAlerts)
async def get_stock_alerts(
    threshold: Optional[int] = Query(None, ge=0),
    db: AsyncSession = Depends(get_async_session),
):
    return await stock_report.has_items_below_threshold(db, threshold)
