from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from db.database import get_async_session
from schemas.cart import CartRequest, CheckoutResult, ReserveRequest, ReserveResponse, StockCheckResult
from services.checkout import check_out
from services.stock_transactions import reserve_and_decrement, validate_order_stock

router = APIRouter()


@router.post("/products/{product_id}/reserve", response_model=ReserveResponse)
async def reserve_product(product_id: UUID, payload: ReserveRequest, db: AsyncSession = Depends(get_async_session)):
    """
    Decrement stock for `quantity` units of a product.

    - Products with components consume every component item (all or nothing).
    - Products without components consume their own counter.
    """
    stock = await reserve_and_decrement(db, product_id, payload.quantity)
    return ReserveResponse(product_id=product_id, quantity=payload.quantity, stock_quantity=stock)


@router.post("/validate", response_model=StockCheckResult)
async def validate_stock(payload: CartRequest, db: AsyncSession = Depends(get_async_session)):
    return await validate_order_stock(db, payload.lines)


@router.post("/checkout", response_model=CheckoutResult)
async def checkout(payload: CartRequest, db: AsyncSession = Depends(get_async_session)):
    """Validate constraints, then decrement stock for the whole cart"""
    return await check_out(db, payload.lines)
