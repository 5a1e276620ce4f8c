from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from core.app_logging import get_logger
from schemas.cart import CartLine, CheckoutResult
from services.constraints import ensure_cart_valid
from services.stock_transactions import decrement_order_stock

logger = get_logger(__name__)


async def check_out(db: AsyncSession, cart_lines: Sequence[CartLine]) -> CheckoutResult:
    """Constraint check first (no writes on failure), then the all-or-nothing stock decrement."""
    await ensure_cart_valid(db, cart_lines)
    stock = await decrement_order_stock(db, cart_lines)
    logger.info("checkout accepted", extra={"lines": len(cart_lines)})
    return CheckoutResult(accepted=True, stock=stock)
