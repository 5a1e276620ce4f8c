"""Retry wrapper for read-only queries.

Only reads go through here: a failed write may have been partially applied
and is surfaced to the caller instead.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.app_logging import get_logger
from core.config import settings
from core.exceptions import StoreUnavailableError

T = TypeVar("T")

logger = get_logger(__name__)


def is_connection_error(error: BaseException) -> bool:
    if isinstance(error, (OperationalError, InterfaceError, DisconnectionError)):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    return isinstance(error, (ConnectionError, asyncio.TimeoutError))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    session: Optional[AsyncSession] = None,
    max_retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
) -> T:
    attempts = max_retries if max_retries is not None else settings.read_retry_attempts
    delay = retry_delay if retry_delay is not None else settings.read_retry_delay_seconds
    attempts = max(attempts, 1)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_connection_error(e):
                raise
            if session is not None:
                await session.rollback()
            if attempt >= attempts:
                logger.error(
                    "store read failed, giving up",
                    extra={"attempt": attempt, "max_retries": attempts, "error": repr(e)},
                )
                raise StoreUnavailableError(f"Store unavailable after {attempts} attempts: {e}", cause=e) from e
            logger.warning(
                "store read failed, retrying",
                extra={"attempt": attempt, "max_retries": attempts, "error": repr(e)},
            )
            await asyncio.sleep(delay * attempt)

    raise StoreUnavailableError("Store unavailable")
