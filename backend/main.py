from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from core.app_logging import get_logger
from core.exceptions import (
    ConcurrencyConflictError,
    ConstraintViolation,
    InsufficientStockError,
    NotFoundError,
    StockServiceError,
    StoreUnavailableError,
    ValidationError,
)
from db.database import create_db_and_tables
from routers.items import router as items_router
from routers.products import router as products_router
from routers.constraints import router as constraints_router
from routers.stock import router as stock_router
from routers.reports import router as reports_router

logger = get_logger(__name__)

# Most specific first: NotFoundError is a ValidationError.
ERROR_STATUS = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConstraintViolation, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InsufficientStockError, status.HTTP_409_CONFLICT),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
    (StoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: StockServiceError) -> int:
    for exc_type, code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_db_and_tables()
    yield


app = FastAPI(
    title="Stock & Constraints API",
    description="Derived product stock from components, and cart item constraints",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StockServiceError)
async def stock_service_error_handler(request: Request, exc: StockServiceError):
    code = status_for(exc)
    if code >= 500:
        logger.error("request failed", extra={"path": request.url.path, "error": exc.code, "detail": exc.message})
    return JSONResponse(status_code=code, content=jsonable_encoder(exc.to_dict()))


app.include_router(items_router, prefix="/items", tags=["items"])
app.include_router(products_router, prefix="/products", tags=["products"])
app.include_router(constraints_router, prefix="/constraints", tags=["constraints"])
app.include_router(stock_router, prefix="/stock", tags=["stock"])
app.include_router(reports_router, prefix="/reports", tags=["reports"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
