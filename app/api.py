import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.exceptions import ServiceUnavailableError
from app.schemas import BatchPriceRequest, FallbackBatchRequest
from app.services import PriceCache, PriceQueryService, PriceSyncService

logger = logging.getLogger(__name__)

MAX_FALLBACK_SYMBOLS = 100


def get_sync_service(request: Request) -> PriceSyncService:
    return request.app.state.sync_service


def get_price_cache(request: Request) -> Optional[PriceCache]:
    return request.app.state.price_cache


def get_query_service(request: Request) -> PriceQueryService:
    qs: PriceQueryService = request.app.state.query_service
    if not qs.is_available:
        raise HTTPException(status_code=503, detail="Token price service unavailable")
    return qs


def require_price_cache(cache: Optional[PriceCache] = Depends(get_price_cache)) -> PriceCache:
    if cache is None:
        raise HTTPException(status_code=503, detail="Fallback price cache not configured")
    return cache


price_router = APIRouter(prefix="/price", tags=["price"])
fallback_router = APIRouter(prefix="/fallback", tags=["fallback"])


@price_router.get("")
def all_prices(qs: PriceQueryService = Depends(get_query_service)):
    data = qs.get_all_prices()
    return {"success": True, "data": data, "count": len(data)}


@price_router.get("/health")
def health(qs: PriceQueryService = Depends(get_query_service)):
    return {"success": True, "data": qs.get_health()}


@price_router.post("/batch")
def batch_prices(payload: BatchPriceRequest, qs: PriceQueryService = Depends(get_query_service)):
    if not payload.tokens:
        raise HTTPException(status_code=400, detail="tokens must be a non-empty array of token symbols")
    try:
        data = qs.get_batch_prices(payload.tokens)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"success": True, "data": data, "count": len(data)}


@price_router.post("/refresh")
def refresh(qs: PriceQueryService = Depends(get_query_service), sync: PriceSyncService = Depends(get_sync_service)):
    try:
        result = sync.refresh_now()
    except ServiceUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    if result is None:
        return {"success": True, "message": "Price refresh already in progress; request skipped"}
    return {"success": True, "message": "Price refresh completed", "data": result.to_dict()}


@price_router.get("/{token}")
def token_price(token: str, qs: PriceQueryService = Depends(get_query_service)):
    try:
        entry = qs.get_price(token)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No price information for {token.upper()}")
    return {"success": True, "data": entry}


@fallback_router.get("/price/{symbol}")
def fallback_price(symbol: str, cache: PriceCache = Depends(require_price_cache)):
    return {"success": True, "data": cache.get_or_fetch(symbol)}


@fallback_router.post("/price/batch")
def fallback_batch(payload: FallbackBatchRequest, cache: PriceCache = Depends(require_price_cache)):
    if not payload.symbols:
        raise HTTPException(status_code=400, detail="symbols must be a non-empty array")
    if len(payload.symbols) > MAX_FALLBACK_SYMBOLS:
        raise HTTPException(status_code=400, detail=f"At most {MAX_FALLBACK_SYMBOLS} symbols per request")
    data = cache.get_batch(payload.symbols)
    return {"success": True, "data": data, "count": len(data)}


@fallback_router.get("/cache")
def fallback_cache_status(cache: PriceCache = Depends(require_price_cache)):
    return {"success": True, "data": cache.status()}


@fallback_router.delete("/cache")
def fallback_cache_clear(cache: PriceCache = Depends(require_price_cache)):
    cache.clear()
    return {"success": True, "message": "Price cache cleared"}


async def _http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc.detail)})


async def _validation_error(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    message = "; ".join(f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in errors)
    return JSONResponse(status_code=400, content={"success": False, "error": message or "Invalid request"})


async def _unhandled_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


def create_app(sync_service: PriceSyncService, query_service: PriceQueryService,
               price_cache: Optional[PriceCache] = None, manage_lifecycle: bool = False) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            started = await run_in_threadpool(sync_service.start)
            if not started:
                logger.error("Token price sync failed to start; price routes will answer 503")
        try:
            yield
        finally:
            if manage_lifecycle:
                await run_in_threadpool(sync_service.stop)

    app = FastAPI(title="Token Price API", lifespan=lifespan)
    app.state.sync_service = sync_service
    app.state.query_service = query_service
    app.state.price_cache = price_cache

    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unhandled_error)

    app.include_router(price_router)
    app.include_router(fallback_router)
    return app
