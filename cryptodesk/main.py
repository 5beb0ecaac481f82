# cryptodesk/main.py
"""
Cryptodesk – Custodial Ledger Backend
=====================================

Features:
- Pending buy/sell/deposit/withdrawal requests
- Admin approve/cancel with compare-and-set settlement
- Decimal-safe cash balances and per-asset holdings
- Audit ledger with reconciliation
"""

import os
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from cryptodesk.config import Settings, configure_logging
from cryptodesk.db import create_db_engine, create_session_factory, init_db
from cryptodesk.errors import CryptodeskError
from cryptodesk.intake import TransactionIntake
from cryptodesk.ledger_service import router as ledger_router
from cryptodesk.price_feed import CachedPriceSource, DatabasePriceSource, PriceSource
from cryptodesk.routers.health import router as health_router
from cryptodesk.routers.transactions import router as transactions_router
from cryptodesk.settlement import SettlementEngine
from cryptodesk.wallet_router import router as wallet_router

VERSION = "1.0.0"


def create_app(settings: Optional[Settings] = None, price_source: Optional[PriceSource] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings)

    # ====================
    # DATABASE
    # ====================
    engine = create_db_engine(settings.database_url, timeout=settings.store_timeout)
    init_db(engine)
    session_factory = create_session_factory(engine)

    if price_source is None:
        price_source = CachedPriceSource(DatabasePriceSource(session_factory), ttl=settings.price_cache_ttl)

    # ====================
    # FASTAPI APP
    # ====================
    app = FastAPI(title="Cryptodesk", version=VERSION, docs_url="/docs", redoc_url="/redoc")

    app.state.settings = settings
    app.state.db_engine = engine
    app.state.session_factory = session_factory
    app.state.settlement = SettlementEngine(
        session_factory, fee_rate=settings.withdrawal_fee_rate, dust_epsilon=settings.dust_epsilon,
    )
    app.state.intake = TransactionIntake(session_factory, price_source=price_source)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_headers=["*"],
        allow_methods=["*"],
        allow_credentials=True,
    )

    @app.middleware("http")
    async def logging_middleware(req: Request, call_next):
        start = time.time()
        resp = await call_next(req)
        dur = time.time() - start
        logger.debug(f"{req.method} {req.url.path} {resp.status_code} ({dur:.3f}s)")
        return resp

    # ====================
    # EXCEPTION HANDLERS
    # ====================
    @app.exception_handler(CryptodeskError)
    async def domain_handler(req: Request, exc: CryptodeskError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.__class__.__name__, "detail": str(exc), "path": req.url.path},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(req: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"error": "ValidationError", "detail": jsonable_errors(exc), "path": req.url.path},
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_handler(req: Request, exc: SQLAlchemyError):
        logger.error(f"Store error on {req.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content={"error": "StoreUnavailableError", "detail": "Database unavailable", "path": req.url.path},
        )

    app.include_router(health_router)
    app.include_router(transactions_router)
    app.include_router(wallet_router, prefix="/api/users")
    app.include_router(ledger_router)

    logger.info(f"🚀 Cryptodesk v{VERSION} ready (fee rate {settings.withdrawal_fee_rate})")
    return app


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("cryptodesk.main:create_app", factory=True, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
