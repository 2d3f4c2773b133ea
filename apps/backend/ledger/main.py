from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import register_routers
from .core.config import settings
from .core.database import Store
from .core.logging_config import configure_logging
from .errors import LedgerError, NotFoundError, PartialWriteError, ValidationError
from .seed import seed
from .services.account_locks import AccountLockRegistry
from .services.scheduler import RecurringScheduler, SchedulerTimer


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    store = Store.from_settings(settings).open()
    store.create_all()
    if settings.SEED_DEFAULTS:
        seed(store)
    locks = AccountLockRegistry()
    scheduler = RecurringScheduler.from_store(store, locks, timeout=settings.STORE_TIMEOUT_SECONDS)
    app.state.store = store
    app.state.locks = locks
    app.state.scheduler = scheduler

    timer = None
    if settings.SCHEDULER_INTERVAL_SECONDS > 0:
        timer = SchedulerTimer(scheduler, settings.SCHEDULER_INTERVAL_SECONDS)
        timer.start()
    try:
        yield
    finally:
        if timer is not None:
            timer.stop(timeout=settings.STORE_TIMEOUT_SECONDS)
        store.close()


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content=exc.to_dict())


@app.exception_handler(PartialWriteError)
async def _partial_write(request: Request, exc: PartialWriteError) -> JSONResponse:
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=503, content=exc.to_dict())


@app.exception_handler(LedgerError)
async def _ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.get("/health")
def health():
    return {"status": "ok"}


register_routers(app)
