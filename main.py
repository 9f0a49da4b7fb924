# main.py (full, lifespan-based)
from __future__ import annotations

import asyncio, logging, contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from tortoise import Tortoise

from routers import invoices, auto_send, settings, meter_readings, contracts, activity

# Background pieces
from scheduler import Scheduler
from services import config
from services.auto_send import get_auto_send_config, run_auto_send
from services.dorm_config import ensure_dorm_config
from services.errors import BillingError
from services.invoice_lifecycle import mark_overdue
from integration.notifier import dispatcher_from_config, set_dispatcher

logger = logging.getLogger("uvicorn")


# ----- scheduled jobs -----
async def _job_auto_send():
    res = await run_auto_send()
    if res.get("ran"):
        logger.info(f"[auto-send] {res}")


async def _job_mark_overdue():
    res = await mark_overdue()
    logger.info(f"[overdue] {res}")


# ----- lifespan -----
@asynccontextmanager
async def lifespan(app: FastAPI):
    # 1) DB init
    await Tortoise.init(
        db_url=config.DB_URL,
        modules={"models": ["models"]},
    )
    await Tortoise.generate_schemas()

    # 2) Seeds (singleton settings rows)
    await ensure_dorm_config()
    await get_auto_send_config()

    # 3) Notification channel
    set_dispatcher(dispatcher_from_config(config.NOTIFY_WEBHOOK_URL, timeout=config.NOTIFY_TIMEOUT))

    # 4) Scheduler
    sched = Scheduler()
    app.state.scheduler = sched

    sched.every(config.AUTO_SEND_TICK_SECONDS, _job_auto_send, align=True)
    sched.daily(config.OVERDUE_SWEEP_HOUR, config.OVERDUE_SWEEP_MINUTE, config.DEFAULT_TIMEZONE, _job_mark_overdue)

    sched_task = asyncio.create_task(sched.run_forever())
    try:
        yield
    finally:
        if not sched_task.done():
            sched_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sched_task
        await Tortoise.close_connections()


# ----- app & routers -----
app = FastAPI(lifespan=lifespan, title="Dorm Billing API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "X-Total-Count"],
)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# auto-send before invoices so /invoices/auto-send/* never reaches /invoices/{id}
app.include_router(auto_send.router)
app.include_router(invoices.router)
app.include_router(settings.router)
app.include_router(meter_readings.router)
app.include_router(contracts.router)
app.include_router(activity.router)

# Optional: print routes
for route in app.routes:
    if isinstance(route, APIRoute):
        logger.info("%s -> %s", list(route.methods), route.path)
