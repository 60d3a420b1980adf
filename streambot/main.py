import asyncio
import os
from typing import Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from streambot.config import settings
from streambot.database import init_db
from streambot.logging_config import get_logger, setup_logging
from streambot.routers import admin, session, webhook
from streambot.runtime import build_runtime
from streambot.services.dispatch_service import Dispatcher
from streambot.services.stats_service import get_stats

setup_logging(settings.log_level, json_output=settings.log_json)

logger = get_logger("main")

app = FastAPI(
    title="Stream Studio Bot",
    description="WhatsApp assistant with manual attendance takeover",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(session.router)
app.include_router(admin.router)

app.state.runtime = build_runtime(settings)
app.state.dispatcher = Dispatcher(app.state.runtime)

sweep_logger = get_logger("sweep_worker")
_sweep_tasks: list[asyncio.Task] = []


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _is_sweep_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return _is_env_enabled(os.environ.get("SWEEP_WORKERS_ENABLED"), default=True)


def sweep_expired_blocks() -> dict:
    return {"expired_blocks": app.state.runtime.attendance.sweep_expired()}


def sweep_ephemeral_caches() -> dict:
    runtime = app.state.runtime
    return {
        "debounce": runtime.debounce.sweep(),
        "histories": runtime.history.sweep_expired(),
        "sales_contexts": runtime.sales.sweep_expired(),
    }


async def _sweep_loop(name: str, interval_seconds: float, sweep: Callable[[], dict]) -> None:
    interval_seconds = max(interval_seconds, 1.0)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            results = sweep()
            if any(results.values()):
                sweep_logger.info(f"{name} sweep removed entries", extra={"context": results})
        except asyncio.CancelledError:
            break
        except Exception as exc:
            sweep_logger.error(
                f"{name} sweep failed",
                extra={"context": {"error": str(exc)}},
            )


def _start(coro: Awaitable[None]) -> None:
    _sweep_tasks.append(asyncio.create_task(coro))


@app.on_event("startup")
async def on_startup() -> None:
    init_db()
    if not settings.groq_api_key:
        logger.error("GROQ_API_KEY not configured; replies will use fallback messages")
    if not settings.owner_phone:
        logger.warning("OWNER_PHONE not configured; commands from other chats will be rejected")
    if not _is_sweep_enabled() or _sweep_tasks:
        return
    _start(_sweep_loop("Manual attendance", settings.block_sweep_seconds, sweep_expired_blocks))
    _start(_sweep_loop("Ephemeral cache", settings.debounce_sweep_seconds, sweep_ephemeral_caches))
    sweep_logger.info("Sweep workers started")


@app.on_event("shutdown")
async def stop_sweep_workers() -> None:
    for task in _sweep_tasks:
        task.cancel()
    for task in _sweep_tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    _sweep_tasks.clear()


@app.get("/health")
async def health(request: Request):
    return {"status": "ok", "connection": request.app.state.runtime.connection.state}


@app.get("/stats")
async def stats(request: Request):
    return get_stats(request.app.state.runtime)
