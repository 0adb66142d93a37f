# flowbot/transport/http_app.py
"""
HTTP application: health, metrics, Telegram webhook and a dev chat endpoint.

Security layers:
1. Public: /health and the Telegram webhook (secret token header validation)
2. Internal: /metrics
3. Dev-only: /dev/message (404 outside the dev environment)
"""
from __future__ import annotations

import asyncio
import hmac
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from flowbot.bootstrap import Runtime, build_runtime, start_runtime, stop_runtime
from flowbot.config import Settings, settings
from flowbot.core.engine.domain import InboundMessage
from flowbot.infra.logging_config import get_logger, setup_logging
from flowbot.infra.metrics import get_metrics_collector
from flowbot.infra.outbound_queue import SendFunc
from flowbot.transport.telegram_polling import process_update

logger = get_logger(__name__)


class DevMessage(BaseModel):
    sender_id: str = Field(min_length=1)
    text: Optional[str] = None
    selection_id: Optional[str] = None
    is_group: bool = False


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Log failures of tasks nobody awaited instead of losing them"""
    exc = context.get("exception")
    message = context.get("message", "Unhandled asyncio error")
    if exc is not None:
        logger.error(f"{message}: {exc}", exc_info=(type(exc), exc, exc.__traceback__))
    else:
        logger.error(message)


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def create_app(config: Settings | None = None, *, send_func: SendFunc | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings to use (defaults to the process settings)
        send_func: Outbound delivery override (tests)
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        """Application lifecycle: startup and shutdown"""

        # STARTUP
        logger.info(f"Starting {config.bot_name}: env={config.app_env}, telegram_mode={config.telegram_mode}")

        if config.is_production:
            missing = config.validate_required_for_production()
            if missing:
                logger.critical(f"Missing required production settings: {missing}")
                raise RuntimeError(f"Missing production config: {missing}")

        if config.telegram_mode != "off" and not config.telegram_bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN not set, outbound messages will only be logged")

        asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

        runtime = build_runtime(config, send_func=send_func)
        await start_runtime(runtime)
        fastapi_app.state.runtime = runtime

        logger.info("Application startup complete")

        yield

        # SHUTDOWN
        logger.info("Shutting down application")
        await stop_runtime(runtime)
        logger.info("Application shutdown complete")

    app = FastAPI(
        title=config.bot_name,
        description="Command and conversation dispatcher for chat bots",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None if config.is_production else "/docs",
        redoc_url=None if config.is_production else "/redoc",
        openapi_url=None if config.is_production else "/openapi.json",
    )

    # ========================================================================
    # EXCEPTION HANDLERS
    # ========================================================================

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if exc.status_code >= 500:
            logger.error(f"Server error: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc.__class__.__name__}", exc_info=True)
        detail = "Internal server error" if config.is_production else str(exc)
        return JSONResponse(status_code=500, content={"error": detail})

    # ========================================================================
    # ENDPOINTS
    # ========================================================================

    def require_dev_environment():
        if config.app_env != "dev":
            logger.warning(f"Attempted access to dev-only endpoint in env={config.app_env}")
            raise HTTPException(status_code=404, detail="Not found")

    @app.get("/health")
    def health():
        """Basic health check - PUBLIC endpoint."""
        return {"status": "healthy"}

    @app.get("/metrics")
    def metrics(runtime: Runtime = Depends(get_runtime)):
        """Operational counters plus live engine figures."""
        stats = runtime.router.stats
        return {
            **get_metrics_collector().get_metrics(),
            "runtime": {
                "active_states": len(runtime.store),
                "plugins": len(runtime.plugins),
                "commands": len(runtime.registry.names()),
                "outbound_queue_size": runtime.outbound.queue_size,
                "messages_processed": stats.messages_processed,
                "commands_executed": stats.commands_executed,
                "errors": stats.errors,
                "uptime_seconds": round(stats.uptime_seconds, 1),
            },
        }

    @app.post("/webhooks/telegram")
    async def webhook_telegram(request: Request, runtime: Runtime = Depends(get_runtime)):
        """
        Telegram Bot API webhook endpoint - PUBLIC but VALIDATED.

        Always answers 200 once the secret matches so Telegram does not retry;
        processing errors are logged.
        """
        if config.telegram_mode != "webhook":
            raise HTTPException(status_code=404, detail="Not found")

        if config.telegram_webhook_secret:
            header_token = request.headers.get("X-Telegram-Bot-Api-Secret-Token", "")
            if not hmac.compare_digest(header_token, config.telegram_webhook_secret):
                logger.warning("Telegram webhook: invalid or missing secret token")
                raise HTTPException(status_code=403, detail="Forbidden")

        try:
            update = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON")
        if not isinstance(update, dict):
            raise HTTPException(status_code=400, detail="Invalid update")

        await process_update(
            update,
            adapter=runtime.adapter,
            router=runtime.router,
            transport=runtime.transport,
        )
        return {"ok": True}

    @app.post("/dev/message", dependencies=[Depends(require_dev_environment)])
    async def dev_message(payload: DevMessage, runtime: Runtime = Depends(get_runtime)):
        """Development chat endpoint - DEV ONLY. Routes a message without a transport."""
        message = InboundMessage(
            sender_id=payload.sender_id,
            text=payload.text,
            is_group=payload.is_group,
            selection_id=payload.selection_id,
        )
        route = await runtime.router.handle(message)
        state = runtime.store.get(payload.sender_id)
        return {
            "route": route.value,
            "state": state.to_dict() if state else None,
        }

    return app


# Initialize logging first
setup_logging(level=settings.log_level, use_json=settings.is_production)

app = create_app()
