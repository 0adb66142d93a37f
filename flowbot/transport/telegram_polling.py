# flowbot/transport/telegram_polling.py
"""
Telegram Bot API long-polling handler.

Alternative to webhook mode. Calls getUpdates in a loop with long-polling.
Simpler ops (no public URL or SSL required).

Usage:
    poller = TelegramPoller(transport, router, adapter)
    await poller.start()
    # ... on shutdown:
    await poller.stop()
"""
from __future__ import annotations

import asyncio

from flowbot.core.engine.router import ConversationRouter
from flowbot.infra.logging_config import LogContext, get_logger
from flowbot.infra.metrics import inc_counter
from flowbot.transport.adapters import TelegramAdapter
from flowbot.transport.telegram_sender import TelegramSendError, TelegramTransport

logger = get_logger(__name__)

MAX_BACKOFF_SECONDS = 30


async def process_update(
    update: dict,
    *,
    adapter: TelegramAdapter,
    router: ConversationRouter,
    transport: TelegramTransport | None = None,
) -> None:
    """
    Feed one Telegram Update through the router.

    Shared by the poller and the webhook endpoint. Never raises.
    """
    message = adapter.adapt_update(update)
    if message is None:
        return

    log_ctx = LogContext(logger, user_id=message.sender_id)

    callback = update.get("callback_query")
    if callback and transport is not None:
        try:
            await transport.answer_callback_query(callback["id"])
        except (KeyError, TelegramSendError) as exc:
            log_ctx.warning(f"Could not answer callback query: {exc}")

    try:
        route = await router.handle(message)
        inc_counter("inbound_messages_total", provider="telegram")
        log_ctx.debug(f"Telegram update routed: route={route.value}")
    except Exception as exc:
        log_ctx.error(
            f"Telegram update processing failed: {exc.__class__.__name__}",
            exc_info=True,
        )


class TelegramPoller:
    """
    Long-polling loop for receiving Telegram updates.

    Error handling:
    - On API errors: exponential backoff (1s → 2s → 4s → ... → 30s max)
    - On processing errors: log and continue (don't lose the offset)
    - On cancellation: graceful shutdown
    """

    def __init__(
        self,
        transport: TelegramTransport,
        router: ConversationRouter,
        adapter: TelegramAdapter,
        poll_timeout: int = 30,
    ):
        self.transport = transport
        self.router = router
        self.adapter = adapter
        self.poll_timeout = poll_timeout
        self._task: asyncio.Task | None = None
        self._offset: int | None = None
        self._running = False
        self._backoff = 1  # seconds, doubles on error, max 30

    async def start(self) -> None:
        """Start the polling loop as a background task."""
        if self._running:
            logger.warning("Telegram poller already running")
            return

        # Remove any existing webhook so polling can work
        try:
            await self.transport.delete_webhook()
            logger.info("Telegram webhook removed (switching to polling mode)")
        except TelegramSendError as e:
            logger.warning(f"Could not delete Telegram webhook: {e}")

        self._running = True
        self._task = asyncio.create_task(self._poll_loop(), name="tg_poller")
        logger.info(f"Telegram poller started (timeout={self.poll_timeout}s)")

    async def stop(self) -> None:
        """Stop the polling loop gracefully."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Telegram poller stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                updates = await self.transport.get_updates(
                    offset=self._offset,
                    timeout=self.poll_timeout,
                )

                self._backoff = 1

                for update in updates:
                    # Acknowledge before processing so a failing update is not redelivered
                    self._offset = update.get("update_id", 0) + 1
                    await process_update(
                        update,
                        adapter=self.adapter,
                        router=self.router,
                        transport=self.transport,
                    )

            except TelegramSendError as e:
                if not self._running:
                    break
                logger.error(f"Telegram polling error: {e}, backing off {self._backoff}s")
                await asyncio.sleep(self._backoff)
                self._backoff = min(self._backoff * 2, MAX_BACKOFF_SECONDS)

            except asyncio.CancelledError:
                break

            except Exception as e:
                if not self._running:
                    break
                logger.error(f"Telegram polling unexpected error: {e}", exc_info=True)
                await asyncio.sleep(self._backoff)
                self._backoff = min(self._backoff * 2, MAX_BACKOFF_SECONDS)
