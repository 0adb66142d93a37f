# flowbot/infra/outbound_queue.py
"""
Outbound message queue with priority tiers, pacing and retry logic.

Keeps the bot from flooding the messaging provider by:
1. Queuing outbound messages, highest priority first, FIFO within a tier
2. Spacing sends (shorter gap after command responses, longer after normal messages)
3. Automatic retry with exponential backoff

Implements the MessageSender port, so handlers never wait for delivery.
"""
from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from flowbot.core.engine.domain import Content, Priority
from flowbot.infra.logging_config import get_logger, mask_user_id
from flowbot.infra.metrics import inc_counter

logger = get_logger(__name__)

SendFunc = Callable[[str, Content], Awaitable[Any]]

_ids = itertools.count(1)


@dataclass
class OutboundMessage:
    """Message waiting to be sent"""
    to: str
    content: Content
    priority: int = Priority.NORMAL
    id: int = field(default_factory=lambda: next(_ids))
    attempts: int = 0
    created_at: float = field(default_factory=time.monotonic)
    next_retry_at: float = 0


class OutboundQueue:
    """
    Queue for outbound messages with pacing and retry.

    The send function raises on failure. Exceptions with ``retryable = False``
    drop the message at once; anything else is retried up to ``max_retries``.
    """

    def __init__(
        self,
        send_func: Optional[SendFunc] = None,
        *,
        priority_delay: float = 3.0,  # seconds after a priority > 0 message
        min_delay: float = 5.0,  # seconds after a normal message
        max_retries: int = 3,
        base_retry_delay: float = 5.0,  # seconds, doubles on each retry
    ):
        self._queue: list[OutboundMessage] = []
        self._send_func = send_func
        self._priority_delay = priority_delay
        self._min_delay = min_delay
        self._max_retries = max_retries
        self._base_retry_delay = base_retry_delay
        self._next_send_at: float = 0
        self._lock = asyncio.Lock()
        self._wakeup = asyncio.Event()
        self._processing = False
        self._task: Optional[asyncio.Task] = None

    def set_send_function(self, func: SendFunc) -> None:
        """Set the function that actually delivers messages"""
        self._send_func = func

    # ------------------------------------------------------------------
    # MessageSender port
    # ------------------------------------------------------------------

    async def send_message(
        self,
        recipient_id: str,
        content: Content,
        *,
        priority: Priority = Priority.NORMAL,
    ) -> None:
        await self.enqueue(OutboundMessage(to=recipient_id, content=content, priority=int(priority)))

    async def enqueue(self, message: OutboundMessage) -> None:
        """Add a message to the queue"""
        async with self._lock:
            self._queue.append(message)
            logger.debug(
                f"Message queued: id={message.id}, to={mask_user_id(message.to)}, "
                f"priority={message.priority}, queue_size={len(self._queue)}"
            )
        inc_counter("outbound_queued")
        self._wakeup.set()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background drain loop"""
        if self._task is not None and not self._task.done():
            logger.warning("Outbound queue already running")
            return
        self._task = asyncio.create_task(self._run(), name="outbound_queue")
        logger.info(
            f"Outbound queue started: priority_delay={self._priority_delay}s, "
            f"min_delay={self._min_delay}s, max_retries={self._max_retries}"
        )

    async def stop(self) -> None:
        """Stop the drain loop. Undelivered messages stay queued."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        if self._queue:
            logger.warning(f"Outbound queue stopped with {len(self._queue)} undelivered message(s)")
        else:
            logger.info("Outbound queue stopped")

    async def _run(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            try:
                await self.process_queue()
            except Exception as exc:
                logger.error(f"Outbound queue iteration failed: {exc}", exc_info=True)

            wait = self._seconds_until_retry()
            if wait is not None:
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=wait)
                except asyncio.TimeoutError:
                    pass
                self._wakeup.set()

    async def process_queue(self) -> None:
        """Send every message that is ready, respecting pacing"""
        if self._send_func is None:
            logger.error("Send function not set")
            return

        if self._processing:
            return

        self._processing = True

        try:
            while True:
                message = await self._get_next_message()
                if message is None:
                    break

                await self._wait_for_pacing()

                success = await self._try_send(message)
                self._next_send_at = time.monotonic() + (
                    self._priority_delay if message.priority > 0 else self._min_delay
                )

                if success is None:
                    continue

                if not success:
                    if message.attempts < self._max_retries:
                        message.attempts += 1
                        delay = self._base_retry_delay * (2 ** (message.attempts - 1))
                        message.next_retry_at = time.monotonic() + delay

                        async with self._lock:
                            self._queue.append(message)

                        logger.info(
                            f"Message scheduled for retry: id={message.id}, "
                            f"attempt={message.attempts}, delay={delay}s"
                        )
                    else:
                        logger.error(
                            f"Message failed after {self._max_retries} retries: "
                            f"id={message.id}, to={mask_user_id(message.to)}"
                        )
                        inc_counter("outbound_failed_permanent")
        finally:
            self._processing = False

    async def _get_next_message(self) -> OutboundMessage | None:
        """Highest priority ready message, oldest first within a priority"""
        async with self._lock:
            now = time.monotonic()
            ready = [m for m in self._queue if m.next_retry_at <= now]
            if not ready:
                return None
            best = max(ready, key=lambda m: (m.priority, -m.id))
            self._queue.remove(best)
            return best

    def _seconds_until_retry(self) -> float | None:
        if not self._queue:
            return None
        earliest = min(m.next_retry_at for m in self._queue)
        return max(0.0, earliest - time.monotonic())

    async def _wait_for_pacing(self) -> None:
        wait_time = self._next_send_at - time.monotonic()
        if wait_time > 0:
            logger.debug(f"Pacing: waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)

    async def _try_send(self, message: OutboundMessage) -> bool | None:
        """
        Try to send a message.

        Returns:
            True on success, False if it should be retried, None if dropped
        """
        try:
            await self._send_func(message.to, message.content)
        except Exception as e:
            inc_counter("outbound_error")
            if getattr(e, "retryable", True) is False:
                logger.error(f"Send failed permanently: id={message.id}, error={e}")
                inc_counter("outbound_failed_permanent")
                return None
            logger.warning(f"Send error: id={message.id}, error={e}")
            return False

        inc_counter("outbound_sent")
        logger.debug(f"Message sent: id={message.id}, to={mask_user_id(message.to)}")
        return True

    @property
    def queue_size(self) -> int:
        """Current queue size"""
        return len(self._queue)

    async def flush(self) -> None:
        """Process all queued messages, waiting out retry delays"""
        while self._queue:
            await self.process_queue()
            if self._queue:
                await asyncio.sleep(self._seconds_until_retry() or 0.1)
