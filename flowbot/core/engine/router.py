# flowbot/core/engine/router.py
"""
Conversation Router - decides what to do with each inbound message.

Order of precedence:
    1. ignored (no sender, empty body, broadcast)
    2. active conversation state -> step handler of the owning plugin
    3. interactive reply (button/list selection) without a flow
    4. prefixed command
    5. plain text -> passive listeners

A dispatched step handler always consumes the message, even when it looks like
a command.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional

from flowbot.core.engine.domain import CommandParams, InboundMessage, Priority, Route
from flowbot.core.engine.flow import FlowContext
from flowbot.core.engine.ports import MessageListener, MessageSender
from flowbot.core.engine.registry import CommandRegistry, RegisteredCommand
from flowbot.core.engine.state_store import StateStore
from flowbot.core.texts import get_text
from flowbot.infra.logging_config import LogContext, get_logger
from flowbot.infra.metrics import AppMetrics

logger = get_logger(__name__)


@dataclass
class RouterStats:
    messages_processed: int = 0
    commands_executed: int = 0
    errors: int = 0
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at


class ConversationRouter:
    def __init__(
        self,
        store: StateStore,
        registry: CommandRegistry,
        sender: MessageSender,
        *,
        prefix: str = "!",
        handler_timeout_seconds: float | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.sender = sender
        self.prefix = prefix
        self.handler_timeout_seconds = handler_timeout_seconds
        self.stats = RouterStats()
        self._listeners: list[MessageListener] = []
        self._lock = asyncio.Lock()

    def add_listener(self, listener: MessageListener) -> None:
        """Register a passive listener for plain (non-command, non-flow) messages"""
        self._listeners.append(listener)

    async def handle(self, message: InboundMessage) -> Route:
        """
        Route one inbound message. Never raises for handler failures.

        Calls are serialized: a second message waits until the first one has
        been fully dispatched.
        """
        async with self._lock:
            route = await self._dispatch(message)

        if route is not Route.IGNORED:
            self.stats.messages_processed += 1
        AppMetrics.message_received(route.value)
        return route

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, message: InboundMessage) -> Route:
        if not message.sender_id or message.is_from_broadcast():
            return Route.IGNORED
        if not message.has_text() and not message.is_interactive_reply():
            return Route.IGNORED

        user_id = message.sender_id
        log = LogContext(logger, user_id=user_id)
        text = (message.text or "").strip()

        state = self.store.get(user_id)
        if state is not None:
            self.store.touch(user_id)
            entry = self.registry.resolve_step(state.owner_plugin, state.current_step)
            if entry is not None:
                await self._run_step(entry, message, text, log.bind(
                    plugin=state.owner_plugin, step=state.current_step,
                ))
                return Route.STATE
            log.warning(
                f"No step handler for {state.owner_plugin}:{state.current_step}, "
                f"treating message as outside the flow"
            )

        if message.is_interactive_reply():
            log.info(f"Interactive reply received: selection={message.selection_id}")
            AppMetrics.interactive_reply()
            return Route.INTERACTIVE

        if self.prefix and text.startswith(self.prefix):
            return await self._run_command(message, text, log)

        await self._notify_listeners(message, log)
        return Route.PLAIN

    async def _run_step(
        self,
        entry: RegisteredCommand,
        message: InboundMessage,
        text: str,
        log: LogContext,
    ) -> None:
        params = self._build_params(message, text.split(), command=None)
        log.debug(f"Dispatching state step: text={text[:50]!r}")

        try:
            with AppMetrics.track_handler_time(Route.STATE.value):
                await self._invoke(entry, params)
        except Exception as exc:
            self.stats.errors += 1
            AppMetrics.handler_error("state")
            log.error(f"Step handler failed: {exc}", exc_info=True)
            await self._notify(message.sender_id, get_text("step_failed"))

    async def _run_command(self, message: InboundMessage, text: str, log: LogContext) -> Route:
        parts = text[len(self.prefix):].split()
        name = parts[0].lower() if parts else ""
        args = parts[1:]

        entry = self.registry.resolve(name) if name else None
        if entry is None or entry.is_step:
            log.info(f"Unknown command: {name!r}")
            AppMetrics.unknown_command()
            await self._notify(message.sender_id, get_text("unknown_command", prefix=self.prefix))
            return Route.UNKNOWN_COMMAND

        log = log.bind(command=name, plugin=entry.owner)
        log.info(f"Executing command: args={len(args)}")
        self.stats.commands_executed += 1
        AppMetrics.command_executed(name)

        params = self._build_params(message, args, command=name)
        try:
            with AppMetrics.track_handler_time(Route.COMMAND.value):
                await self._invoke(entry, params)
        except Exception as exc:
            self.stats.errors += 1
            AppMetrics.handler_error("command")
            log.error(f"Command handler failed: {exc}", exc_info=True)
            await self._notify(message.sender_id, get_text("command_failed", error=_describe(exc)))

        return Route.COMMAND

    async def _notify_listeners(self, message: InboundMessage, log: LogContext) -> None:
        for listener in list(self._listeners):
            try:
                await self._with_timeout(listener(message, self.sender))
            except Exception as exc:
                self.stats.errors += 1
                AppMetrics.handler_error("listener")
                log.error(f"Message listener failed: {exc}", exc_info=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_params(
        self,
        message: InboundMessage,
        args: list[str],
        *,
        command: Optional[str],
    ) -> CommandParams:
        # Handlers see the body exactly as received
        return CommandParams(
            sender_id=message.sender_id,
            text=message.text or "",
            args=args,
            is_group=message.is_group,
            message=message,
            sender=self.sender,
            command=command,
            prefix=self.prefix,
        )

    async def _invoke(self, entry: RegisteredCommand, params: CommandParams) -> Any:
        if entry.accepts_flow:
            flow = FlowContext(self.store, params.sender_id, entry.owner)
            return await self._with_timeout(entry.handler(params, flow=flow))
        return await self._with_timeout(entry.handler(params))

    async def _with_timeout(self, awaitable: Awaitable[Any]) -> Any:
        if self.handler_timeout_seconds is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.handler_timeout_seconds)

    async def _notify(self, recipient_id: str, text: str) -> None:
        """Best-effort notice to the user; delivery failures are logged only"""
        try:
            await self.sender.send_message(
                recipient_id, {"text": text}, priority=Priority.COMMAND_RESPONSE,
            )
        except Exception as exc:
            logger.error(f"Failed to send notice: {exc}", exc_info=True)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "tempo limite excedido"
    return str(exc) or exc.__class__.__name__
