# flowbot/core/engine/ports.py
from __future__ import annotations
from typing import Any, Awaitable, Callable, Protocol

from flowbot.core.engine.domain import Content, InboundMessage, Priority


class MessageSender(Protocol):
    """Outbound capability supplied by the transport (usually via the outbound queue)"""

    async def send_message(
        self,
        recipient_id: str,
        content: Content,
        *,
        priority: Priority = Priority.NORMAL,
    ) -> None: ...


# Plain handlers take the base parameter set; flow-capable handlers also take
# ``flow`` (a FlowContext). Step handlers always take both.
CommandHandler = Callable[..., Awaitable[Any]]

# Passive listeners receive messages that are neither state input nor commands.
MessageListener = Callable[[InboundMessage, "MessageSender"], Awaitable[Any]]
