# flowbot/transport/adapters.py
"""
Adapters to convert provider-specific payloads into domain models.
These are pure converters - they don't contain domain logic.
"""
from __future__ import annotations

from typing import Any, Optional

from flowbot.core.engine.domain import InboundMessage
from flowbot.infra.logging_config import get_logger, mask_user_id

logger = get_logger(__name__)

GROUP_CHAT_TYPES = frozenset({"group", "supergroup"})


class TelegramAdapter:
    """
    Adapter for Telegram Bot API updates.

    Telegram sends JSON Updates with structure:
    {
      "update_id": 123456,
      "message": {
        "message_id": 42,
        "from": {"id": 123, "first_name": "User", ...},
        "chat": {"id": 123, "type": "private", ...},
        "text": "Hello",
        "reply_to_message": {"message_id": 41, ...},
        ...
      }
    }

    Handled update kinds: ``message`` (text or caption), ``callback_query``
    (inline button tap, becomes a selection) and ``channel_post`` (marked as
    broadcast so the router ignores it).

    Telegram bot commands ("/ping@MyBot arg") are rewritten to the configured
    command prefix ("!ping arg").
    """

    def __init__(self, command_prefix: str = "!"):
        self.command_prefix = command_prefix

    def adapt_update(self, update: dict) -> Optional[InboundMessage]:
        """Convert a Telegram Update dict to an InboundMessage, or None if irrelevant"""
        if "callback_query" in update:
            return self._parse_callback(update["callback_query"])
        if "message" in update:
            return self._parse_message(update["message"])
        if "channel_post" in update:
            post = update["channel_post"]
            chat_id = str(post.get("chat", {}).get("id", ""))
            return InboundMessage(
                sender_id=chat_id,
                text=post.get("text") or post.get("caption"),
                is_broadcast=True,
                message_id=_str_or_none(post.get("message_id")),
                raw=post,
            )

        logger.debug(f"Telegram update ignored (keys={list(update.keys())})")
        return None

    def _parse_message(self, message: dict) -> Optional[InboundMessage]:
        chat = message.get("chat", {})
        chat_id = str(chat.get("id", ""))
        if not chat_id:
            logger.warning("Telegram message: missing chat.id, ignoring")
            return None

        text = message.get("text") or message.get("caption")
        if text:
            text = self._normalize_command(text)

        reply_to = message.get("reply_to_message") or {}

        inbound = InboundMessage(
            sender_id=chat_id,
            text=text,
            is_group=chat.get("type") in GROUP_CHAT_TYPES,
            message_id=_str_or_none(message.get("message_id")),
            sender_name=self._extract_sender_name(message),
            quoted_message_id=_str_or_none(reply_to.get("message_id")),
            raw=message,
        )
        logger.debug(
            f"Telegram message: from={mask_user_id(chat_id)}, "
            f"msg_id={inbound.message_id}, has_text={inbound.has_text()}"
        )
        return inbound

    def _parse_callback(self, callback: dict) -> Optional[InboundMessage]:
        message = callback.get("message") or {}
        chat_id = message.get("chat", {}).get("id") or callback.get("from", {}).get("id")
        data = callback.get("data")
        if chat_id is None or not data:
            logger.debug("Telegram callback query without chat or data, ignoring")
            return None

        return InboundMessage(
            sender_id=str(chat_id),
            text=data,
            is_group=message.get("chat", {}).get("type") in GROUP_CHAT_TYPES,
            selection_id=data,
            message_id=_str_or_none(message.get("message_id")),
            sender_name=self._extract_sender_name(callback),
            raw=callback,
        )

    def _normalize_command(self, text: str) -> str:
        """'/start@BotName arg' -> '!start arg'"""
        if not text.startswith("/"):
            return text
        parts = text.split(" ", 1)
        command = parts[0][1:].split("@")[0]
        if not command:
            return text
        rest = f" {parts[1]}" if len(parts) > 1 else ""
        return f"{self.command_prefix}{command}{rest}"

    @staticmethod
    def _extract_sender_name(container: dict) -> str | None:
        """
        Build a human-readable sender identifier from ``from``.

        Prefer "Full Name (@username)", fall back to either part.
        """
        sender: dict[str, Any] = container.get("from", {})
        if not sender:
            return None

        full_name = f"{sender.get('first_name', '')} {sender.get('last_name', '')}".strip()
        username = sender.get("username")

        if username and full_name:
            return f"{full_name} (@{username})"
        if username:
            return f"@{username}"
        return full_name or None


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)
