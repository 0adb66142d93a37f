# flowbot/transport/telegram_sender.py
"""
Telegram Bot API outbound sender.

Renders content descriptors into Bot API calls:
- {"text"}                        -> sendMessage
- {"text", "buttons"}             -> sendMessage + inline keyboard
- {"text", "sections", ...}       -> sendMessage + one inline button per row
- {"poll": {...}}                 -> sendPoll
- {"reaction", "message_id"}      -> setMessageReaction

Error classification (TelegramSendError.retryable):
- Token invalid / bot blocked  → NOT retryable (needs human intervention)
- Bad request / chat not found → NOT retryable
- Rate limiting (429)          → retryable  (backoff then retry)
- Network / timeout            → retryable  (transient)
- Unknown server error         → retryable  (optimistic)

HTTP session lifecycle:
- Uses the shared sessions from flowbot.infra.http_client.
- Call close_all_sessions() during application shutdown.
"""
from __future__ import annotations

import asyncio

import aiohttp

from flowbot.core.engine.domain import Content
from flowbot.infra.http_client import get_poller_session, get_sender_session
from flowbot.infra.logging_config import get_logger, mask_user_id
from flowbot.infra.metrics import inc_counter

logger = get_logger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


# ---------------------------------------------------------------------------
# Error type
# ---------------------------------------------------------------------------

class TelegramSendError(Exception):
    """Error calling the Telegram Bot API.

    Attributes:
        status:     HTTP status code (0 for connection-level errors).
        error_code: Telegram-specific error code from the response body.
        retryable:  Whether the caller should schedule a retry.
    """

    def __init__(
        self,
        status: int,
        error_code: int | None,
        message: str,
        *,
        retryable: bool = False,
    ):
        self.status = status
        self.error_code = error_code
        self.retryable = retryable
        super().__init__(f"Telegram API error {status} (code={error_code}): {message}")


# ---------------------------------------------------------------------------
# Content rendering
# ---------------------------------------------------------------------------

def render_content(chat_id: str, content: Content) -> tuple[str, dict]:
    """
    Translate a content descriptor into a Bot API method and payload.

    Raises:
        ValueError: descriptor has no renderable field
    """
    if "poll" in content:
        poll = content["poll"]
        return "sendPoll", {
            "chat_id": chat_id,
            "question": poll["question"],
            "options": [{"text": option} for option in poll["options"]],
            "allows_multiple_answers": bool(poll.get("allows_multiple")),
            "is_anonymous": False,
        }

    if "reaction" in content:
        return "setMessageReaction", {
            "chat_id": chat_id,
            "message_id": int(content["message_id"]),
            "reaction": [{"type": "emoji", "emoji": content["reaction"]}],
        }

    if "text" not in content:
        raise ValueError(f"Unsupported content descriptor: keys={sorted(content)}")

    text = content["text"]
    keyboard: list[list[dict]] = []

    if "buttons" in content:
        keyboard = [
            [{"text": button["text"], "callback_data": button["id"]}]
            for button in content["buttons"]
        ]
    elif "sections" in content:
        header = content.get("title")
        if header:
            text = f"{header}\n\n{text}"
        for section in content["sections"]:
            for row in section.get("rows", []):
                label = row["title"]
                if row.get("description"):
                    label = f"{label} - {row['description']}"
                keyboard.append([{"text": label, "callback_data": row["id"]}])

    if content.get("footer"):
        text = f"{text}\n\n{content['footer']}"

    payload: dict = {"chat_id": chat_id, "text": text}
    if keyboard:
        payload["reply_markup"] = {"inline_keyboard": keyboard}
    return "sendMessage", payload


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class TelegramTransport:
    """
    Bot API client bound to one bot token.

    ``deliver`` is the send function used by the outbound queue.
    """

    def __init__(self, token: str, *, api_base: str = TELEGRAM_API_BASE):
        if not token:
            raise ValueError("Telegram bot token is required")
        self._token = token
        self._api_base = api_base

    def _bot_url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._token}/{method}"

    async def deliver(self, chat_id: str, content: Content) -> dict:
        """Render and send one content descriptor"""
        try:
            method, payload = render_content(chat_id, content)
        except (KeyError, TypeError, ValueError) as exc:
            raise TelegramSendError(0, None, f"cannot render content: {exc}", retryable=False)
        return await _send_request(self._bot_url(method), payload, chat_id)

    async def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> dict:
        """Stop the client-side loading indicator after a button tap"""
        payload: dict = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return await _send_request(self._bot_url("answerCallbackQuery"), payload, "system")

    async def delete_webhook(self) -> dict:
        """Remove webhook so polling can work."""
        return await _send_request(self._bot_url("deleteWebhook"), {}, "system")

    async def set_webhook(self, webhook_url: str, secret_token: str | None = None) -> dict:
        payload: dict = {"url": webhook_url}
        if secret_token:
            payload["secret_token"] = secret_token
        return await _send_request(self._bot_url("setWebhook"), payload, "system")

    async def get_updates(self, offset: int | None = None, timeout: int = 30) -> list[dict]:
        """
        Long-poll for updates via getUpdates.

        Raises:
            TelegramSendError: on API or connection errors
        """
        payload: dict = {
            "timeout": timeout,
            "allowed_updates": ["message", "callback_query", "channel_post"],
        }
        if offset is not None:
            payload["offset"] = offset

        session = get_poller_session()
        try:
            async with session.post(
                self._bot_url("getUpdates"),
                json=payload,
                timeout=aiohttp.ClientTimeout(total=timeout + 10, connect=5),
            ) as resp:
                body = await _safe_response_json(resp)

                if resp.status == 200 and body and body.get("ok"):
                    return body.get("result", [])

                error_desc = (body or {}).get("description", "Unknown error")
                error_code = (body or {}).get("error_code")

                raise TelegramSendError(
                    resp.status, error_code, error_desc,
                    retryable=resp.status == 429 or resp.status >= 500,
                )

        except TelegramSendError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(f"Telegram getUpdates connection error: {exc}", exc_info=True)
            raise TelegramSendError(0, None, str(exc), retryable=True)


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------

async def _safe_response_json(resp: aiohttp.ClientResponse) -> dict | None:
    """Parse JSON from response, returning None if body is not valid JSON."""
    try:
        return await resp.json(content_type=None)
    except (aiohttp.ClientError, ValueError):
        logger.warning(f"Telegram API returned non-JSON body: status={resp.status}")
        return None


async def _send_request(url: str, payload: dict, chat_id: str) -> dict:
    """
    Execute a Telegram Bot API request with error handling.
    """
    try:
        session = get_sender_session()
        async with session.post(url, json=payload) as resp:
            body = await _safe_response_json(resp)

            if resp.status == 200 and body and body.get("ok"):
                result = body.get("result", {})
                msg_id = result.get("message_id", "ok") if isinstance(result, dict) else "ok"
                logger.debug(f"Telegram request ok: to={mask_user_id(chat_id)}, msg_id={msg_id}")
                inc_counter("telegram_outbound_sent")
                return body

            # --- Error path ------------------------------------------------
            error_desc = (body or {}).get("description", "Unknown error")
            error_code = (body or {}).get("error_code")

            if resp.status == 401 or error_code == 401:
                logger.error(f"Telegram API auth error (token invalid): {error_desc}")
                inc_counter("telegram_outbound_auth_error")
                raise TelegramSendError(resp.status, error_code, error_desc, retryable=False)

            if resp.status == 403:
                logger.warning(f"Telegram API forbidden: {error_desc}")
                inc_counter("telegram_outbound_forbidden")
                raise TelegramSendError(resp.status, error_code, error_desc, retryable=False)

            if resp.status == 400:
                logger.warning(f"Telegram API bad request: {error_desc}")
                inc_counter("telegram_outbound_bad_request")
                raise TelegramSendError(resp.status, error_code, error_desc, retryable=False)

            if resp.status == 429:
                retry_after = (body or {}).get("parameters", {}).get("retry_after", 30)
                logger.warning(f"Telegram API rate limit, retry_after={retry_after}s")
                inc_counter("telegram_outbound_rate_limited")
                raise TelegramSendError(resp.status, error_code, error_desc, retryable=True)

            logger.error(f"Telegram API error: status={resp.status}, code={error_code}, msg={error_desc}")
            inc_counter("telegram_outbound_error")
            raise TelegramSendError(resp.status, error_code, error_desc, retryable=True)

    except TelegramSendError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.error(f"Telegram API connection error: {exc}", exc_info=True)
        inc_counter("telegram_outbound_connection_error")
        raise TelegramSendError(0, None, str(exc), retryable=True)
