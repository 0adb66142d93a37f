# tests/test_telegram.py
"""
Tests for the Telegram channel:
- update adapter
- content rendering to Bot API calls
- shared update processing
"""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from flowbot.core.content import Button, ListRow, ListSection, buttons_content, list_content, poll_content
from flowbot.core.engine.domain import Route
from flowbot.transport.adapters import TelegramAdapter
from flowbot.transport.telegram_polling import process_update
from flowbot.transport.telegram_sender import TelegramSendError, TelegramTransport, render_content
from flowbot.infra.http_client import close_all_sessions, get_poller_session, get_sender_session
from flowbot.infra.metrics import get_counter


def _message_update(text="hello", chat_type="private", **extra) -> dict:
    message = {
        "message_id": 42,
        "from": {"id": 123, "first_name": "Ana", "last_name": "Souza", "username": "ana"},
        "chat": {"id": 123, "type": chat_type},
        "text": text,
    }
    message.update(extra)
    return {"update_id": 1000, "message": message}


class TestTelegramAdapter:
    def setup_method(self):
        self.adapter = TelegramAdapter(command_prefix="!")

    def test_private_text_message(self):
        msg = self.adapter.adapt_update(_message_update("hello"))

        assert msg.sender_id == "123"
        assert msg.text == "hello"
        assert msg.is_group is False
        assert msg.is_broadcast is False
        assert msg.message_id == "42"
        assert msg.sender_name == "Ana Souza (@ana)"
        assert msg.quoted_message_id is None

    def test_bot_command_is_rewritten_to_prefix(self):
        assert self.adapter.adapt_update(_message_update("/ping@MyBot a b")).text == "!ping a b"
        assert self.adapter.adapt_update(_message_update("/form")).text == "!form"

    def test_custom_prefix(self):
        adapter = TelegramAdapter(command_prefix="#")
        assert adapter.adapt_update(_message_update("/ajuda")).text == "#ajuda"

    def test_lone_slash_is_kept(self):
        assert self.adapter.adapt_update(_message_update("/")).text == "/"

    def test_caption_is_used_as_text(self):
        update = _message_update(text=None, caption="photo caption")
        assert self.adapter.adapt_update(update).text == "photo caption"

    def test_group_chat(self):
        msg = self.adapter.adapt_update(_message_update("hi", chat_type="supergroup"))
        assert msg.is_group is True

    def test_reply_sets_quoted_message(self):
        update = _message_update("!reacao", reply_to_message={"message_id": 41})
        assert self.adapter.adapt_update(update).quoted_message_id == "41"

    def test_callback_query_becomes_selection(self):
        update = {
            "update_id": 1001,
            "callback_query": {
                "id": "cb-1",
                "from": {"id": 123, "first_name": "Ana"},
                "message": {"message_id": 50, "chat": {"id": 123, "type": "private"}},
                "data": "menu_support",
            },
        }

        msg = self.adapter.adapt_update(update)

        assert msg.sender_id == "123"
        assert msg.selection_id == "menu_support"
        assert msg.text == "menu_support"
        assert msg.is_interactive_reply() is True

    def test_channel_post_is_broadcast(self):
        update = {"update_id": 1, "channel_post": {"message_id": 1, "chat": {"id": -100}, "text": "news"}}
        msg = self.adapter.adapt_update(update)
        assert msg.is_broadcast is True
        assert msg.is_from_broadcast() is True

    def test_irrelevant_updates(self):
        assert self.adapter.adapt_update({"update_id": 1, "edited_message": {}}) is None
        assert self.adapter.adapt_update({"update_id": 1, "message": {"text": "no chat"}}) is None


class TestRenderContent:
    def test_plain_text(self):
        assert render_content("123", {"text": "oi"}) == (
            "sendMessage", {"chat_id": "123", "text": "oi"},
        )

    def test_buttons(self):
        content = buttons_content("Escolha", [Button("a", "A"), Button("b", "B")], "rodapé")

        method, payload = render_content("123", content)

        assert method == "sendMessage"
        assert payload["text"] == "Escolha\n\nrodapé"
        assert payload["reply_markup"] == {"inline_keyboard": [
            [{"text": "A", "callback_data": "a"}],
            [{"text": "B", "callback_data": "b"}],
        ]}

    def test_list(self):
        content = list_content(
            "Selecione",
            "Ver",
            [ListSection("S", [ListRow("r1", "Um", "primeiro"), ListRow("r2", "Dois")])],
            title="Menu",
        )

        method, payload = render_content("123", content)

        assert payload["text"] == "Menu\n\nSelecione"
        assert payload["reply_markup"]["inline_keyboard"] == [
            [{"text": "Um - primeiro", "callback_data": "r1"}],
            [{"text": "Dois", "callback_data": "r2"}],
        ]

    def test_poll(self):
        method, payload = render_content("123", poll_content("Cor?", ["Azul", "Verde"]))

        assert method == "sendPoll"
        assert payload["options"] == [{"text": "Azul"}, {"text": "Verde"}]
        assert payload["allows_multiple_answers"] is False

    def test_reaction(self):
        method, payload = render_content("123", {"reaction": "👍", "message_id": "41"})

        assert method == "setMessageReaction"
        assert payload["message_id"] == 41
        assert payload["reaction"] == [{"type": "emoji", "emoji": "👍"}]

    def test_unsupported_content(self):
        with pytest.raises(ValueError):
            render_content("123", {"image": "x.png"})


class TestTelegramTransport:
    def test_token_required(self):
        with pytest.raises(ValueError):
            TelegramTransport("")

    @pytest.mark.asyncio
    async def test_unrenderable_content_is_not_retryable(self):
        transport = TelegramTransport("123:abc")

        with pytest.raises(TelegramSendError) as exc_info:
            await transport.deliver("123", {"unknown": True})

        assert exc_info.value.retryable is False


class TestProcessUpdate:
    @pytest.mark.asyncio
    async def test_routes_message(self):
        router = AsyncMock()
        router.handle.return_value = Route.COMMAND

        await process_update(_message_update("/ping"), adapter=TelegramAdapter(), router=router)

        message = router.handle.await_args.args[0]
        assert message.text == "!ping"
        assert get_counter("inbound_messages_total") == 1

    @pytest.mark.asyncio
    async def test_answers_callback_queries(self):
        router = AsyncMock()
        router.handle.return_value = Route.INTERACTIVE
        transport = AsyncMock()
        update = {
            "update_id": 1,
            "callback_query": {
                "id": "cb-1",
                "message": {"message_id": 5, "chat": {"id": 9, "type": "private"}},
                "data": "option1",
            },
        }

        await process_update(update, adapter=TelegramAdapter(), router=router, transport=transport)

        transport.answer_callback_query.assert_awaited_once_with("cb-1")
        router.handle.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_router_failure_does_not_propagate(self):
        router = AsyncMock()
        router.handle.side_effect = RuntimeError("boom")

        await process_update(_message_update("hi"), adapter=TelegramAdapter(), router=router)

    @pytest.mark.asyncio
    async def test_ignored_update_skips_router(self):
        router = AsyncMock()

        await process_update({"update_id": 1, "poll": {}}, adapter=TelegramAdapter(), router=router)

        router.handle.assert_not_awaited()


class TestHttpSessions:
    @pytest.mark.asyncio
    async def test_sessions_are_shared_per_kind_and_reopened_after_close(self):
        sender_session = get_sender_session()
        poller_session = get_poller_session()
        try:
            assert get_sender_session() is sender_session
            assert poller_session is not sender_session
            assert sender_session.timeout.total == 25
            assert poller_session.timeout.total is None
        finally:
            await close_all_sessions()

        assert sender_session.closed and poller_session.closed

        reopened = get_sender_session()
        try:
            assert reopened is not sender_session
            assert not reopened.closed
        finally:
            await close_all_sessions()
