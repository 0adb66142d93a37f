# tests/test_core_commands.py
"""Tests for built-in basic and owner-only admin commands"""
from __future__ import annotations

import json
from datetime import datetime

import pytest

from flowbot.core.commands import CoreDeps, core_commands
from flowbot.core.commands.admin import format_uptime
from flowbot.core.commands.basic import format_long_date
from flowbot.core.engine.registry import CommandRegistry
from flowbot.core.engine.router import ConversationRouter
from flowbot.core.engine.state_store import StateStore
from flowbot.core.plugins import PluginHost
from flowbot.core.texts import get_text

OWNER = "5511988887777"


def _build(sender, *, store=None, owner_id=OWNER, plugins=None):
    store = store if store is not None else StateStore(None)
    registry = CommandRegistry()
    router = ConversationRouter(store, registry, sender, prefix="!")
    deps = CoreDeps(
        store=store,
        registry=registry,
        plugins=plugins or PluginHost(),
        stats=router.stats,
        bot_name="TestBot",
        prefix="!",
        owner_id=owner_id,
    )
    registry.register_batch(core_commands(deps), owner="core")
    return router, store


class TestFormatting:
    def test_format_uptime(self):
        assert format_uptime(5) == "5s"
        assert format_uptime(3725) == "1h 2m 5s"
        assert format_uptime(90061) == "1d 1h 1m 1s"

    def test_format_long_date(self):
        assert format_long_date(datetime(2026, 10, 17)) == "sábado, 17 de outubro de 2026"
        assert format_long_date(datetime(2026, 3, 2)) == "segunda-feira, 2 de março de 2026"


class TestOwnerCheck:
    def test_owner_matching_ignores_domain_suffix(self):
        deps = CoreDeps(
            store=StateStore(None), registry=CommandRegistry(), plugins=PluginHost(),
            stats=None, owner_id=OWNER,
        )
        assert deps.is_owner(OWNER) is True
        assert deps.is_owner(f"{OWNER}@s.whatsapp.net") is True
        assert deps.is_owner("5511000000000") is False

    def test_empty_owner_means_nobody(self):
        deps = CoreDeps(
            store=StateStore(None), registry=CommandRegistry(), plugins=PluginHost(),
            stats=None, owner_id="",
        )
        assert deps.is_owner("") is False
        assert deps.is_owner(OWNER) is False


class TestBasicCommands:
    @pytest.mark.asyncio
    async def test_ping_greeting_echo(self, sender, make_message):
        router, _ = _build(sender)

        await router.handle(make_message("!ping"))
        await router.handle(make_message("!Olá"))
        await router.handle(make_message("!echo a  b"))
        await router.handle(make_message("!echo"))

        assert sender.texts() == [
            get_text("pong"),
            get_text("greeting", bot_name="TestBot"),
            "a b",
            get_text("echo_missing"),
        ]

    @pytest.mark.asyncio
    async def test_time_and_date(self, sender, make_message):
        router, _ = _build(sender)

        await router.handle(make_message("!hora"))
        await router.handle(make_message("!data"))

        time_text, date_text = sender.texts()
        assert time_text.startswith("A hora atual é: ")
        assert date_text.startswith("Hoje é: ")

    @pytest.mark.asyncio
    async def test_help_lists_plugin_commands(self, sender, make_message):
        router, _ = _build(sender)

        async def exemplo(params):
            return None

        router.registry.register("exemplo", exemplo, owner="example")

        await router.handle(make_message("!ajuda"))

        text = sender.last_text()
        assert "!ping" in text
        assert "*Comandos de Plugins:*" in text
        assert "!exemplo" in text


class TestAdminAccess:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["!status", "!plugins", "!estados listar", "!ajudaadmin"])
    async def test_non_owner_is_refused(self, sender, make_message, command):
        router, store = _build(sender)
        store.create("victim", "form", "name")

        await router.handle(make_message(command, sender_id="5511000000000"))

        assert sender.texts() == [get_text("owner_only")]
        assert "victim" in store

    @pytest.mark.asyncio
    async def test_unset_owner_refuses_everyone(self, sender, make_message):
        router, _ = _build(sender, owner_id="")

        await router.handle(make_message("!status", sender_id=OWNER))

        assert sender.texts() == [get_text("owner_only")]

    @pytest.mark.asyncio
    async def test_status(self, sender, make_message):
        router, store = _build(sender)
        store.create("u1", "form", "name")

        await router.handle(make_message("!status", sender_id=OWNER))

        text = sender.last_text()
        assert "*Estados ativos:* 1" in text
        assert "*Comandos executados:* 1" in text

    @pytest.mark.asyncio
    async def test_plugins_listing(self, sender, make_message):
        from flowbot.core.bots.example import ExamplePlugin

        plugins = PluginHost()
        plugins.add(ExamplePlugin())
        router, _ = _build(sender, plugins=plugins)

        await router.handle(make_message("!plugins", sender_id=OWNER))
        assert "*example* v1.0.0" in sender.last_text()

    @pytest.mark.asyncio
    async def test_plugins_listing_empty(self, sender, make_message):
        router, _ = _build(sender)

        await router.handle(make_message("!plugins", sender_id=OWNER))
        assert sender.last_text() == get_text("no_plugins")


class TestStatesCommand:
    @pytest.mark.asyncio
    async def test_clear_twice_reports_missing_state(self, sender, make_message):
        router, store = _build(sender)
        store.create("u2", "form", "email", {"name": "Ana"})

        await router.handle(make_message("!estados limpar u2", sender_id=OWNER))
        await router.handle(make_message("!estados limpar u2", sender_id=OWNER))

        assert sender.texts() == [
            get_text("state_cleared", user="u2"),
            get_text("state_missing", user="u2"),
        ]
        assert "u2" not in store

    @pytest.mark.asyncio
    async def test_list(self, sender, make_message):
        router, store = _build(sender)

        await router.handle(make_message("!estados listar", sender_id=OWNER))
        assert sender.last_text() == get_text("states_empty")

        store.create("u2", "form", "email")
        await router.handle(make_message("!estados listar", sender_id=OWNER))
        assert "• *u2*: form (email)" in sender.last_text()

    @pytest.mark.asyncio
    async def test_info(self, sender, make_message):
        router, store = _build(sender)
        store.create("u2", "form", "email", {"name": "Ana"})

        await router.handle(make_message("!estados info u2", sender_id=OWNER))

        text = sender.last_text()
        assert "• *Plugin:* form" in text
        assert "• *Estado:* email" in text
        assert json.dumps({"name": "Ana"}, indent=2) in text

    @pytest.mark.asyncio
    async def test_user_argument_required(self, sender, make_message):
        router, _ = _build(sender)

        await router.handle(make_message("!estados limpar", sender_id=OWNER))
        await router.handle(make_message("!estados info", sender_id=OWNER))

        assert sender.texts() == [get_text("states_user_required")] * 2

    @pytest.mark.asyncio
    async def test_clear_all(self, sender, make_message):
        router, store = _build(sender)
        store.create("u1", "form", "name")
        store.create("u2", "form", "name")

        await router.handle(make_message("!estados limpartodos", sender_id=OWNER))

        assert sender.last_text() == get_text("states_cleared_all", count=2)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_save(self, sender, make_message, tmp_path):
        path = tmp_path / "states.json"
        router, store = _build(sender, store=StateStore(path))
        store.create("u1", "form", "name")

        await router.handle(make_message("!estados salvar", sender_id=OWNER))

        assert sender.last_text() == get_text("states_saved")
        assert "u1" in json.loads(path.read_text(encoding="utf-8"))

    @pytest.mark.asyncio
    async def test_save_failure_is_reported(self, sender, make_message):
        router, _ = _build(sender)

        await router.handle(make_message("!estados salvar", sender_id=OWNER))

        assert sender.last_text() == get_text("states_save_failed")

    @pytest.mark.asyncio
    async def test_help_and_unknown_subcommand(self, sender, make_message):
        router, _ = _build(sender)

        await router.handle(make_message("!estados", sender_id=OWNER))
        await router.handle(make_message("!estados apagar", sender_id=OWNER))

        assert sender.texts() == [
            get_text("states_help", prefix="!"),
            get_text("states_unknown_sub", sub="apagar", prefix="!"),
        ]
