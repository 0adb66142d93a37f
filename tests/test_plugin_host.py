# tests/test_plugin_host.py
"""
Tests for plugin discovery and lifecycle:
- loading packages and modules from a directory
- failure isolation (import, shape, initialize, shutdown)
- enable/disable filters and command collection
"""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from flowbot.config import BUILTIN_PLUGINS_DIR
from flowbot.core.engine.registry import StepKey
from flowbot.core.plugins import BasePlugin, PluginHost, PluginLoadError
from flowbot.infra.metrics import get_counter


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

GOOD_PLUGIN = '''
from flowbot.core.plugins import BasePlugin


class GreeterPlugin(BasePlugin):
    name = "greeter"
    description = "Greets people"
    version = "2.0.0"

    async def on_initialize(self):
        self.register_command("hello", self.hello)
        self.register_step("ask", self.ask)

    async def hello(self, params):
        await params.reply("hi")

    async def ask(self, params, flow):
        flow.clear_state()


plugin = GreeterPlugin()
'''


def _simple_plugin(name: str, command: str = "shared") -> str:
    return textwrap.dedent(f'''
        from flowbot.core.plugins import BasePlugin


        class Plugin(BasePlugin):
            name = "{name}"
            description = "{name} plugin"

            async def on_initialize(self):
                self.register_command("{command}", self.run)

            async def run(self, params):
                await params.reply("{name}")
    ''')


def _write_package(root: Path, dirname: str, source: str) -> None:
    package = root / dirname
    package.mkdir()
    (package / "__init__.py").write_text(source, encoding="utf-8")


def _write_module(root: Path, filename: str, source: str) -> None:
    (root / filename).write_text(source, encoding="utf-8")


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

class TestPluginDiscovery:
    def test_loads_package_plugin(self, tmp_path):
        _write_package(tmp_path, "greeter", GOOD_PLUGIN)
        host = PluginHost()

        assert host.load(tmp_path) == ["greeter"]
        assert host.get("greeter").version == "2.0.0"
        assert len(host) == 1

    def test_loads_plugin_class_from_module(self, tmp_path):
        _write_module(tmp_path, "standalone.py", _simple_plugin("standalone"))
        host = PluginHost()

        assert host.load(tmp_path) == ["standalone"]

    def test_import_error_is_isolated(self, tmp_path):
        _write_module(tmp_path, "broken.py", "raise RuntimeError('cannot import')\n")
        _write_package(tmp_path, "greeter", GOOD_PLUGIN)
        host = PluginHost()

        assert host.load(tmp_path) == ["greeter"]
        assert get_counter("plugin_failures_total") == 1

    def test_bad_shape_is_rejected(self, tmp_path):
        _write_module(tmp_path, "shapeless.py", "plugin = object()\n")
        _write_module(tmp_path, "empty.py", "VALUE = 1\n")
        host = PluginHost()

        assert host.load(tmp_path) == []
        assert get_counter("plugin_failures_total") == 2

    def test_skips_private_entries_and_plain_dirs(self, tmp_path):
        _write_module(tmp_path, "_hidden.py", _simple_plugin("hidden"))
        (tmp_path / "assets").mkdir()
        _write_module(tmp_path, "notes.txt", "not python")
        host = PluginHost()

        assert host.load(tmp_path) == []

    def test_missing_directory(self, tmp_path):
        assert PluginHost().load(tmp_path / "nowhere") == []

    def test_disabled_plugins_are_skipped(self, tmp_path):
        _write_module(tmp_path, "alpha.py", _simple_plugin("alpha", "a"))
        _write_module(tmp_path, "beta.py", _simple_plugin("beta", "b"))

        host = PluginHost(disabled=["alpha"])
        assert host.load(tmp_path) == ["beta"]

    def test_enabled_list_restricts_loading(self, tmp_path):
        _write_module(tmp_path, "alpha.py", _simple_plugin("alpha", "a"))
        _write_module(tmp_path, "beta.py", _simple_plugin("beta", "b"))

        host = PluginHost(enabled=["alpha"])
        assert host.load(tmp_path) == ["alpha"]

    def test_add_rejects_invalid_plugin(self):
        class Nameless(BasePlugin):
            description = "no name"

        with pytest.raises(PluginLoadError):
            PluginHost().add(Nameless())

    def test_builtin_plugins(self):
        host = PluginHost()
        assert host.load(BUILTIN_PLUGINS_DIR) == ["example", "form", "interactive"]


# ---------------------------------------------------------------------------
# Lifecycle and commands
# ---------------------------------------------------------------------------

class TestPluginLifecycle:
    @pytest.mark.asyncio
    async def test_collects_commands_with_owner(self, tmp_path, sender):
        _write_package(tmp_path, "greeter", GOOD_PLUGIN)
        host = PluginHost()
        host.load(tmp_path)

        assert await host.initialize_all(sender) == ["greeter"]
        assert host.get("greeter").transport is sender

        commands = host.collect_commands()
        assert set(commands) == {"hello", StepKey("greeter", "ask")}
        assert commands["hello"].owner == "greeter"
        assert commands["hello"].accepts_flow is False
        assert commands[StepKey("greeter", "ask")].accepts_flow is True

    @pytest.mark.asyncio
    async def test_failed_initialize_contributes_nothing(self, sender):
        class Failing(BasePlugin):
            name = "failing"
            description = "fails on start"

            async def on_initialize(self):
                self.register_command("never", self.never)
                raise RuntimeError("init failed")

            async def never(self, params):
                return None

        class Healthy(BasePlugin):
            name = "healthy"
            description = "works"

            async def on_initialize(self):
                self.register_command("works", self.works)

            async def works(self, params):
                return None

        host = PluginHost()
        host.add(Failing())
        host.add(Healthy())

        assert await host.initialize_all(sender) == ["healthy"]
        assert host.is_healthy("failing") is False
        assert host.is_healthy("healthy") is True
        assert [p.name for p in host.all()] == ["failing", "healthy"]
        assert set(host.collect_commands()) == {"works"}

    @pytest.mark.asyncio
    async def test_later_plugin_overrides_earlier(self, tmp_path, sender):
        _write_module(tmp_path, "a_first.py", _simple_plugin("first"))
        _write_module(tmp_path, "b_second.py", _simple_plugin("second"))
        host = PluginHost()
        host.load(tmp_path)
        await host.initialize_all(sender)

        commands = host.collect_commands()
        assert commands["shared"].owner == "second"

    @pytest.mark.asyncio
    async def test_invalid_handler_names_are_skipped(self, sender):
        class Sloppy(BasePlugin):
            name = "sloppy"
            description = "registers a broken key"

            async def on_initialize(self):
                self.register_command("state:sloppy", self.run)
                self.register_command("ok", self.run)

            async def run(self, params):
                return None

        host = PluginHost()
        host.add(Sloppy())
        await host.initialize_all(sender)

        assert set(host.collect_commands()) == {"ok"}

    @pytest.mark.asyncio
    async def test_step_entries_keep_key_owner(self, sender):
        class Helper(BasePlugin):
            name = "helper"
            description = "adds steps to the form flow"

            async def on_initialize(self):
                self.register_command("state:form:extra", self.extra)
                self.register_command("state:form:plain", self.plain)

            async def extra(self, params, flow):
                return None

            async def plain(self, params):
                return None

        host = PluginHost()
        host.add(Helper())
        await host.initialize_all(sender)

        commands = host.collect_commands()
        assert set(commands) == {StepKey("form", "extra")}
        assert commands[StepKey("form", "extra")].owner == "form"

    @pytest.mark.asyncio
    async def test_shutdown_failures_are_isolated(self, sender):
        closed = []

        class Noisy(BasePlugin):
            name = "noisy"
            description = "fails on shutdown"

            async def on_shutdown(self):
                raise RuntimeError("shutdown failed")

        class Quiet(BasePlugin):
            name = "quiet"
            description = "shuts down"

            async def on_shutdown(self):
                closed.append(self.name)

        host = PluginHost()
        host.add(Noisy())
        host.add(Quiet())

        await host.shutdown_all()

        assert closed == ["quiet"]
        assert get_counter("plugin_failures_total") == 1
