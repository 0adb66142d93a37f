# flowbot/core/plugins/host.py
"""
Plugin Host - discovers, initializes and shuts down feature plugins.

Discovery scans one directory level: every package (subdirectory with an
``__init__.py``) and every top-level ``.py`` module. A module exposes either a
``plugin`` instance or a ``Plugin`` class instantiated with no arguments.

Every failure (import, shape, initialize, get_commands, shutdown) is isolated
to the plugin that caused it.

Usage at startup::

    host = PluginHost(enabled=settings.enabled_plugin_names(),
                      disabled=settings.disabled_plugin_names())
    host.load(settings.resolved_plugins_dir)
    await host.initialize_all(outbound)
    registry.register_batch(host.collect_commands())
"""
from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from types import ModuleType
from typing import Optional, Sequence

from flowbot.core.engine.ports import MessageSender
from flowbot.core.engine.registry import (
    RegisteredCommand,
    RegistryKey,
    make_entry,
    parse_key,
)
from flowbot.core.plugins.base import Plugin, plugin_shape_errors
from flowbot.infra.logging_config import get_logger
from flowbot.infra.metrics import AppMetrics

logger = get_logger(__name__)

_MODULE_PREFIX = "flowbot_plugin_"


class PluginLoadError(Exception):
    """A discovered module could not be turned into a plugin"""


class PluginHost:
    def __init__(
        self,
        *,
        enabled: Sequence[str] | None = None,
        disabled: Sequence[str] | None = None,
    ) -> None:
        self._plugins: dict[str, Plugin] = {}
        self._failed: set[str] = set()
        self._enabled = set(enabled or ())
        self._disabled = set(disabled or ())

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def load(self, directory: str | Path) -> list[str]:
        """
        Discover plugins under ``directory``.

        Returns:
            Names of the plugins loaded by this call, in discovery order
        """
        root = Path(directory)
        if not root.is_dir():
            logger.warning(f"Plugins directory not found: {root}")
            return []

        logger.info(f"Loading plugins from {root}")
        loaded: list[str] = []

        for path in sorted(root.iterdir()):
            if path.name.startswith(("_", ".")):
                continue
            if path.is_dir():
                if not (path / "__init__.py").is_file():
                    logger.debug(f"Skipping {path.name}: not a package")
                    continue
            elif path.suffix != ".py":
                continue

            try:
                plugin = self._load_path(path)
            except PluginLoadError as exc:
                AppMetrics.plugin_failed("load")
                logger.error(f"Plugin at {path} rejected: {exc}")
                continue
            except Exception as exc:
                AppMetrics.plugin_failed("load")
                logger.error(f"Failed to import plugin at {path}: {exc}", exc_info=True)
                continue

            if not self._is_allowed(plugin.name):
                logger.info(f"Plugin {plugin.name} skipped by configuration")
                continue

            self.add(plugin)
            loaded.append(plugin.name)

        logger.info(f"{len(self._plugins)} plugin(s) loaded: {', '.join(self._plugins) or '-'}")
        return loaded

    def add(self, plugin: Plugin) -> None:
        """Register an already constructed plugin. Same name replaces the previous one."""
        errors = plugin_shape_errors(plugin)
        if errors:
            raise PluginLoadError("; ".join(errors))
        if plugin.name in self._plugins:
            logger.warning(f"Plugin {plugin.name} loaded twice, keeping the last one")
        self._plugins[plugin.name] = plugin
        self._failed.discard(plugin.name)
        logger.info(f"Plugin loaded: {plugin.name} v{plugin.version}")

    def _is_allowed(self, name: str) -> bool:
        if name in self._disabled:
            return False
        return not self._enabled or name in self._enabled

    def _load_path(self, path: Path) -> Plugin:
        module = _import_module(path)

        candidate = getattr(module, "plugin", None)
        if candidate is None:
            plugin_cls = getattr(module, "Plugin", None)
            if plugin_cls is None:
                raise PluginLoadError("module exposes neither 'plugin' nor 'Plugin'")
            if not callable(plugin_cls):
                raise PluginLoadError("'Plugin' is not callable")
            candidate = plugin_cls()

        errors = plugin_shape_errors(candidate)
        if errors:
            raise PluginLoadError("; ".join(errors))
        return candidate

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize_all(self, transport: MessageSender) -> list[str]:
        """
        Initialize plugins sequentially in load order.

        A plugin whose ``initialize`` raises is kept for listing but
        contributes no commands.

        Returns:
            Names of the plugins that initialized successfully
        """
        ready: list[str] = []
        for name, plugin in self._plugins.items():
            try:
                await plugin.initialize(transport)
            except Exception as exc:
                self._failed.add(name)
                AppMetrics.plugin_failed("initialize")
                logger.error(f"Failed to initialize plugin {name}: {exc}", exc_info=True)
                continue
            ready.append(name)
        return ready

    def collect_commands(self) -> dict[RegistryKey, RegisteredCommand]:
        """
        Merge the handlers of every healthy plugin.

        Later plugins overwrite earlier ones on name clashes. The owner of
        each command is the contributing plugin's name; step entries keep the
        owner named in their key.
        """
        merged: dict[RegistryKey, RegisteredCommand] = {}

        for name, plugin in self._plugins.items():
            if name in self._failed:
                continue
            try:
                commands = dict(plugin.get_commands())
            except Exception as exc:
                AppMetrics.plugin_failed("get_commands")
                logger.error(f"Failed to collect commands from plugin {name}: {exc}", exc_info=True)
                continue

            for raw_key, handler in commands.items():
                try:
                    key = parse_key(raw_key)
                except ValueError as exc:
                    logger.error(f"Plugin {name} registered an invalid handler name: {exc}")
                    continue
                if not callable(handler):
                    logger.error(f"Plugin {name} handler for '{key}' is not callable")
                    continue
                try:
                    entry = make_entry(key, handler, name)
                except ValueError as exc:
                    logger.error(f"Plugin {name}: {exc}")
                    continue

                previous = merged.get(key)
                if previous is not None:
                    logger.warning(f"Command '{key}' of plugin {previous.owner} overridden by {name}")
                merged[key] = entry

            logger.debug(f"Plugin {name} provides: {', '.join(str(k) for k in commands) or '-'}")

        return merged

    async def shutdown_all(self) -> None:
        for name, plugin in self._plugins.items():
            try:
                await plugin.on_shutdown()
            except Exception as exc:
                AppMetrics.plugin_failed("shutdown")
                logger.error(f"Failed to shut down plugin {name}: {exc}", exc_info=True)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> Optional[Plugin]:
        return self._plugins.get(name)

    def all(self) -> list[Plugin]:
        return list(self._plugins.values())

    def is_healthy(self, name: str) -> bool:
        return name in self._plugins and name not in self._failed

    def __len__(self) -> int:
        return len(self._plugins)


def _import_module(path: Path) -> ModuleType:
    """Import a plugin package or module from an arbitrary directory"""
    module_name = f"{_MODULE_PREFIX}{path.stem}"

    if path.is_dir():
        spec = importlib.util.spec_from_file_location(
            module_name,
            path / "__init__.py",
            submodule_search_locations=[str(path)],
        )
    else:
        spec = importlib.util.spec_from_file_location(module_name, path)

    if spec is None or spec.loader is None:
        raise PluginLoadError(f"cannot build import spec for {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module
