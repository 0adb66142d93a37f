# flowbot/core/plugins/base.py
"""
Plugin Protocol - the interface every feature plugin must implement.

A plugin contributes plain commands and flow step handlers. The host checks
the shape once at discovery time; BasePlugin provides the common plumbing.
"""
from __future__ import annotations

from typing import Mapping, Optional, Protocol, Union

from flowbot.core.engine.ports import CommandHandler, MessageSender
from flowbot.core.engine.registry import RegistryKey, StepKey
from flowbot.infra.logging_config import get_logger

logger = get_logger(__name__)

PLUGIN_ATTRIBUTES = ("name", "description", "version")
PLUGIN_METHODS = ("initialize", "get_commands", "on_shutdown")


class Plugin(Protocol):
    name: str
    description: str
    version: str

    async def initialize(self, transport: MessageSender) -> None:
        """
        Prepare the plugin and register its handlers.

        Args:
            transport: Outbound sender, kept for messages the plugin sends on
                       its own initiative
        """
        ...

    def get_commands(self) -> Mapping[RegistryKey, CommandHandler]:
        """
        Return the handlers provided by this plugin.

        Keys are plain command names, ``state:<plugin>:<step>`` strings or
        StepKey instances.
        """
        ...

    async def on_shutdown(self) -> None:
        ...


def plugin_shape_errors(candidate: object) -> list[str]:
    """List what keeps ``candidate`` from being usable as a Plugin"""
    errors = []
    for attr in PLUGIN_ATTRIBUTES:
        value = getattr(candidate, attr, None)
        if not isinstance(value, str) or not value:
            errors.append(f"'{attr}' must be a non-empty string")
    for method in PLUGIN_METHODS:
        if not callable(getattr(candidate, method, None)):
            errors.append(f"'{method}' must be callable")
    return errors


class BasePlugin:
    """
    Convenience base class.

    Subclasses set ``name``, ``description`` and ``version`` and register
    their handlers in ``on_initialize``.
    """

    name: str = ""
    description: str = ""
    version: str = "1.0.0"

    def __init__(self) -> None:
        self.transport: Optional[MessageSender] = None
        self._commands: dict[RegistryKey, CommandHandler] = {}

    async def initialize(self, transport: MessageSender) -> None:
        self.transport = transport
        await self.on_initialize()
        logger.info(f"Plugin {self.name} v{self.version} initialized")

    async def on_initialize(self) -> None:
        """Hook for subclasses"""

    def get_commands(self) -> dict[RegistryKey, CommandHandler]:
        return dict(self._commands)

    async def on_shutdown(self) -> None:
        logger.info(f"Plugin {self.name} shut down")

    def register_command(self, name: Union[str, StepKey], handler: CommandHandler) -> None:
        self._commands[name] = handler
        logger.debug(f"Plugin {self.name} registered command: {name}")

    def register_step(self, step: str, handler: CommandHandler) -> None:
        """Register a step handler for a flow owned by this plugin"""
        self.register_command(StepKey(self.name, step), handler)
