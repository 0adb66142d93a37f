# flowbot/core/commands/context.py
from __future__ import annotations

from dataclasses import dataclass

from flowbot.core.engine.registry import CommandRegistry
from flowbot.core.engine.router import RouterStats
from flowbot.core.engine.state_store import StateStore
from flowbot.core.plugins.host import PluginHost


@dataclass
class CoreDeps:
    """Runtime objects the built-in commands read from"""
    store: StateStore
    registry: CommandRegistry
    plugins: PluginHost
    stats: RouterStats
    bot_name: str = "FlowBot"
    prefix: str = "!"
    owner_id: str = ""

    def is_owner(self, sender_id: str) -> bool:
        """Compare the sender (without any ``@domain`` suffix) to the configured owner"""
        if not self.owner_id:
            return False
        return sender_id.split("@")[0] == self.owner_id.split("@")[0]
