# flowbot/core/commands/__init__.py
"""
Built-in commands registered under the ``core`` owner.

Usage at startup::

    registry.register_batch(core_commands(deps), owner="core")
"""
from flowbot.core.commands.admin import AdminCommands
from flowbot.core.commands.basic import BasicCommands
from flowbot.core.commands.context import CoreDeps
from flowbot.core.engine.ports import CommandHandler


def core_commands(deps: CoreDeps) -> dict[str, CommandHandler]:
    """Every built-in command, admin ones last"""
    return {
        **BasicCommands(deps).commands(),
        **AdminCommands(deps).commands(),
    }


__all__ = ["AdminCommands", "BasicCommands", "CoreDeps", "core_commands"]
