# flowbot/core/engine/registry.py
"""
Command Registry - maps command names and flow steps to handlers.

Two kinds of keys live in the same table:
  - plain command names ("ping", "estados"), matched case-insensitively
  - StepKey(owner, step) for conversation steps, also accepted in the
    string form "state:<owner>:<step>" at registration time
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Iterable, Mapping, NamedTuple, Optional, Union

from flowbot.core.engine.ports import CommandHandler
from flowbot.infra.logging_config import get_logger

logger = get_logger(__name__)

STATE_PREFIX = "state:"
CORE_OWNER = "core"


class StepKey(NamedTuple):
    """Tagged key for a conversation step handler"""
    owner: str
    step: str

    def __str__(self) -> str:
        return f"{STATE_PREFIX}{self.owner}:{self.step}"


RegistryKey = Union[str, StepKey]


@dataclass(frozen=True)
class RegisteredCommand:
    name: RegistryKey
    handler: CommandHandler
    owner: str = CORE_OWNER
    accepts_flow: bool = False

    @property
    def is_step(self) -> bool:
        return isinstance(self.name, StepKey)


def accepts_flow_param(handler: CommandHandler) -> bool:
    """True when the handler declares a ``flow`` parameter"""
    try:
        params = inspect.signature(handler).parameters
    except (TypeError, ValueError):
        return False
    return "flow" in params


def parse_key(name: RegistryKey) -> RegistryKey:
    """
    Normalize a registry key.

    Plain names are stripped and lowercased. ``state:<owner>:<step>`` strings
    become StepKey.

    Raises:
        ValueError: empty name or malformed state name
    """
    if isinstance(name, StepKey):
        if not name.owner or not name.step:
            raise ValueError(f"Invalid step key: {name!r}")
        return name

    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Invalid command name: {name!r}")

    if name.startswith(STATE_PREFIX):
        parts = name[len(STATE_PREFIX):].split(":")
        if len(parts) != 2 or not all(p.strip() for p in parts):
            raise ValueError(
                f"Invalid state handler name {name!r}, expected 'state:<plugin>:<step>'"
            )
        return StepKey(parts[0].strip(), parts[1].strip())

    return name.strip().lower()


def make_entry(key: RegistryKey, handler: CommandHandler, owner: str) -> RegisteredCommand:
    """
    Build a registry entry for an already parsed key.

    Step entries always belong to the plugin named in their key, and their
    handler must accept ``flow``.

    Raises:
        ValueError: step handler without a ``flow`` parameter
    """
    accepts_flow = accepts_flow_param(handler)
    if isinstance(key, StepKey):
        if not accepts_flow:
            raise ValueError(f"Step handler for '{key}' must accept a 'flow' parameter")
        owner = key.owner
    return RegisteredCommand(name=key, handler=handler, owner=owner, accepts_flow=accepts_flow)


class CommandRegistry:
    """
    Mapping from command name or StepKey to RegisteredCommand.
    Later registrations replace earlier ones.
    """

    def __init__(self) -> None:
        self._commands: dict[RegistryKey, RegisteredCommand] = {}

    def register(
        self,
        name: RegistryKey,
        handler: CommandHandler,
        *,
        owner: str = CORE_OWNER,
    ) -> RegisteredCommand:
        entry = make_entry(parse_key(name), handler, owner)
        self._store(entry)
        return entry

    def register_batch(
        self,
        mapping: Mapping[RegistryKey, Union[CommandHandler, RegisteredCommand]],
        *,
        owner: str = CORE_OWNER,
    ) -> int:
        """Register many handlers in mapping order. Returns how many were registered."""
        count = 0
        for name, value in mapping.items():
            if isinstance(value, RegisteredCommand):
                self._store(make_entry(parse_key(value.name), value.handler, value.owner))
            else:
                self.register(name, value, owner=owner)
            count += 1
        return count

    def has(self, name: RegistryKey) -> bool:
        try:
            return parse_key(name) in self._commands
        except ValueError:
            return False

    def resolve(self, name: RegistryKey) -> Optional[RegisteredCommand]:
        try:
            return self._commands.get(parse_key(name))
        except ValueError:
            return None

    def resolve_step(self, owner: str, step: str) -> Optional[RegisteredCommand]:
        return self._commands.get(StepKey(owner, step))

    def unregister_owner(self, owner: str) -> int:
        """Drop every entry registered by ``owner``"""
        keys = [k for k, c in self._commands.items() if c.owner == owner]
        for key in keys:
            del self._commands[key]
        return len(keys)

    def names(self) -> list[str]:
        """Sorted plain command names (step handlers excluded)"""
        return sorted(k for k in self._commands if not isinstance(k, StepKey))

    def commands(self) -> Iterable[RegisteredCommand]:
        return list(self._commands.values())

    def __len__(self) -> int:
        return len(self._commands)

    def _store(self, entry: RegisteredCommand) -> None:
        previous = self._commands.get(entry.name)
        if previous is not None:
            logger.warning(
                f"Handler for '{entry.name}' replaced: "
                f"owner {previous.owner} -> {entry.owner}"
            )
        self._commands[entry.name] = entry
        logger.debug(f"Registered handler '{entry.name}' (owner={entry.owner}, flow={entry.accepts_flow})")
