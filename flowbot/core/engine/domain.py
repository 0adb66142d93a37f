# flowbot/core/engine/domain.py
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, TYPE_CHECKING, Union

if TYPE_CHECKING:
    from flowbot.core.engine.ports import MessageSender

# JSON-compatible payload value
JSONValue = Union[str, int, float, bool, None, list, Dict[str, Any]]
Payload = Dict[str, JSONValue]

# Outbound content descriptor: {"text": ...}, {"text", "buttons"}, {"poll": ...}, ...
Content = Dict[str, Any]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# CONVERSATION STATE
# ============================================================================

@dataclass
class ConversationState:
    """
    One active flow for one user.

    ``owner_plugin`` names the plugin whose step handlers interpret this state;
    it never changes for the lifetime of the instance. ``payload`` accumulates
    the flow's data and is merged on every update.
    """
    owner_plugin: str
    current_step: str
    payload: Payload = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    last_activity_at: datetime = field(default_factory=utcnow)

    def snapshot(self) -> "ConversationState":
        """Deep copy, safe to hand to a handler"""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "owner_plugin": self.owner_plugin,
            "current_step": self.current_step,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationState":
        """
        Rebuild a state from its persisted form.

        Raises:
            KeyError / ValueError / TypeError: if the entry is malformed
        """
        owner = data["owner_plugin"]
        step = data["current_step"]
        if not isinstance(owner, str) or not isinstance(step, str):
            raise TypeError("owner_plugin and current_step must be strings")
        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise TypeError("payload must be a mapping")
        return cls(
            owner_plugin=owner,
            current_step=step,
            payload=payload,
            created_at=_parse_timestamp(data["created_at"]),
            last_activity_at=_parse_timestamp(data["last_activity_at"]),
        )


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ============================================================================
# INBOUND MESSAGE
# ============================================================================

BROADCAST_SENDERS = frozenset({"status@broadcast"})


@dataclass
class InboundMessage:
    """
    Normalized inbound chat event from any transport.

    ``text`` is already normalized from the provider representation (plain
    text, caption, or the data of a button/list selection). ``raw`` is the
    opaque provider payload, kept for quoting and reacting.
    """
    sender_id: str
    text: Optional[str] = None
    is_group: bool = False
    is_broadcast: bool = False
    selection_id: Optional[str] = None  # Set when the message is a button/list reply
    message_id: Optional[str] = None
    sender_name: Optional[str] = None
    quoted_message_id: Optional[str] = None  # Message this one replies to, if any
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def has_text(self) -> bool:
        """Check if message contains non-blank text"""
        return bool(self.text and self.text.strip())

    def is_interactive_reply(self) -> bool:
        """Check if message is a structured button/list selection"""
        return self.selection_id is not None

    def is_from_broadcast(self) -> bool:
        return self.is_broadcast or self.sender_id in BROADCAST_SENDERS


# ============================================================================
# OUTBOUND PRIORITY
# ============================================================================

class Priority(IntEnum):
    """Outbound queue tiers (higher is sent first)"""
    NORMAL = 0
    STATUS = 5
    COMMAND_RESPONSE = 10


# ============================================================================
# HANDLER PARAMETERS
# ============================================================================

@dataclass
class CommandParams:
    """
    Base parameter set handed to every command and step handler.
    """
    sender_id: str
    text: str
    args: list[str]
    is_group: bool
    message: InboundMessage
    sender: "MessageSender" = field(repr=False)
    command: Optional[str] = None  # Lowercased command name, None for step handlers
    prefix: str = "!"  # Command prefix of the router that built these params

    async def reply(
        self,
        content: Union[str, Content],
        priority: Priority = Priority.COMMAND_RESPONSE,
    ) -> None:
        """Send a reply to the message author"""
        if isinstance(content, str):
            content = {"text": content}
        await self.sender.send_message(self.sender_id, content, priority=priority)


class Route(str, Enum):
    """Outcome of routing one inbound message"""
    IGNORED = "ignored"
    STATE = "state"
    INTERACTIVE = "interactive"
    COMMAND = "command"
    UNKNOWN_COMMAND = "unknown_command"
    PLAIN = "plain"
