# flowbot/core/engine/__init__.py
"""
Core engine -- transport-agnostic conversation state machinery.

This package contains the domain models, the outbound port, the state store,
the command registry, the per-message FlowContext and the router.

Canonical imports:
    from flowbot.core.engine import ConversationRouter, StateStore, CommandRegistry
    from flowbot.core.engine.domain import InboundMessage, ConversationState
    from flowbot.core.engine.ports import MessageSender
"""
from flowbot.core.engine.domain import (  # noqa: F401
    CommandParams,
    ConversationState,
    InboundMessage,
    Priority,
    Route,
)
from flowbot.core.engine.ports import MessageSender, CommandHandler, MessageListener  # noqa: F401
from flowbot.core.engine.state_store import StateStore  # noqa: F401
from flowbot.core.engine.registry import (  # noqa: F401
    CommandRegistry,
    RegisteredCommand,
    StepKey,
)
from flowbot.core.engine.flow import FlowContext  # noqa: F401
from flowbot.core.engine.router import ConversationRouter, RouterStats  # noqa: F401
