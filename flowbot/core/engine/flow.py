# flowbot/core/engine/flow.py
from __future__ import annotations

from typing import Optional

from flowbot.core.engine.domain import ConversationState, Payload
from flowbot.core.engine.state_store import StateStore
from flowbot.infra.logging_config import get_logger, mask_user_id

logger = get_logger(__name__)


class FlowContext:
    """
    State mutation capability handed to a handler for one message.

    Bound to one user and one owner plugin. ``state`` is a snapshot taken at
    dispatch time; mutations go straight through to the store.
    """

    def __init__(self, store: StateStore, user_id: str, owner: str) -> None:
        self._store = store
        self.user_id = user_id
        self.owner = owner
        current = store.get(user_id)
        self.state: Optional[ConversationState] = current.snapshot() if current else None

    @property
    def step(self) -> Optional[str]:
        return self.state.current_step if self.state else None

    @property
    def payload(self) -> Payload:
        return self.state.payload if self.state else {}

    def create_state(self, step: str, payload: Payload | None = None) -> bool:
        """
        Begin a flow for the bound user.

        Returns False without touching the store when another plugin owns the
        user's active state. An existing state of the same owner is replaced.
        """
        existing = self._store.get(self.user_id)
        if existing is not None and existing.owner_plugin != self.owner:
            logger.warning(
                f"Refusing to create state for user={mask_user_id(self.user_id)}: "
                f"owned by {existing.owner_plugin}, requested by {self.owner}"
            )
            return False

        created = self._store.create(self.user_id, self.owner, step, payload)
        self.state = created.snapshot()
        return True

    def update_state(self, next_step: str, patch: Payload | None = None) -> bool:
        existing = self._store.get(self.user_id)
        if existing is not None and existing.owner_plugin != self.owner:
            logger.warning(
                f"Refusing to update state for user={mask_user_id(self.user_id)}: "
                f"owned by {existing.owner_plugin}, requested by {self.owner}"
            )
            return False

        if not self._store.update(self.user_id, next_step, patch):
            return False
        self.state = self._store.get(self.user_id).snapshot()
        return True

    def clear_state(self) -> bool:
        cleared = self._store.clear(self.user_id)
        self.state = None
        return cleared
