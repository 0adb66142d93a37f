# flowbot/core/engine/state_store.py
"""
In-memory conversation state map with JSON snapshot persistence.

The map is the single authority while the process runs. It is written to disk
as one JSON document (user id -> state) on a fixed interval, at shutdown and
on demand, and loaded once at startup.

Usage:
    store = StateStore(".data/states.json", max_age_hours=24, save_interval_minutes=5)
    store.load()
    store.start()
    ...
    await store.shutdown()
"""
from __future__ import annotations

import asyncio
import copy
import json
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from flowbot.core.engine.domain import ConversationState, Payload, utcnow
from flowbot.infra.logging_config import get_logger, mask_user_id
from flowbot.infra.metrics import AppMetrics

logger = get_logger(__name__)


class StateStore:
    """
    Durable map from user id to ConversationState.

    All operations are synchronous; with a single event loop they never
    interleave with a partially applied mutation.
    """

    def __init__(
        self,
        path: str | Path | None,
        *,
        max_age_hours: float = 24,
        save_interval_minutes: float = 5,
        sweep_interval_minutes: float = 60,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._states: dict[str, ConversationState] = {}
        self._max_age_hours = max_age_hours
        self._save_interval = save_interval_minutes * 60
        self._sweep_interval = sweep_interval_minutes * 60
        self._tasks: list[asyncio.Task] = []

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._states

    # ------------------------------------------------------------------
    # Lookup and mutation
    # ------------------------------------------------------------------

    def get(self, user_id: str) -> Optional[ConversationState]:
        return self._states.get(user_id)

    def set(self, user_id: str, state: ConversationState) -> None:
        self._states[user_id] = state
        logger.debug(f"State set: user={mask_user_id(user_id)}, step={state.current_step}")

    def create(
        self,
        user_id: str,
        owner_plugin: str,
        initial_step: str,
        payload: Payload | None = None,
    ) -> ConversationState:
        now = utcnow()
        state = ConversationState(
            owner_plugin=owner_plugin,
            current_step=initial_step,
            payload=copy.deepcopy(payload) if payload else {},
            created_at=now,
            last_activity_at=now,
        )
        self._states[user_id] = state
        AppMetrics.state_created(owner_plugin)
        logger.debug(
            f"State created: user={mask_user_id(user_id)}, "
            f"plugin={owner_plugin}, step={initial_step}"
        )
        return state

    def update(
        self,
        user_id: str,
        next_step: str,
        patch: Payload | None = None,
    ) -> bool:
        """
        Advance a user's flow. Returns False (no-op) when the user has no state.

        ``patch`` is merged into the payload: its keys overwrite, other keys
        are preserved.
        """
        state = self._states.get(user_id)
        if state is None:
            return False

        state.current_step = next_step
        if patch:
            state.payload.update(copy.deepcopy(patch))
        state.last_activity_at = utcnow()

        logger.debug(f"State updated: user={mask_user_id(user_id)}, step={next_step}")
        return True

    def touch(self, user_id: str) -> bool:
        """Refresh ``last_activity_at`` without transitioning"""
        state = self._states.get(user_id)
        if state is None:
            return False
        state.last_activity_at = utcnow()
        return True

    def clear(self, user_id: str) -> bool:
        had_state = self._states.pop(user_id, None) is not None
        if had_state:
            logger.debug(f"State cleared: user={mask_user_id(user_id)}")
        return had_state

    def clear_all(self) -> int:
        count = len(self._states)
        self._states.clear()
        if count:
            logger.info(f"All states cleared: count={count}")
        return count

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def list_users(self) -> list[str]:
        return list(self._states.keys())

    def list_by_step(self, step: str) -> list[str]:
        return [uid for uid, st in self._states.items() if st.current_step == step]

    def list_by_plugin(self, owner_plugin: str) -> list[str]:
        return [uid for uid, st in self._states.items() if st.owner_plugin == owner_plugin]

    def is_in_step(self, user_id: str, step: str) -> bool:
        state = self._states.get(user_id)
        return state is not None and state.current_step == step

    def is_owned_by(self, user_id: str, owner_plugin: str) -> bool:
        state = self._states.get(user_id)
        return state is not None and state.owner_plugin == owner_plugin

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def sweep_expired(
        self,
        max_age_hours: float | None = None,
        now: datetime | None = None,
    ) -> int:
        """
        Remove every state whose last activity is older than ``max_age_hours``.

        Args:
            max_age_hours: Threshold in hours (defaults to the store setting)
            now: Reference time (defaults to the current UTC time)

        Returns:
            Number of states removed
        """
        hours = self._max_age_hours if max_age_hours is None else max_age_hours
        cutoff = (now or utcnow()) - timedelta(hours=hours)

        expired = [
            uid for uid, st in self._states.items()
            if st.last_activity_at < cutoff
        ]
        for uid in expired:
            del self._states[uid]

        if expired:
            AppMetrics.states_expired(len(expired))
            logger.info(f"Expired states removed: count={len(expired)}, max_age_hours={hours}")
        return len(expired)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist(self) -> bool:
        """
        Write the whole map to the state file.

        Never raises: failures are logged and retried on the next cycle.
        """
        if self._path is None:
            return False

        try:
            document = {uid: st.to_dict() for uid, st in self._states.items()}
            _atomic_write(self._path, json.dumps(document, ensure_ascii=False, indent=2))
        except (OSError, TypeError, ValueError) as exc:
            AppMetrics.persist_failed()
            logger.error(f"Failed to persist states to {self._path}: {exc}", exc_info=True)
            return False

        logger.debug(f"States persisted: count={len(document)}, path={self._path}")
        return True

    def load(self) -> int:
        """
        Replace the in-memory map with the state file contents.

        A missing file is not an error. An unreadable or corrupt file leaves
        the store empty; malformed entries are skipped individually.

        Returns:
            Number of states loaded
        """
        self._states = {}
        if self._path is None:
            return 0

        if not self._path.exists():
            logger.info(f"No state file at {self._path}, starting with empty states")
            return 0

        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error(f"Failed to load states from {self._path}: {exc}", exc_info=True)
            return 0

        if not isinstance(document, dict):
            logger.error(f"State file {self._path} is not a JSON object, starting empty")
            return 0

        for user_id, entry in document.items():
            try:
                self._states[user_id] = ConversationState.from_dict(entry)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    f"Skipping malformed state entry: user={mask_user_id(user_id)}, error={exc}"
                )

        logger.info(f"Loaded {len(self._states)} user states from {self._path}")
        return len(self._states)

    # ------------------------------------------------------------------
    # Background timers
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic persistence and expiry tasks."""
        if self._tasks:
            logger.warning("State store timers already running")
            return
        self._tasks = [
            asyncio.create_task(self._autosave_loop(), name="state_autosave"),
            asyncio.create_task(self._sweep_loop(), name="state_sweep"),
        ]
        logger.info(
            f"State store timers started: save_every={self._save_interval:.0f}s, "
            f"sweep_every={self._sweep_interval:.0f}s, max_age_hours={self._max_age_hours}"
        )

    async def shutdown(self) -> None:
        """Stop the timers and write a final snapshot."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        self.persist()
        logger.info(f"States saved during shutdown: count={len(self._states)}")

    async def _autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(self._save_interval)
            self.persist()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep_expired()
            except Exception as exc:
                logger.error(f"State sweep failed: {exc}", exc_info=True)


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(content, encoding="utf-8")
    os.replace(tmp, path)
