# tests/test_flow_context.py
"""Tests for FlowContext ownership rules"""
from flowbot.core.engine.flow import FlowContext
from flowbot.core.engine.state_store import StateStore


class TestFlowContext:
    def setup_method(self):
        self.store = StateStore(None)

    def test_create_state(self):
        flow = FlowContext(self.store, "u1", "form")

        assert flow.state is None
        assert flow.create_state("name") is True

        assert self.store.get("u1").owner_plugin == "form"
        assert flow.step == "name"
        assert flow.payload == {}

    def test_create_refused_when_other_plugin_owns_state(self):
        self.store.create("u1", "interactive", "choose", {"k": "v"})
        flow = FlowContext(self.store, "u1", "form")

        assert flow.create_state("name") is False

        state = self.store.get("u1")
        assert state.owner_plugin == "interactive"
        assert state.current_step == "choose"
        assert state.payload == {"k": "v"}

    def test_create_restarts_own_flow(self):
        self.store.create("u1", "form", "age", {"name": "Ana"})
        flow = FlowContext(self.store, "u1", "form")

        assert flow.create_state("name") is True
        assert self.store.get("u1").payload == {}

    def test_update_state(self):
        self.store.create("u1", "form", "name")
        flow = FlowContext(self.store, "u1", "form")

        assert flow.update_state("email", {"name": "Ana"}) is True

        assert flow.step == "email"
        assert flow.payload == {"name": "Ana"}
        assert self.store.get("u1").payload == {"name": "Ana"}

    def test_update_refused_for_other_owner(self):
        self.store.create("u1", "interactive", "choose")
        flow = FlowContext(self.store, "u1", "form")

        assert flow.update_state("email") is False
        assert self.store.get("u1").current_step == "choose"

    def test_update_without_state(self):
        flow = FlowContext(self.store, "u1", "form")

        assert flow.update_state("email") is False
        assert "u1" not in self.store

    def test_snapshot_is_isolated_from_store(self):
        self.store.create("u1", "form", "name", {"tags": ["a"]})
        flow = FlowContext(self.store, "u1", "form")

        flow.state.payload["tags"].append("b")

        assert self.store.get("u1").payload == {"tags": ["a"]}

    def test_clear_state(self):
        self.store.create("u1", "form", "name")
        flow = FlowContext(self.store, "u1", "form")

        assert flow.clear_state() is True
        assert flow.state is None
        assert flow.step is None
        assert "u1" not in self.store
        assert flow.clear_state() is False
