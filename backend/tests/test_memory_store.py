"""
Agent State Store Tests
Memory serialization, FIFO trimming and the SQLite backend

Run: python -m pytest tests/test_memory_store.py -v
"""

import gc
from datetime import timedelta

import pytest

from agents.memory_store import (
    InMemoryAgentStateStore,
    SqliteAgentStateStore,
    create_store,
    trim_memory,
)
from agents.models import ActionRecord, AgentConfig, AgentMemory, Observation
from infrastructure.config import MemoryConfig


@pytest.fixture
def populated_memory(fixed_now):
    return AgentMemory(
        agent_id="1",
        observations=[Observation(fixed_now, "state", {"cusd_balance": 10, "wallet": "0xabc"})],
        actions=[
            ActionRecord(fixed_now, "transfer", {"to": "0xabc", "amount": "10"}, {"txHash": "0x01"}, True),
            ActionRecord(fixed_now + timedelta(seconds=1), "error", {"error": "boom"}, None, False),
        ],
        learnings=["Successful transfer with confidence 1.0"],
        last_run=fixed_now,
    )


class TestSerialization:
    def test_memory_round_trips_through_json(self, populated_memory):
        assert AgentMemory.from_json(populated_memory.to_json()) == populated_memory

    def test_memory_dict_uses_camel_case(self, populated_memory):
        data = populated_memory.to_dict()
        assert data["agentId"] == "1"
        assert data["lastRun"] == populated_memory.last_run.isoformat()

    def test_config_round_trips(self):
        config = AgentConfig(
            goal="Grow yield",
            constraints="no leverage",
            execution_mode="propose",
            spending_limits={"daily": "1000", "perTx": "100"},
            whitelist={"0xABC"},
            permissions={"stake", "claim"},
        )
        assert AgentConfig.from_dict(config.to_dict()) == config


class TestTrimming:
    def test_fifo_trim_keeps_newest(self, fixed_now):
        memory = AgentMemory(
            agent_id="1",
            actions=[ActionRecord(fixed_now, "transfer", {"n": i}, None, True) for i in range(120)],
            learnings=[f"l{i}" for i in range(60)],
        )

        trim_memory(memory)

        assert [a.params["n"] for a in memory.actions] == list(range(20, 120))
        assert memory.learnings == [f"l{i}" for i in range(10, 60)]

    def test_caps_are_configurable(self, fixed_now):
        memory = AgentMemory(
            agent_id="1",
            observations=[Observation(fixed_now, "state", {"n": i}) for i in range(5)],
        )
        trim_memory(memory, MemoryConfig(max_observations=2))
        assert [o.data["n"] for o in memory.observations] == [3, 4]


class TestInMemoryStore:
    def test_put_and_get_are_copies(self, populated_memory):
        store = InMemoryAgentStateStore()
        store.put_memory("1", populated_memory)
        populated_memory.learnings.append("later")

        assert store.get_memory("1").learnings == ["Successful transfer with confidence 1.0"]

    def test_unknown_agent(self):
        store = InMemoryAgentStateStore()
        assert store.get_config("x") is None
        assert store.get_memory("x") is None
        assert not store.has_agent("x")

    @pytest.mark.asyncio
    async def test_lock_is_per_agent(self):
        store = InMemoryAgentStateStore()
        assert store.lock_for("1") is store.lock_for("1")
        assert store.lock_for("1") is not store.lock_for("2")

        async with store.lock_for("1"):
            assert store.lock_for("1").locked()
            assert not store.lock_for("2").locked()

    @pytest.mark.asyncio
    async def test_idle_locks_are_released(self):
        store = InMemoryAgentStateStore()
        for n in range(20):
            async with store.lock_for(str(n)):
                pass
        gc.collect()

        assert len(store._locks) == 0

    def test_remove_agent(self, populated_memory, agent_config):
        store = InMemoryAgentStateStore()
        store.put_config("1", agent_config)
        store.put_memory("1", populated_memory)

        assert store.remove_agent("1") is True
        assert store.get_memory("1") is None
        assert store.agent_ids() == []
        assert store.remove_agent("1") is False


class TestSqliteStore:
    def test_round_trips_config_and_memory(self, tmp_path, populated_memory, agent_config):
        path = str(tmp_path / "state.db")
        store = SqliteAgentStateStore(path)
        store.put_config("1", agent_config)
        store.put_memory("1", populated_memory)

        reopened = SqliteAgentStateStore(path)
        assert reopened.get_config("1") == agent_config
        assert reopened.get_memory("1") == populated_memory
        assert reopened.agent_ids() == ["1"]

    def test_overwrite_replaces_document(self, tmp_path, agent_config):
        store = SqliteAgentStateStore(str(tmp_path / "state.db"))
        store.put_config("1", agent_config)
        store.put_config("1", agent_config.merged({"goal": "new goal"}))

        assert store.get_config("1").goal == "new goal"
        assert store.agent_ids() == ["1"]

    def test_memory_is_trimmed_on_write(self, tmp_path, fixed_now):
        store = SqliteAgentStateStore(str(tmp_path / "state.db"), caps=MemoryConfig(max_actions=3))
        memory = AgentMemory(
            agent_id="1",
            actions=[ActionRecord(fixed_now, "claim", {"n": i}, None, True) for i in range(5)],
        )
        store.put_memory("1", memory)

        assert [a.params["n"] for a in store.get_memory("1").actions] == [2, 3, 4]

    def test_remove_agent(self, tmp_path, populated_memory, agent_config):
        store = SqliteAgentStateStore(str(tmp_path / "state.db"))
        store.put_config("1", agent_config)
        store.put_memory("1", populated_memory)
        store.put_config("2", agent_config)

        assert store.remove_agent("1") is True
        assert store.get_config("1") is None
        assert store.get_memory("1") is None
        assert store.agent_ids() == ["2"]
        assert store.remove_agent("1") is False


class TestStoreFactory:
    def test_default_is_in_memory(self):
        assert isinstance(create_store(MemoryConfig()), InMemoryAgentStateStore)

    def test_sqlite_selected_by_config(self, tmp_path):
        store = create_store(MemoryConfig(store="sqlite", sqlite_path=str(tmp_path / "a.db")))
        assert isinstance(store, SqliteAgentStateStore)
