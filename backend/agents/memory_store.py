"""
Agent State Store
Per-agent configuration and memory, keyed and isolated by agent id.

Backends:
- InMemoryAgentStateStore: process-local dicts (default)
- SqliteAgentStateStore: JSON documents in SQLite, survives restarts

Each agent gets its own asyncio.Lock so runs of the same agent are serialized
while different agents execute in parallel. Locks are held weakly and vanish
once no run holds or waits on them.
"""

import asyncio
import copy
import json
import logging
import sqlite3
import weakref
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from infrastructure.config import MemoryConfig

from .models import AgentConfig, AgentMemory, utcnow

logger = logging.getLogger("AgentStateStore")


def trim_memory(memory: AgentMemory, caps: Optional[MemoryConfig] = None) -> AgentMemory:
    """Keep only the most recent entries of each list (FIFO)"""
    caps = caps or MemoryConfig()
    if len(memory.observations) > caps.max_observations:
        memory.observations = memory.observations[-caps.max_observations:]
    if len(memory.actions) > caps.max_actions:
        memory.actions = memory.actions[-caps.max_actions:]
    if len(memory.learnings) > caps.max_learnings:
        memory.learnings = memory.learnings[-caps.max_learnings:]
    return memory


class AgentStateStore(ABC):
    """Storage for agent configs and memories"""

    def __init__(self, caps: Optional[MemoryConfig] = None):
        self.caps = caps or MemoryConfig()
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, agent_id: str) -> asyncio.Lock:
        lock = self._locks.get(agent_id)
        if lock is None:
            lock = self._locks[agent_id] = asyncio.Lock()
        return lock

    def trim(self, memory: AgentMemory) -> AgentMemory:
        return trim_memory(memory, self.caps)

    def has_agent(self, agent_id: str) -> bool:
        return self.get_config(agent_id) is not None

    @abstractmethod
    def get_config(self, agent_id: str) -> Optional[AgentConfig]:
        ...

    @abstractmethod
    def put_config(self, agent_id: str, config: AgentConfig) -> None:
        ...

    @abstractmethod
    def get_memory(self, agent_id: str) -> Optional[AgentMemory]:
        ...

    @abstractmethod
    def put_memory(self, agent_id: str, memory: AgentMemory) -> None:
        ...

    @abstractmethod
    def remove_agent(self, agent_id: str) -> bool:
        """Delete config and memory; False if the agent was unknown"""
        ...

    @abstractmethod
    def agent_ids(self) -> List[str]:
        ...


class InMemoryAgentStateStore(AgentStateStore):
    """Dict-backed store; returned objects are copies"""

    def __init__(self, caps: Optional[MemoryConfig] = None):
        super().__init__(caps)
        self._configs: Dict[str, AgentConfig] = {}
        self._memories: Dict[str, AgentMemory] = {}

    def get_config(self, agent_id: str) -> Optional[AgentConfig]:
        config = self._configs.get(agent_id)
        return copy.deepcopy(config) if config else None

    def put_config(self, agent_id: str, config: AgentConfig) -> None:
        self._configs[agent_id] = copy.deepcopy(config)

    def get_memory(self, agent_id: str) -> Optional[AgentMemory]:
        memory = self._memories.get(agent_id)
        return copy.deepcopy(memory) if memory else None

    def put_memory(self, agent_id: str, memory: AgentMemory) -> None:
        self._memories[agent_id] = copy.deepcopy(self.trim(memory))

    def remove_agent(self, agent_id: str) -> bool:
        self._memories.pop(agent_id, None)
        return self._configs.pop(agent_id, None) is not None

    def agent_ids(self) -> List[str]:
        return list(self._configs.keys())


class SqliteAgentStateStore(AgentStateStore):
    """SQLite-backed store; config and memory are kept as JSON documents"""

    def __init__(self, db_path: str = "agent_state.db", caps: Optional[MemoryConfig] = None):
        super().__init__(caps)
        self.db_path = db_path
        self._init_database()
        logger.info(f"🗄️ Agent state store ready at {db_path}")

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_database(self):
        """Initialize SQLite tables for configs and memories"""
        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS agent_configs (
                agent_id TEXT PRIMARY KEY,
                config TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS agent_memories (
                agent_id TEXT PRIMARY KEY,
                memory TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        conn.commit()
        conn.close()

    def _fetch(self, table: str, column: str, agent_id: str) -> Optional[str]:
        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute(f"SELECT {column} FROM {table} WHERE agent_id = ?", (agent_id,))
        row = cursor.fetchone()
        conn.close()
        return row[0] if row else None

    def _upsert(self, table: str, column: str, agent_id: str, payload: str):
        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute(f"""
            INSERT INTO {table} (agent_id, {column}, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(agent_id) DO UPDATE SET {column} = excluded.{column}, updated_at = excluded.updated_at
        """, (agent_id, payload, utcnow().isoformat()))
        conn.commit()
        conn.close()

    def get_config(self, agent_id: str) -> Optional[AgentConfig]:
        payload = self._fetch("agent_configs", "config", agent_id)
        return AgentConfig.from_dict(json.loads(payload)) if payload else None

    def put_config(self, agent_id: str, config: AgentConfig) -> None:
        self._upsert("agent_configs", "config", agent_id, json.dumps(config.to_dict()))

    def get_memory(self, agent_id: str) -> Optional[AgentMemory]:
        payload = self._fetch("agent_memories", "memory", agent_id)
        return AgentMemory.from_json(payload) if payload else None

    def put_memory(self, agent_id: str, memory: AgentMemory) -> None:
        self._upsert("agent_memories", "memory", agent_id, self.trim(memory).to_json())

    def remove_agent(self, agent_id: str) -> bool:
        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute("DELETE FROM agent_configs WHERE agent_id = ?", (agent_id,))
        removed = cursor.rowcount > 0
        cursor.execute("DELETE FROM agent_memories WHERE agent_id = ?", (agent_id,))
        conn.commit()
        conn.close()
        return removed

    def agent_ids(self) -> List[str]:
        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute("SELECT agent_id FROM agent_configs ORDER BY rowid")
        ids = [row[0] for row in cursor.fetchall()]
        conn.close()
        return ids


def create_store(config: Optional[MemoryConfig] = None) -> AgentStateStore:
    """Build the store selected by MemoryConfig.store"""
    config = config or MemoryConfig()
    if config.store == "sqlite":
        return SqliteAgentStateStore(config.sqlite_path, caps=config)
    if config.store != "memory":
        logger.warning(f"Unknown agent store '{config.store}', using in-memory store")
    return InMemoryAgentStateStore(caps=config)
