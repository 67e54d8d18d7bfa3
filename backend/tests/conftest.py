"""
Pytest Configuration for Agent Core Tests

Run all tests: python -m pytest tests/ -v
"""

import asyncio
import itertools
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from agents.agent_engine import AgentEngine
from agents.decision_engine import DecisionEngine
from agents.memory_store import InMemoryAgentStateStore
from agents.models import AgentConfig, AgentMemory, ObservedState
from infrastructure.celo_client import BlockchainClient, CeloNetworkConfig, get_network_config
from infrastructure.config import AgentCoreConfig
from infrastructure.errors import BlockchainError

AGENT_WALLET = "0xa30A689ec0F9D717C5bA1098455B031b868B720f"
EMERGENCY_WALLET = "0x5E047DeB5eb22F4E4A7f2207087369468575e3EF"


# =============================================================================
# FAKE CHAIN
# =============================================================================

class FakeBlockchainClient(BlockchainClient):
    """
    In-memory chain: fixed balances, recorded writes, injectable failures.
    `fail` maps a method name to the exception it should raise;
    `delay` maps a method name to seconds to sleep before answering.
    """

    def __init__(self, celo: int = 0, cusd: int = 0, ceur: int = 0):
        self.network = get_network_config("alfajores")
        self.network.contracts.update({
            "agentRegistry": "0x1000000000000000000000000000000000000001",
            "yieldAggregator": "0x1000000000000000000000000000000000000002",
            "masterTrading": "0x1000000000000000000000000000000000000003",
            "attendanceNFT": "0x1000000000000000000000000000000000000004",
        })
        self.balances = {
            self.network.tokens["CELO"].lower(): celo,
            self.network.tokens["cUSD"].lower(): cusd,
            self.network.tokens["cEUR"].lower(): ceur,
        }
        self.transactions: List[Dict[str, Any]] = []
        self.events: Dict[tuple, List[Dict[str, Any]]] = {}
        self.agent_record = (1, AGENT_WALLET, "treasury", AGENT_WALLET, 1000, 100, 0, True)
        self.gas_price_wei = 5_000_000_000

        self.calls: List[tuple] = []
        self.fail: Dict[str, Exception] = {}
        self.delay: Dict[str, float] = {}
        self._hashes = itertools.count(1)

    async def _enter(self, name: str, *args):
        self.calls.append((name,) + args)
        if name in self.delay:
            await asyncio.sleep(self.delay[name])
        if name in self.fail:
            raise self.fail[name]

    def _next_hash(self) -> str:
        return "0x" + format(next(self._hashes), "064x")

    def calls_to(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def get_network_config(self) -> CeloNetworkConfig:
        return self.network

    async def get_addresses(self) -> List[str]:
        await self._enter("get_addresses")
        return [AGENT_WALLET]

    async def get_balance(self, address: str) -> int:
        await self._enter("get_balance", address)
        return self.balances[self.network.tokens["CELO"].lower()]

    async def get_token_balance(self, token: str, address: str) -> int:
        await self._enter("get_token_balance", token, address)
        return self.balances.get(token.lower(), 0)

    async def get_transaction_history(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        await self._enter("get_transaction_history", address)
        return list(self.transactions)

    async def get_contract_events(
        self,
        address: str,
        event_signature: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        await self._enter("get_contract_events", address, event_signature)
        return list(self.events.get((address.lower(), event_signature), []))

    async def send_native_token(self, to: str, amount: int) -> str:
        await self._enter("send_native_token", to, amount)
        return self._next_hash()

    async def send_token(self, token: str, to: str, amount: int) -> str:
        await self._enter("send_token", token, to, amount)
        return self._next_hash()

    async def read_contract(self, address: str, abi: list, function_name: str, args: Optional[list] = None) -> Any:
        await self._enter("read_contract", address, function_name, list(args or []))
        if function_name == "getAgent":
            return self.agent_record
        raise BlockchainError(self.network.name, f"Unknown function {function_name}")

    async def write_contract(
        self,
        address: str,
        abi: list,
        function_name: str,
        args: Optional[list] = None,
        value: Optional[int] = None
    ) -> str:
        await self._enter("write_contract", address, function_name, list(args or []))
        return self._next_hash()

    async def get_gas_price(self) -> int:
        await self._enter("get_gas_price")
        return self.gas_price_wei


# =============================================================================
# FIXTURES - Shared across all test files
# =============================================================================

@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def core_config():
    """Default configuration with a known emergency wallet and a short chain timeout"""
    config = AgentCoreConfig()
    config.decision.emergency_wallet = EMERGENCY_WALLET
    config.engine.chain_timeout_seconds = 1.0
    return config


@pytest.fixture
def fake_client():
    return FakeBlockchainClient(celo=500, cusd=10, ceur=20)


@pytest.fixture
def decision_engine(core_config):
    return DecisionEngine(config=core_config.decision)


@pytest.fixture
def engine(fake_client, decision_engine, core_config):
    return AgentEngine(
        fake_client,
        decision_engine=decision_engine,
        store=InMemoryAgentStateStore(core_config.memory),
        config=core_config,
    )


@pytest.fixture
def agent_config():
    return AgentConfig(goal="Keep the treasury safe")


@pytest.fixture
def empty_memory():
    return AgentMemory(agent_id="1")


@pytest.fixture
def make_state():
    """Factory for observed states with cUSD/cEUR/CELO balances"""
    def _make(celo: int = 0, cusd: int = 0, ceur: int = 0, **metrics) -> ObservedState:
        return ObservedState(
            wallet=AGENT_WALLET,
            celo_balance=celo,
            cusd_balance=cusd,
            ceur_balance=ceur,
            **metrics
        )
    return _make


# =============================================================================
# MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (use real RPC)"
    )
