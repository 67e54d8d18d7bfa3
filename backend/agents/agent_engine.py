"""
Agent Engine
Runs one agent cycle: observe -> decide -> validate -> execute -> record.

Contract:
- execute_agent only raises UnregisteredAgentError
- every other failure comes back as ExecutionResult(executed=False, error=...)
- each call is a single attempt; scheduling and retries belong to the caller
"""

import asyncio
import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Optional

from web3 import Web3

from infrastructure.celo_client import BlockchainClient
from infrastructure.config import ZERO_ADDRESS, AgentCoreConfig, get_config
from infrastructure.errors import (
    AgentCoreError,
    ChainTimeoutError,
    ErrorCode,
    ExecutionError,
    UnimplementedActionError,
    UnregisteredAgentError,
    UnsupportedActionError,
    error_tracker,
)

from .action_validator import spent_since, start_of_day, validate_action
from .decision_engine import DecisionEngine
from .memory_store import AgentStateStore, create_store
from .models import (
    ActionRecord,
    ActionType,
    AgentConfig,
    AgentMemory,
    DecisionResponse,
    ExecutionMode,
    ExecutionResult,
    Observation,
    ObservedState,
    TriggerType,
    utcnow,
)

logger = logging.getLogger("AgentEngine")


# ============================================
# CONTRACT ABIs
# ============================================

AGENT_REGISTRY_ABI = [
    {
        "name": "getAgent",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "agentId", "type": "uint256"}],
        "outputs": [
            {"name": "agentId", "type": "uint256"},
            {"name": "owner", "type": "address"},
            {"name": "agentType", "type": "string"},
            {"name": "agentWallet", "type": "address"},
            {"name": "dailyLimit", "type": "uint256"},
            {"name": "perTxLimit", "type": "uint256"},
            {"name": "dailySpent", "type": "uint256"},
            {"name": "isActive", "type": "bool"}
        ]
    }
]

YIELD_AGGREGATOR_ABI = [
    {
        "name": "depositToProtocol",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "agentId", "type": "uint256"},
            {"name": "protocolId", "type": "bytes32"},
            {"name": "token", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "outputs": [{"name": "shares", "type": "uint256"}]
    },
    {
        "name": "withdrawFromProtocol",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "agentId", "type": "uint256"},
            {"name": "protocolId", "type": "bytes32"},
            {"name": "token", "type": "address"},
            {"name": "shares", "type": "uint256"}
        ],
        "outputs": [{"name": "amount", "type": "uint256"}]
    },
    {
        "name": "claimRewards",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "agentId", "type": "uint256"},
            {"name": "protocolId", "type": "bytes32"}
        ],
        "outputs": [{"name": "rewards", "type": "uint256"}]
    },
]

MASTER_TRADING_ABI = [
    {
        "name": "createBuyOrder",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "tokenOut", "type": "address"},
            {"name": "amountOut", "type": "uint256"},
            {"name": "maxAmountIn", "type": "uint256"},
            {"name": "deadline", "type": "uint256"},
            {"name": "description", "type": "string"}
        ],
        "outputs": [{"name": "orderId", "type": "uint256"}]
    },
    {
        "name": "createSellOrder",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "tokenIn", "type": "address"},
            {"name": "amountIn", "type": "uint256"},
            {"name": "minAmountOut", "type": "uint256"},
            {"name": "deadline", "type": "uint256"},
            {"name": "description", "type": "string"}
        ],
        "outputs": [{"name": "orderId", "type": "uint256"}]
    },
    {
        "name": "createRequestOrder",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "tokenIn", "type": "address"},
            {"name": "tokenOut", "type": "address"},
            {"name": "amountIn", "type": "uint256"},
            {"name": "amountOut", "type": "uint256"},
            {"name": "deadline", "type": "uint256"},
            {"name": "description", "type": "string"}
        ],
        "outputs": [{"name": "orderId", "type": "uint256"}]
    },
]

ATTENDANCE_NFT_ABI = [
    {
        "name": "mintAttendanceNFT",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "agentId", "type": "uint256"},
            {"name": "recipient", "type": "address"},
            {"name": "metadataURI", "type": "string"},
            {"name": "soulbound", "type": "bool"}
        ],
        "outputs": [{"name": "tokenId", "type": "uint256"}]
    }
]

AGENT_DATA_ERROR = {"error": "Failed to get agent data"}


def to_uint(action: str, name: str, value: Any) -> int:
    """On-chain integer argument from a decimal string or number"""
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ExecutionError(action, f"{name} is not a number: {value!r}")
    if not number.is_finite() or number != number.to_integral_value() or number < 0:
        raise ExecutionError(action, f"{name} must be a non-negative integer amount, got {value!r}")
    return int(number)


def to_protocol_id(protocol: str) -> bytes:
    """bytes32 protocol id: 0x-hex passes through, names are UTF-8 right-padded"""
    if isinstance(protocol, str) and protocol.startswith("0x") and len(protocol) == 66:
        return Web3.to_bytes(hexstr=protocol)
    raw = str(protocol).encode("utf-8")
    if len(raw) > 32:
        raise ExecutionError("stake", f"Protocol id too long for bytes32: {protocol}")
    return raw.ljust(32, b"\0")


class AgentEngine:
    """
    Owns per-agent configuration and memory (through an AgentStateStore)
    and drives one agent cycle against the injected blockchain client.
    """

    def __init__(
        self,
        client: BlockchainClient,
        decision_engine: Optional[DecisionEngine] = None,
        store: Optional[AgentStateStore] = None,
        config: Optional[AgentCoreConfig] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.client = client
        self.config = config or get_config()
        self.decision_engine = decision_engine or DecisionEngine(config=self.config.decision)
        self.store = store or create_store(self.config.memory)
        self.clock = clock

        self._handlers: Dict[str, Callable[[str, Dict[str, Any]], Awaitable[str]]] = {
            ActionType.TRANSFER.value: self._execute_transfer,
            ActionType.SWAP.value: self._execute_swap,
            ActionType.STAKE.value: self._execute_stake,
            ActionType.UNSTAKE.value: self._execute_unstake,
            ActionType.CLAIM.value: self._execute_claim,
            ActionType.BUY.value: self._execute_buy,
            ActionType.SELL.value: self._execute_sell,
            ActionType.REQUEST.value: self._execute_request,
            ActionType.MINT.value: self._execute_mint,
        }

        logger.info("🤖 Agent engine initialized")

    # ===========================================
    # REGISTRATION
    # ===========================================

    def register_agent(self, agent_id: str, config: AgentConfig) -> None:
        """Store config and start from empty memory; re-registering resets the agent"""
        agent_id = str(agent_id)
        self.store.put_config(agent_id, config)
        self.store.put_memory(agent_id, AgentMemory(agent_id=agent_id, last_run=self.clock()))
        self.decision_engine.evaluator.tracker.reset(agent_id)
        logger.info(f"📝 Agent {agent_id} registered ({config.execution_mode.value} mode)")

    def remove_agent(self, agent_id: str) -> bool:
        agent_id = str(agent_id)
        removed = self.store.remove_agent(agent_id)
        if removed:
            self.decision_engine.evaluator.tracker.reset(agent_id)
            logger.info(f"🗑️ Agent {agent_id} removed")
        return removed

    def get_agent_memory(self, agent_id: str) -> Optional[AgentMemory]:
        return self.store.get_memory(str(agent_id))

    def get_agent_config(self, agent_id: str) -> Optional[AgentConfig]:
        return self.store.get_config(str(agent_id))

    def update_agent_config(self, agent_id: str, updates: Dict[str, Any]) -> Optional[AgentConfig]:
        """Partial update; unknown agents are left alone and None is returned"""
        agent_id = str(agent_id)
        current = self.store.get_config(agent_id)
        if current is None:
            return None
        updated = current.merged(updates)
        self.store.put_config(agent_id, updated)
        return updated

    def list_agents(self) -> List[str]:
        return self.store.agent_ids()

    # ===========================================
    # EXECUTION
    # ===========================================

    async def execute_agent(self, agent_id: str) -> ExecutionResult:
        agent_id = str(agent_id)
        if not self.store.has_agent(agent_id):
            raise UnregisteredAgentError(agent_id)

        async with self.store.lock_for(agent_id):
            agent_config = self.store.get_config(agent_id)
            if agent_config is None:
                raise UnregisteredAgentError(agent_id)
            memory = self.store.get_memory(agent_id) or AgentMemory(agent_id=agent_id)

            try:
                return await self._run_cycle(agent_id, agent_config, memory)
            except Exception as e:
                error_tracker.track(e, source=f"agent:{agent_id}")
                logger.error(f"❌ Agent {agent_id} execution failed: {e}")
                self._record_error(memory, e)
                self.store.put_memory(agent_id, memory)

                code = e.code if isinstance(e, AgentCoreError) else ErrorCode.EXECUTION_FAILED
                return ExecutionResult(
                    action=ActionType.NONE.value,
                    params={},
                    reasoning="Error occurred during execution",
                    confidence=0,
                    executed=False,
                    error=str(e),
                    error_code=code.value,
                )

    async def _run_cycle(self, agent_id: str, agent_config: AgentConfig, memory: AgentMemory) -> ExecutionResult:
        state = await self.observe_state(agent_id)
        decision = self.decision_engine.generate_decision(agent_id, state, memory)

        spent_today = spent_since(memory, start_of_day(self.clock()), agent_config.spending_limits.token)
        validation = validate_action(decision.action, decision.params, state, agent_config, spent_today)
        if not validation.is_valid:
            logger.warning(f"⚠️ Agent {agent_id}: {decision.action} rejected: {validation.reason}")
            return self._result(decision, executed=False, error=validation.reason, error_code=validation.code.value)

        if decision.action != ActionType.NONE.value and agent_config.execution_mode == ExecutionMode.PROPOSE:
            logger.info(f"📋 Agent {agent_id}: proposing {decision.action} (not executed)")
            return self._result(decision, executed=False, proposed=True)

        tx_hash = None
        if decision.action != ActionType.NONE.value:
            tx_hash = await self.execute_action(agent_id, decision.action, decision.params)
            logger.info(f"✅ Agent {agent_id}: {decision.action} sent ({tx_hash})")

        self._update_memory(memory, state, decision, tx_hash)
        self.store.put_memory(agent_id, memory)

        return self._result(decision, executed=True, tx_hash=tx_hash)

    def _result(self, decision: DecisionResponse, **kwargs) -> ExecutionResult:
        return ExecutionResult(
            action=decision.action,
            params=decision.params,
            reasoning=decision.reasoning,
            confidence=decision.confidence,
            **kwargs
        )

    async def _call_chain(self, coro: Awaitable[Any]) -> Any:
        timeout = self.config.engine.chain_timeout_seconds
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            raise ChainTimeoutError(self.client.get_network_config().name, timeout)

    # ===========================================
    # OBSERVATION
    # ===========================================

    async def observe_state(self, agent_id: str) -> ObservedState:
        """
        Wallet and balances are required (a failure aborts the run);
        history, contract events, registry data and gas price degrade instead.
        """
        network = self.client.get_network_config()
        addresses = await self._call_chain(self.client.get_addresses())
        wallet = addresses[0]

        celo_balance, cusd_balance, ceur_balance = await asyncio.gather(
            self._call_chain(self.client.get_balance(wallet)),
            self._call_chain(self.client.get_token_balance(network.tokens["cUSD"], wallet)),
            self._call_chain(self.client.get_token_balance(network.tokens["cEUR"], wallet)),
        )

        degraded: List[str] = []
        transactions, events, agent_data, gas_price = await asyncio.gather(
            self._read_transactions(wallet, degraded),
            self._read_events(degraded),
            self.get_agent_specific_data(agent_id, degraded),
            self._read_gas_price(degraded),
        )

        token_balances = {
            "celo": int(celo_balance),
            "cusd": int(cusd_balance),
            "ceur": int(ceur_balance),
            network.tokens["CELO"].lower(): int(celo_balance),
            network.tokens["cUSD"].lower(): int(cusd_balance),
            network.tokens["cEUR"].lower(): int(ceur_balance),
        }

        return ObservedState(
            wallet=wallet,
            celo_balance=int(celo_balance),
            cusd_balance=int(cusd_balance),
            ceur_balance=int(ceur_balance),
            token_balances=token_balances,
            recent_transactions=transactions,
            recent_events=events,
            agent_data=agent_data,
            gas_price=gas_price,
            degraded=degraded,
            observed_at=self.clock(),
        )

    async def _read_transactions(self, wallet: str, degraded: List[str]) -> List[Dict[str, Any]]:
        try:
            history = await self._call_chain(self.client.get_transaction_history(wallet))
        except Exception as e:
            logger.warning(f"Transaction history unavailable for {wallet}: {e}")
            degraded.append("recent_transactions")
            return []

        return [
            {
                "hash": tx.get("hash"),
                "from": tx.get("from"),
                "to": tx.get("to"),
                "value": str(tx.get("value", 0)),
                "timestamp": tx.get("timestamp"),
            }
            for tx in history[:self.config.engine.history_limit]
        ]

    async def _read_events(self, degraded: List[str]) -> List[Dict[str, Any]]:
        """Logs for every registered event trigger, tagged with the trigger's event name"""
        watched = {}
        for trigger in self.decision_engine.get_triggers():
            if trigger.type != TriggerType.EVENT:
                continue
            address = str(trigger.config.contract_address)
            if address.lower() == ZERO_ADDRESS:
                continue
            watched[(address.lower(), trigger.config.event_name)] = trigger.config
        if not watched:
            return []

        events: List[Dict[str, Any]] = []
        try:
            for config in watched.values():
                logs = await self._call_chain(
                    self.client.get_contract_events(config.contract_address, config.event_signature)
                )
                events.extend({**log, "address": config.contract_address, "name": config.event_name} for log in logs)
        except Exception as e:
            logger.warning(f"Contract events unavailable: {e}")
            degraded.append("recent_events")
            return []
        return events

    async def _read_gas_price(self, degraded: List[str]) -> Optional[float]:
        try:
            wei = await self._call_chain(self.client.get_gas_price())
        except Exception as e:
            logger.warning(f"Gas price unavailable: {e}")
            degraded.append("gas_price")
            return None
        return int(wei) / 1e9  # gwei

    async def get_agent_specific_data(self, agent_id: str, degraded: Optional[List[str]] = None) -> Dict[str, Any]:
        """On-chain registry entry for the agent, or an error marker"""
        try:
            info = await self._call_chain(self.client.read_contract(
                self.client.get_network_config().contracts["agentRegistry"],
                AGENT_REGISTRY_ABI,
                "getAgent",
                [to_uint("getAgent", "agentId", agent_id)]
            ))
            return {
                "agentType": info[2],
                "dailyLimit": str(info[4]),
                "perTxLimit": str(info[5]),
                "dailySpent": str(info[6]),
                "isActive": bool(info[7]),
            }
        except Exception as e:
            logger.warning(f"Agent registry read failed for {agent_id}: {e}")
            if degraded is not None:
                degraded.append("agent_data")
            return dict(AGENT_DATA_ERROR)

    # ===========================================
    # ACTION HANDLERS
    # ===========================================

    async def execute_action(self, agent_id: str, action: str, params: Dict[str, Any]) -> str:
        handler = self._handlers.get(action)
        if handler is None:
            raise UnsupportedActionError(action)

        try:
            return await handler(agent_id, params)
        except AgentCoreError:
            raise
        except Exception as e:
            raise ExecutionError(action, str(e), e) from e

    def _token_address(self, token: Optional[str]) -> str:
        return self.client.get_network_config().token_address(token or "cUSD")

    def _deadline(self) -> int:
        deadline = self.clock() + timedelta(seconds=self.config.engine.order_deadline_seconds)
        return int(deadline.timestamp())

    async def _execute_transfer(self, agent_id: str, params: Dict[str, Any]) -> str:
        network = self.client.get_network_config()
        token = params.get("token") or "cUSD"
        amount = to_uint("transfer", "amount", params["amount"])

        if network.is_native(token):
            return await self._call_chain(self.client.send_native_token(params["to"], amount))
        return await self._call_chain(self.client.send_token(network.token_address(token), params["to"], amount))

    async def _execute_swap(self, agent_id: str, params: Dict[str, Any]) -> str:
        raise UnimplementedActionError("swap")

    async def _execute_stake(self, agent_id: str, params: Dict[str, Any]) -> str:
        return await self._call_chain(self.client.write_contract(
            self.client.get_network_config().contracts["yieldAggregator"],
            YIELD_AGGREGATOR_ABI,
            "depositToProtocol",
            [
                to_uint("stake", "agentId", agent_id),
                to_protocol_id(params["protocol"]),
                self._token_address(params.get("token")),
                to_uint("stake", "amount", params["amount"]),
            ]
        ))

    async def _execute_unstake(self, agent_id: str, params: Dict[str, Any]) -> str:
        return await self._call_chain(self.client.write_contract(
            self.client.get_network_config().contracts["yieldAggregator"],
            YIELD_AGGREGATOR_ABI,
            "withdrawFromProtocol",
            [
                to_uint("unstake", "agentId", agent_id),
                to_protocol_id(params["protocol"]),
                self._token_address(params.get("token")),
                to_uint("unstake", "shares", params["shares"]),
            ]
        ))

    async def _execute_claim(self, agent_id: str, params: Dict[str, Any]) -> str:
        return await self._call_chain(self.client.write_contract(
            self.client.get_network_config().contracts["yieldAggregator"],
            YIELD_AGGREGATOR_ABI,
            "claimRewards",
            [to_uint("claim", "agentId", agent_id), to_protocol_id(params["protocol"])]
        ))

    async def _execute_buy(self, agent_id: str, params: Dict[str, Any]) -> str:
        return await self._call_chain(self.client.write_contract(
            self.client.get_network_config().contracts["masterTrading"],
            MASTER_TRADING_ABI,
            "createBuyOrder",
            [
                self._token_address(params["token"]),
                to_uint("buy", "amount", params["amount"]),
                to_uint("buy", "maxPrice", params["maxPrice"]),
                self._deadline(),
                params.get("description") or "Agent buy order",
            ]
        ))

    async def _execute_sell(self, agent_id: str, params: Dict[str, Any]) -> str:
        return await self._call_chain(self.client.write_contract(
            self.client.get_network_config().contracts["masterTrading"],
            MASTER_TRADING_ABI,
            "createSellOrder",
            [
                self._token_address(params["token"]),
                to_uint("sell", "amount", params["amount"]),
                to_uint("sell", "minPrice", params["minPrice"]),
                self._deadline(),
                params.get("description") or "Agent sell order",
            ]
        ))

    async def _execute_request(self, agent_id: str, params: Dict[str, Any]) -> str:
        return await self._call_chain(self.client.write_contract(
            self.client.get_network_config().contracts["masterTrading"],
            MASTER_TRADING_ABI,
            "createRequestOrder",
            [
                self._token_address(params["tokenIn"]),
                self._token_address(params["tokenOut"]),
                to_uint("request", "amountIn", params["amountIn"]),
                to_uint("request", "amountOut", params["amountOut"]),
                self._deadline(),
                params.get("description") or "Agent request order",
            ]
        ))

    async def _execute_mint(self, agent_id: str, params: Dict[str, Any]) -> str:
        return await self._call_chain(self.client.write_contract(
            self.client.get_network_config().contracts["attendanceNFT"],
            ATTENDANCE_NFT_ABI,
            "mintAttendanceNFT",
            [
                to_uint("mint", "agentId", agent_id),
                params["recipient"],
                params["metadataURI"],
                bool(params.get("soulbound", False)),
            ]
        ))

    # ===========================================
    # MEMORY
    # ===========================================

    def _update_memory(
        self,
        memory: AgentMemory,
        state: ObservedState,
        decision: DecisionResponse,
        tx_hash: Optional[str]
    ) -> None:
        now = self.clock()
        memory.observations.append(Observation(timestamp=now, type="state", data=state.to_dict()))

        if decision.action != ActionType.NONE.value:
            memory.actions.append(ActionRecord(
                timestamp=now,
                type=decision.action,
                params=dict(decision.params),
                result={"txHash": tx_hash} if tx_hash else None,
                success=bool(tx_hash),
            ))

        if tx_hash and decision.confidence > self.config.engine.learning_confidence:
            memory.learnings.append(f"Successful {decision.action} with confidence {decision.confidence}")

        memory.last_run = now
        self.store.trim(memory)

    def _record_error(self, memory: AgentMemory, error: Exception) -> None:
        now = self.clock()
        memory.actions.append(ActionRecord(
            timestamp=now,
            type=ActionType.ERROR.value,
            params={"error": str(error)},
            result=None,
            success=False,
        ))
        memory.last_run = now
        self.store.trim(memory)
