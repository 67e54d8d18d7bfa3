"""
Agent Core Configuration

Dataclass tree read from the environment (a local .env is honoured).
Tunables for the decision heuristics, memory retention and the executor
live here; the signer key is held apart in SecretsManager and is never
part of the exported config.
"""

import os
import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, Optional
from enum import Enum

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("AgentCoreConfig")


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name)
    return value if value else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class BlockchainConfig:
    network: str = "alfajores"  # alfajores or mainnet
    rpc_url: Optional[str] = None  # overrides the network default
    request_timeout: int = 30
    history_blocks: int = 100  # block window scanned for transaction history and events


@dataclass
class DecisionConfig:
    """Decision engine tunables"""
    emergency_wallet: str = ZERO_ADDRESS

    # "auto" amount heuristics, in token base units
    stake_auto_fraction: float = 0.8
    stake_auto_ceiling: int = 1000
    transfer_auto_fraction: float = 0.1
    transfer_auto_ceiling: int = 100
    default_auto_amount: int = 100

    # Seed the registry with the built-in triggers/rules/models
    load_defaults: bool = False


@dataclass
class MemoryConfig:
    """Agent memory retention"""
    max_observations: int = 100
    max_actions: int = 100
    max_learnings: int = 50

    store: str = "memory"  # memory or sqlite
    sqlite_path: str = "agent_state.db"


@dataclass
class EngineConfig:
    chain_timeout_seconds: float = 60.0
    learning_confidence: float = 0.8  # record a learning above this confidence
    history_limit: int = 10  # recent transactions kept in the observed state
    order_deadline_seconds: int = 86400
    scheduler_interval_seconds: int = 300


@dataclass
class AgentCoreConfig:
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True

    blockchain: BlockchainConfig = field(default_factory=BlockchainConfig)
    decision: DecisionConfig = field(default_factory=DecisionConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)

    @classmethod
    def from_env(cls) -> "AgentCoreConfig":
        env = os.environ.get("AGENT_CORE_ENV", "development").lower()
        try:
            environment = Environment(env)
        except ValueError:
            logger.warning(f"Unknown AGENT_CORE_ENV '{env}', using development")
            environment = Environment.DEVELOPMENT

        config = cls(
            environment=environment,
            # production never runs in debug
            debug=_env_bool("DEBUG", True) and environment != Environment.PRODUCTION,
            blockchain=BlockchainConfig(
                network=_env_str("CELO_NETWORK", "alfajores").lower(),
                rpc_url=os.environ.get("CELO_RPC_URL") or None,
                request_timeout=_env_int("CELO_REQUEST_TIMEOUT", 30),
                history_blocks=_env_int("CELO_HISTORY_BLOCKS", 100),
            ),
            decision=DecisionConfig(
                emergency_wallet=_env_str("EMERGENCY_WALLET", ZERO_ADDRESS),
                stake_auto_fraction=_env_float("STAKE_AUTO_FRACTION", 0.8),
                stake_auto_ceiling=_env_int("STAKE_AUTO_CEILING", 1000),
                transfer_auto_fraction=_env_float("TRANSFER_AUTO_FRACTION", 0.1),
                transfer_auto_ceiling=_env_int("TRANSFER_AUTO_CEILING", 100),
                default_auto_amount=_env_int("DEFAULT_AUTO_AMOUNT", 100),
                load_defaults=_env_bool("LOAD_DEFAULT_RULES", False),
            ),
            memory=MemoryConfig(
                max_observations=_env_int("MEMORY_MAX_OBSERVATIONS", 100),
                max_actions=_env_int("MEMORY_MAX_ACTIONS", 100),
                max_learnings=_env_int("MEMORY_MAX_LEARNINGS", 50),
                store=_env_str("AGENT_STORE", "memory").lower(),
                sqlite_path=_env_str("AGENT_STORE_PATH", "agent_state.db"),
            ),
            engine=EngineConfig(
                chain_timeout_seconds=_env_float("CHAIN_TIMEOUT_SECONDS", 60.0),
                learning_confidence=_env_float("LEARNING_CONFIDENCE", 0.8),
                history_limit=_env_int("HISTORY_LIMIT", 10),
                order_deadline_seconds=_env_int("ORDER_DEADLINE_SECONDS", 86400),
                scheduler_interval_seconds=_env_int("SCHEDULER_INTERVAL_SECONDS", 300),
            ),
        )

        if config.decision.emergency_wallet == ZERO_ADDRESS:
            logger.warning("⚠️ EMERGENCY_WALLET not set, emergency transfers go to the zero address")

        return config

    def to_dict(self) -> Dict:
        """Plain dict for status endpoints; holds no secrets"""
        data = asdict(self)
        data["environment"] = self.environment.value
        return data


# ============================================
# SECRETS
# ============================================

class SecretsManager:
    """
    Secrets read once from the environment.
    The signer key is handed to the blockchain client and nowhere else.
    """

    SECRET_KEYS = ("CELO_PRIVATE_KEY", "API_SECRET_KEY")

    def __init__(self):
        self._secrets: Dict[str, str] = {
            key: os.environ[key] for key in self.SECRET_KEYS if os.environ.get(key)
        }

    def get(self, key: str, default: str = None) -> Optional[str]:
        return self._secrets.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._secrets

    def __repr__(self) -> str:
        return f"SecretsManager(loaded={sorted(self._secrets)})"


# ============================================
# MODULE STATE
# ============================================

config = AgentCoreConfig.from_env()
secrets = SecretsManager()

logger.info(f"⚙️ Agent core config loaded ({config.environment.value}, {config.blockchain.network})")


def get_config() -> AgentCoreConfig:
    return config


def get_secrets() -> SecretsManager:
    return secrets


def reload_config() -> AgentCoreConfig:
    """Re-read the environment; existing engines keep the config they were built with"""
    global config, secrets
    config = AgentCoreConfig.from_env()
    secrets = SecretsManager()
    logger.info("Configuration reloaded")
    return config
