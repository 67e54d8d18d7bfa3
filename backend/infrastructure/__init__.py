"""
Agent Core Infrastructure Module
Configuration, errors and the blockchain client
"""

from .errors import (
    AgentCoreError,
    ValidationError,
    NotFoundError,
    UnregisteredAgentError,
    UnsupportedActionError,
    UnimplementedActionError,
    ExecutionError,
    BlockchainError,
    ChainTimeoutError,
    ErrorCode,
    ErrorTracker,
    error_tracker,
    register_exception_handlers,
)

from .config import (
    AgentCoreConfig,
    BlockchainConfig,
    DecisionConfig,
    MemoryConfig,
    EngineConfig,
    Environment,
    SecretsManager,
    config,
    secrets,
    get_config,
    get_secrets,
    reload_config,
)

from .celo_client import (
    BlockchainClient,
    CeloClient,
    CeloNetworkConfig,
    get_network_config,
)

__all__ = [
    # Errors
    "AgentCoreError",
    "ValidationError",
    "NotFoundError",
    "UnregisteredAgentError",
    "UnsupportedActionError",
    "UnimplementedActionError",
    "ExecutionError",
    "BlockchainError",
    "ChainTimeoutError",
    "ErrorCode",
    "ErrorTracker",
    "error_tracker",
    "register_exception_handlers",

    # Config
    "AgentCoreConfig",
    "BlockchainConfig",
    "DecisionConfig",
    "MemoryConfig",
    "EngineConfig",
    "Environment",
    "SecretsManager",
    "config",
    "secrets",
    "get_config",
    "get_secrets",
    "reload_config",

    # Blockchain
    "BlockchainClient",
    "CeloClient",
    "CeloNetworkConfig",
    "get_network_config",
]
