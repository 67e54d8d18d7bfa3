"""
Infrastructure Tests
Environment config, secrets, error tracking and RPC endpoints

Run: python -m pytest tests/test_infrastructure.py -v
"""

import pytest

from infrastructure.config import AgentCoreConfig, Environment, SecretsManager, ZERO_ADDRESS
from infrastructure.errors import (
    ChainTimeoutError,
    ErrorCode,
    ErrorTracker,
    UnregisteredAgentError,
    ValidationError,
)
from infrastructure.rpc import CHAIN_IDS, get_rpc_url


class TestConfig:
    def test_defaults(self, monkeypatch):
        for name in ["AGENT_CORE_ENV", "CELO_NETWORK", "EMERGENCY_WALLET", "HISTORY_LIMIT"]:
            monkeypatch.delenv(name, raising=False)

        config = AgentCoreConfig.from_env()

        assert config.environment == Environment.DEVELOPMENT
        assert config.blockchain.network == "alfajores"
        assert config.decision.emergency_wallet == ZERO_ADDRESS
        assert config.engine.history_limit == 10
        assert config.memory.max_learnings == 50

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("AGENT_CORE_ENV", "production")
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("CELO_NETWORK", "MAINNET")
        monkeypatch.setenv("CHAIN_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("AGENT_STORE", "sqlite")

        config = AgentCoreConfig.from_env()

        assert config.environment == Environment.PRODUCTION
        assert config.debug is False
        assert config.blockchain.network == "mainnet"
        assert config.engine.chain_timeout_seconds == 2.5
        assert config.memory.store == "sqlite"

    def test_unknown_environment_falls_back(self, monkeypatch):
        monkeypatch.setenv("AGENT_CORE_ENV", "qa")
        assert AgentCoreConfig.from_env().environment == Environment.DEVELOPMENT

    def test_to_dict_is_plain(self):
        data = AgentCoreConfig().to_dict()
        assert data["environment"] == "development"
        assert data["engine"]["order_deadline_seconds"] == 86400


class TestSecrets:
    def test_loads_known_keys_only(self, monkeypatch):
        monkeypatch.setenv("CELO_PRIVATE_KEY", "0xabc")
        monkeypatch.setenv("UNRELATED_SECRET", "nope")

        secrets = SecretsManager()

        assert secrets.has("CELO_PRIVATE_KEY")
        assert secrets.get("UNRELATED_SECRET") is None


class TestErrors:
    def test_error_payload(self):
        body = UnregisteredAgentError("7").to_dict()
        assert body["success"] is False
        assert body["error"]["code"] == "UNREGISTERED_AGENT"
        assert body["error"]["details"] == {"agent_id": "7"}

    def test_timeout_is_a_gateway_timeout(self):
        error = ChainTimeoutError("alfajores", 60)
        assert error.status_code == 504
        assert error.code == ErrorCode.TIMEOUT_ERROR

    def test_tracker_counts_by_code_and_source(self):
        tracker = ErrorTracker(max_errors=2)
        tracker.track(ValidationError("bad"))
        tracker.track(ValidationError("worse"))
        tracker.track(RuntimeError("boom"), source="test")

        stats = tracker.get_stats()
        assert stats["total_errors"] == 2
        assert stats["by_code"] == {"VALIDATION_ERROR": 2, "RuntimeError": 1}
        assert stats["by_source"] == {"test": 1}
        assert stats["recent_errors"][-1]["source"] == "test"

        tracker.clear()
        assert tracker.get_stats()["total_errors"] == 0


class TestRpc:
    def test_public_endpoints(self, monkeypatch):
        monkeypatch.delenv("CELO_RPC_URL", raising=False)
        assert get_rpc_url("mainnet") == "https://forno.celo.org"
        assert CHAIN_IDS["alfajores"] == 44787

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("CELO_RPC_URL", "http://localhost:8545")
        assert get_rpc_url("alfajores") == "http://localhost:8545"

    def test_unknown_network(self, monkeypatch):
        monkeypatch.delenv("CELO_RPC_URL", raising=False)
        with pytest.raises(KeyError):
            get_rpc_url("moon")
