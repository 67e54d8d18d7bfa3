"""
Celo Client Tests
web3 calls are mocked; signing uses a throwaway key

Run: python -m pytest tests/test_celo_client.py -v
"""

from unittest.mock import MagicMock

import pytest

from web3 import Web3

from infrastructure.celo_client import CeloClient, get_network_config
from infrastructure.config import AgentCoreConfig, SecretsManager
from infrastructure.errors import AgentCoreError, BlockchainError

TEST_KEY = "0x" + "11" * 32
OTHER = Web3.to_checksum_address("0x5e047deb5eb22f4e4a7f2207087369468575e3ef")
CUSD_MAINNET = "0x765DE816845861e75A25fCA122bb6898B8B1282a"


@pytest.fixture
def client():
    client = CeloClient(TEST_KEY, network="mainnet")
    client.w3 = MagicMock()
    client.w3.eth.gas_price = 5_000_000_000
    client.w3.eth.get_transaction_count.return_value = 3
    client.w3.eth.send_raw_transaction.return_value = b"\x12" * 32
    return client


class TestNetworkConfig:
    def test_token_lookup_is_case_insensitive(self):
        network = get_network_config("mainnet")
        assert network.token_address("cusd") == "0x765DE816845861e75A25fCA122bb6898B8B1282a"
        assert network.token_address("0xdeadbeef") == "0xdeadbeef"

    def test_native_detection(self):
        network = get_network_config("alfajores")
        assert network.is_native("CELO")
        assert not network.is_native("cUSD")

    def test_configs_are_copies(self):
        get_network_config("alfajores").contracts["agentRegistry"] = "0x1"
        assert get_network_config("alfajores").contracts["agentRegistry"] != "0x1"

    def test_unknown_network(self):
        with pytest.raises(ValueError):
            get_network_config("moon")


class TestReads:
    @pytest.mark.asyncio
    async def test_addresses_come_from_signer(self, client):
        assert await client.get_addresses() == [client.account.address]

    @pytest.mark.asyncio
    async def test_native_balance(self, client):
        client.w3.eth.get_balance.return_value = 123
        assert await client.get_balance(OTHER) == 123

    @pytest.mark.asyncio
    async def test_celo_token_balance_reads_native(self, client):
        client.w3.eth.get_balance.return_value = 9
        assert await client.get_token_balance("CELO", OTHER) == 9
        client.w3.eth.contract.assert_not_called()

    @pytest.mark.asyncio
    async def test_erc20_balance(self, client):
        contract = client.w3.eth.contract.return_value
        contract.functions.balanceOf.return_value.call.return_value = 77

        assert await client.get_token_balance("cUSD", OTHER) == 77
        assert client.w3.eth.contract.call_args.kwargs["address"] == Web3.to_checksum_address(CUSD_MAINNET)

    @pytest.mark.asyncio
    async def test_rpc_failure_becomes_blockchain_error(self, client):
        client.w3.eth.get_balance.side_effect = ConnectionError("forno unreachable")

        with pytest.raises(BlockchainError) as exc_info:
            await client.get_balance(OTHER)
        assert "forno unreachable" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transaction_history_filters_and_orders_newest_first(self, client):
        me = client.account.address
        blocks = {
            9: {"timestamp": 900, "transactions": [
                {"hash": b"\x01" * 32, "from": me, "to": OTHER, "value": 1, "gas": 21000, "gasPrice": 5},
                {"hash": b"\x02" * 32, "from": OTHER, "to": OTHER, "value": 2, "gas": 21000, "gasPrice": 5},
            ]},
            10: {"timestamp": 1000, "transactions": [
                {"hash": b"\x03" * 32, "from": OTHER, "to": me, "value": 3, "gas": 21000, "gasPrice": 5},
            ]},
        }
        client.w3.eth.block_number = 10
        client.w3.eth.get_block.side_effect = lambda n, full_transactions: blocks.get(n, {"timestamp": 0, "transactions": []})

        history = await client.get_transaction_history(me, from_block=9)

        assert [tx["value"] for tx in history] == [3, 1]
        assert history[0]["block_number"] == 10
        assert history[0]["hash"] == "0x" + "03" * 32

    @pytest.mark.asyncio
    async def test_contract_events_filter_by_signature_topic(self, client):
        signature = "DonationReceived(address,uint256)"
        client.w3.eth.block_number = 500
        client.w3.eth.get_logs.return_value = [{
            "address": OTHER,
            "topics": [Web3.keccak(text=signature), b"\x00" * 12 + b"\xaa" * 20],
            "data": (5).to_bytes(32, "big"),
            "blockNumber": 480,
            "transactionHash": b"\x07" * 32,
            "logIndex": 2,
        }]

        events = await client.get_contract_events(OTHER.lower(), signature)

        client.w3.eth.get_logs.assert_called_once_with({
            "address": OTHER,
            "fromBlock": 400,
            "toBlock": 500,
            "topics": [Web3.keccak(text=signature)],
        })
        assert events == [{
            "address": OTHER,
            "topics": [Web3.to_hex(Web3.keccak(text=signature)), "0x" + "00" * 12 + "aa" * 20],
            "data": "0x" + "00" * 31 + "05",
            "block_number": 480,
            "transaction_hash": "0x" + "07" * 32,
            "log_index": 2,
        }]


class TestWrites:
    @pytest.mark.asyncio
    async def test_native_send_signs_with_pending_nonce(self, client):
        tx_hash = await client.send_native_token(OTHER, 10)

        assert tx_hash == "0x" + "12" * 32
        client.w3.eth.get_transaction_count.assert_called_once_with(client.account.address, "pending")
        client.w3.eth.send_raw_transaction.assert_called_once()

    @pytest.mark.asyncio
    async def test_send_celo_token_goes_native(self, client):
        await client.send_token("CELO", OTHER, 10)
        client.w3.eth.contract.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_erc20_builds_transfer(self, client):
        function = client.w3.eth.contract.return_value.get_function_by_name.return_value
        function.return_value.build_transaction.return_value = {
            "to": Web3.to_checksum_address(CUSD_MAINNET),
            "data": "0xa9059cbb",
            "value": 0,
            "gas": 60000,
            "gasPrice": 5_000_000_000,
            "chainId": 42220,
        }

        await client.send_token("cUSD", OTHER, 10)

        client.w3.eth.contract.return_value.get_function_by_name.assert_called_once_with("transfer")
        function.assert_called_once_with(OTHER, 10)
        client.w3.eth.send_raw_transaction.assert_called_once()


class TestFromConfig:
    def test_requires_private_key(self, monkeypatch):
        monkeypatch.delenv("CELO_PRIVATE_KEY", raising=False)
        with pytest.raises(AgentCoreError):
            CeloClient.from_config(AgentCoreConfig(), SecretsManager())

    def test_builds_from_secrets(self, monkeypatch):
        monkeypatch.setenv("CELO_PRIVATE_KEY", TEST_KEY)
        config = AgentCoreConfig()
        config.blockchain.network = "mainnet"

        client = CeloClient.from_config(config, SecretsManager())

        assert client.get_network_config().chain_id == 42220
