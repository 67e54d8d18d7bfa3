"""
Celo Blockchain Client
Balance, transfer and contract-call capability consumed by the agent engine.

The engine only depends on the BlockchainClient interface; CeloClient is the
web3.py implementation. web3 calls are blocking, so each one runs in a worker
thread via asyncio.to_thread.
"""

import asyncio
import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from eth_account import Account
from web3 import Web3

from .config import AgentCoreConfig, SecretsManager, ZERO_ADDRESS
from .errors import AgentCoreError, BlockchainError
from .rpc import CHAIN_IDS, RPC_ENDPOINTS, get_web3

logger = logging.getLogger("CeloClient")


ERC20_ABI = [
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "name": "transfer",
        "outputs": [{"name": "success", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
]


@dataclass
class CeloNetworkConfig:
    """Addresses and endpoints for one Celo network"""
    chain_id: int
    name: str
    rpc_url: str
    explorer_url: str
    contracts: Dict[str, str] = field(default_factory=dict)
    tokens: Dict[str, str] = field(default_factory=dict)
    defi_protocols: Dict[str, str] = field(default_factory=dict)

    def token_address(self, token: str) -> str:
        """Resolve a token symbol (cUSD, cEUR, CELO...) to its address; addresses pass through."""
        for symbol, address in self.tokens.items():
            if symbol.lower() == str(token).lower():
                return address
        return token

    def is_native(self, token: str) -> bool:
        return self.token_address(token).lower() == self.tokens["CELO"].lower()


NETWORKS: Dict[str, CeloNetworkConfig] = {
    "alfajores": CeloNetworkConfig(
        chain_id=CHAIN_IDS["alfajores"],
        name="Celo Alfajores",
        rpc_url=RPC_ENDPOINTS["alfajores"],
        explorer_url="https://alfajores.celoscan.io",
        contracts={
            "agentRegistry": ZERO_ADDRESS,
            "agentTreasury": ZERO_ADDRESS,
            "donationSplitter": ZERO_ADDRESS,
            "yieldAggregator": ZERO_ADDRESS,
            "masterTrading": ZERO_ADDRESS,
            "attendanceNFT": ZERO_ADDRESS,
        },
        tokens={
            "cUSD": "0x874069Fa1Eb16D44d62F6a2e4c8B0C1C3b1C5C1C",
            "cEUR": "0x10c892A6EC43a53E45D0B916B4b7D383B1b78C0F",
            "cREAL": "0x00Be915B9dCf56a3CBE739D9B9c202ca692409EC",
            "CELO": ZERO_ADDRESS,
        },
        defi_protocols={
            "moola": ZERO_ADDRESS,
            "ubeswap": ZERO_ADDRESS,
            "curve": ZERO_ADDRESS,
        },
    ),
    "mainnet": CeloNetworkConfig(
        chain_id=CHAIN_IDS["mainnet"],
        name="Celo Mainnet",
        rpc_url=RPC_ENDPOINTS["mainnet"],
        explorer_url="https://celoscan.io",
        contracts={
            "agentRegistry": ZERO_ADDRESS,
            "agentTreasury": ZERO_ADDRESS,
            "donationSplitter": ZERO_ADDRESS,
            "yieldAggregator": ZERO_ADDRESS,
            "masterTrading": ZERO_ADDRESS,
            "attendanceNFT": ZERO_ADDRESS,
        },
        tokens={
            "cUSD": "0x765DE816845861e75A25fCA122bb6898B8B1282a",
            "cEUR": "0xD8763CBa276a3738E6DE85b4b3bF5FDed6D6cA73",
            "cREAL": "0xe8537a3d056DA446677B9E9d6c5dB704EaAb4787",
            "CELO": ZERO_ADDRESS,
        },
        defi_protocols={
            "moola": ZERO_ADDRESS,
            "ubeswap": ZERO_ADDRESS,
            "curve": ZERO_ADDRESS,
        },
    ),
}


def get_network_config(network: str) -> CeloNetworkConfig:
    """Fresh copy of a network config, safe to mutate"""
    if network not in NETWORKS:
        raise ValueError(f"Unknown Celo network: {network}")
    return copy.deepcopy(NETWORKS[network])


class BlockchainClient(ABC):
    """
    Chain capability used by the agent engine.
    Every coroutine may raise BlockchainError on RPC failure.
    """

    @abstractmethod
    def get_network_config(self) -> CeloNetworkConfig:
        ...

    @abstractmethod
    async def get_addresses(self) -> List[str]:
        ...

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        ...

    @abstractmethod
    async def get_token_balance(self, token: str, address: str) -> int:
        ...

    @abstractmethod
    async def get_transaction_history(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def get_contract_events(
        self,
        address: str,
        event_signature: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Logs emitted by address whose first topic is keccak(event_signature)"""
        ...

    @abstractmethod
    async def send_native_token(self, to: str, amount: int) -> str:
        ...

    @abstractmethod
    async def send_token(self, token: str, to: str, amount: int) -> str:
        ...

    @abstractmethod
    async def read_contract(self, address: str, abi: list, function_name: str, args: Optional[list] = None) -> Any:
        ...

    @abstractmethod
    async def write_contract(
        self,
        address: str,
        abi: list,
        function_name: str,
        args: Optional[list] = None,
        value: Optional[int] = None
    ) -> str:
        ...

    @abstractmethod
    async def get_gas_price(self) -> int:
        ...


class CeloClient(BlockchainClient):
    """web3.py client for Celo, signing locally with an eth_account key"""

    def __init__(
        self,
        private_key: str,
        network: str = "alfajores",
        rpc_url: Optional[str] = None,
        request_timeout: int = 30,
        history_blocks: int = 100
    ):
        self.network = get_network_config(network)
        if rpc_url:
            self.network.rpc_url = rpc_url

        self.w3 = get_web3(self.network.rpc_url, timeout=request_timeout)
        self.account = Account.from_key(private_key)
        self.history_blocks = history_blocks

        # One signer shared by every agent: nonce allocation must be serialized
        self._send_lock = threading.Lock()

        logger.info(f"⛓️ Celo client ready on {self.network.name} as {self.account.address[:10]}...")

    @classmethod
    def from_config(cls, config: AgentCoreConfig, secrets: SecretsManager) -> "CeloClient":
        private_key = secrets.get("CELO_PRIVATE_KEY")
        if not private_key:
            raise AgentCoreError("CELO_PRIVATE_KEY is not configured")
        return cls(
            private_key,
            network=config.blockchain.network,
            rpc_url=config.blockchain.rpc_url,
            request_timeout=config.blockchain.request_timeout,
            history_blocks=config.blockchain.history_blocks,
        )

    def get_network_config(self) -> CeloNetworkConfig:
        return self.network

    def set_contract_addresses(self, contracts: Dict[str, str]) -> None:
        self.network.contracts.update(contracts)

    async def _run(self, fn, *args):
        """Run a blocking web3 call off the event loop, normalising failures"""
        try:
            return await asyncio.to_thread(fn, *args)
        except AgentCoreError:
            raise
        except Exception as e:
            raise BlockchainError(self.network.name, f"{fn.__name__} failed: {e}") from e

    # ===========================================
    # READS
    # ===========================================

    async def get_addresses(self) -> List[str]:
        return [self.account.address]

    async def get_balance(self, address: str) -> int:
        return await self._run(self._get_balance, address)

    def _get_balance(self, address: str) -> int:
        return self.w3.eth.get_balance(Web3.to_checksum_address(address))

    async def get_token_balance(self, token: str, address: str) -> int:
        return await self._run(self._get_token_balance, token, address)

    def _get_token_balance(self, token: str, address: str) -> int:
        if self.network.is_native(token):
            return self._get_balance(address)

        contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(self.network.token_address(token)),
            abi=ERC20_ABI
        )
        return contract.functions.balanceOf(Web3.to_checksum_address(address)).call()

    async def get_transaction_history(
        self,
        address: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        return await self._run(self._get_transaction_history, address, from_block, to_block)

    def _get_transaction_history(
        self,
        address: str,
        from_block: Optional[int],
        to_block: Optional[int]
    ) -> List[Dict[str, Any]]:
        current_block = self.w3.eth.block_number
        end_block = to_block if to_block is not None else current_block
        start_block = from_block if from_block is not None else max(0, end_block - self.history_blocks)
        target = address.lower()

        transactions = []
        for block_number in range(start_block, end_block + 1):
            block = self.w3.eth.get_block(block_number, full_transactions=True)
            for tx in block.get("transactions", []):
                tx_from = (tx.get("from") or "").lower()
                tx_to = (tx.get("to") or "").lower()
                if tx_from != target and tx_to != target:
                    continue
                transactions.append({
                    "hash": Web3.to_hex(tx["hash"]),
                    "from": tx.get("from"),
                    "to": tx.get("to") or ZERO_ADDRESS,
                    "value": int(tx.get("value", 0)),
                    "gas_used": int(tx.get("gas", 0)),
                    "gas_price": int(tx.get("gasPrice") or 0),
                    "timestamp": int(block["timestamp"]),
                    "block_number": block_number,
                })

        # Newest first
        transactions.reverse()
        return transactions

    async def get_contract_events(
        self,
        address: str,
        event_signature: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        return await self._run(self._get_contract_events, address, event_signature, from_block, to_block)

    def _get_contract_events(
        self,
        address: str,
        event_signature: str,
        from_block: Optional[int],
        to_block: Optional[int]
    ) -> List[Dict[str, Any]]:
        end_block = to_block if to_block is not None else self.w3.eth.block_number
        start_block = from_block if from_block is not None else max(0, end_block - self.history_blocks)

        logs = self.w3.eth.get_logs({
            "address": Web3.to_checksum_address(address),
            "fromBlock": start_block,
            "toBlock": end_block,
            "topics": [Web3.keccak(text=event_signature)],
        })
        return [
            {
                "address": log["address"],
                "topics": [Web3.to_hex(topic) for topic in log["topics"]],
                "data": Web3.to_hex(log["data"]),
                "block_number": int(log["blockNumber"]),
                "transaction_hash": Web3.to_hex(log["transactionHash"]),
                "log_index": int(log["logIndex"]),
            }
            for log in logs
        ]

    async def read_contract(self, address: str, abi: list, function_name: str, args: Optional[list] = None) -> Any:
        return await self._run(self._read_contract, address, abi, function_name, args or [])

    def _read_contract(self, address: str, abi: list, function_name: str, args: list) -> Any:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        return contract.get_function_by_name(function_name)(*args).call()

    async def get_gas_price(self) -> int:
        return await self._run(self._get_gas_price)

    def _get_gas_price(self) -> int:
        return self.w3.eth.gas_price

    # ===========================================
    # WRITES
    # ===========================================

    async def send_native_token(self, to: str, amount: int) -> str:
        return await self._run(self._send_native_token, to, amount)

    def _send_native_token(self, to: str, amount: int) -> str:
        tx = {
            'to': Web3.to_checksum_address(to),
            'value': int(amount),
            'gas': 50000,
            'gasPrice': self.w3.eth.gas_price,
            'chainId': self.network.chain_id,
        }
        return self._sign_and_send(tx)

    async def send_token(self, token: str, to: str, amount: int) -> str:
        if self.network.is_native(token):
            return await self.send_native_token(to, amount)
        return await self.write_contract(
            self.network.token_address(token),
            ERC20_ABI,
            "transfer",
            [Web3.to_checksum_address(to), int(amount)]
        )

    async def write_contract(
        self,
        address: str,
        abi: list,
        function_name: str,
        args: Optional[list] = None,
        value: Optional[int] = None
    ) -> str:
        return await self._run(self._write_contract, address, abi, function_name, args or [], value)

    def _write_contract(self, address: str, abi: list, function_name: str, args: list, value: Optional[int]) -> str:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        tx = contract.get_function_by_name(function_name)(*args).build_transaction({
            'from': self.account.address,
            'value': int(value or 0),
            'gasPrice': self.w3.eth.gas_price,
            'chainId': self.network.chain_id,
        })
        return self._sign_and_send(tx)

    def _sign_and_send(self, tx: Dict[str, Any]) -> str:
        with self._send_lock:
            tx['nonce'] = self.w3.eth.get_transaction_count(self.account.address, 'pending')
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)

        tx_hash = Web3.to_hex(tx_hash)
        logger.info(f"[CeloClient] TX sent: {tx_hash}")
        return tx_hash
