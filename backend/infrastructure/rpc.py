# infrastructure/rpc.py
"""
Centralized RPC configuration for the agent core.
Celo Alfajores and Mainnet endpoints, overridable per deployment.
"""
import os
from web3 import Web3
from typing import Optional


RPC_ENDPOINTS = {
    "alfajores": "https://alfajores-forno.celo-testnet.org",
    "mainnet": "https://forno.celo.org",
}

CHAIN_IDS = {
    "alfajores": 44787,
    "mainnet": 42220,
}


def get_rpc_url(network: str = "alfajores") -> str:
    """Get the RPC URL for a network - env override first, then public Forno."""
    return os.getenv("CELO_RPC_URL") or RPC_ENDPOINTS[network]


def get_web3(rpc_url: Optional[str] = None, timeout: int = 30, network: str = "alfajores") -> Web3:
    """Get a Web3 instance for the given RPC URL."""
    url = rpc_url or get_rpc_url(network)
    return Web3(Web3.HTTPProvider(url, request_kwargs={'timeout': timeout}))
