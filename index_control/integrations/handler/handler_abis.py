"""
EVM handler contract ABI and gas constants
"""
from typing import Any, Final, List

SET_WORKER_GAS_LIMIT: Final[int] = 2_000_000

HANDLER_ABI: Final[List[Any]] = [
    {
        "inputs": [{"internalType": "address", "name": "worker", "type": "address"}],
        "name": "setWorker",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "token", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
            {"internalType": "bytes", "name": "recipient", "type": "bytes"},
            {"internalType": "address", "name": "worker", "type": "address"},
            {"internalType": "bytes32", "name": "taskId", "type": "bytes32"},
            {"internalType": "bytes", "name": "request", "type": "bytes"},
        ],
        "name": "deposit",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
]

ERC20_ABI: Final[List[Any]] = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
]
