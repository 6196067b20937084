from __future__ import annotations

from typing import Optional

from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.contract import AsyncContract
from web3.types import TxParams

from index_control.configuration.config import DeploymentConfig, chain_type_of
from index_control.core.errors import ConfigurationError
from index_control.core.structures.graph import ChainType
from index_control.core.utils.hex_utils import from_hex, to_hex
from index_control.integrations.contract.contract_helpers import load_signer
from index_control.integrations.handler.handler_abis import ERC20_ABI, HANDLER_ABI, SET_WORKER_GAS_LIMIT
from index_control.logging.logger import get_logger

log = get_logger(__name__)


def _require_evm(chain: str) -> None:
    if chain_type_of(chain) is not ChainType.EVM:
        raise ConfigurationError(f"{chain}: not implemented for Substrate chains")


def _bytes32(value: bytes) -> bytes:
    if len(value) > 32:
        raise ValueError(f"Expected at most 32 bytes, got {len(value)}")
    return value.rjust(32, b"\x00")


class EvmHandlerClient:
    """
    Administrative access to the task handler contract deployed on an EVM chain.

    Each write builds a legacy transaction, signs it locally with eth-account and
    broadcasts it; the transaction hash is returned without waiting for a receipt.
    """

    def __init__(self, endpoint: str, handler_address: str, private_key: str) -> None:
        if not endpoint or not handler_address:
            raise ConfigurationError("EVM handler requires an RPC endpoint and a handler address.")
        if not private_key:
            raise ConfigurationError("EVM handler requires the signer private key.")
        self._web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(endpoint))
        self._account: LocalAccount = load_signer(private_key)
        self._handler: AsyncContract = self._web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(handler_address), abi=HANDLER_ABI
        )

    @classmethod
    def for_chain(cls, config: DeploymentConfig, chain: str, private_key: str) -> "EvmHandlerClient":
        _require_evm(chain)
        endpoint = config.chain_endpoint(chain)
        handler = config.chain_handler(chain)
        if endpoint is None:
            raise ConfigurationError(f"No endpoint configured for chain '{chain}'")
        if handler is None:
            raise ConfigurationError(f"No handler configured for chain '{chain}'")
        return cls(endpoint, handler, private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def _sign_and_send(self, tx: TxParams) -> str:
        signed = self._account.sign_transaction(tx)
        tx_hash = await self._web3.eth.send_raw_transaction(signed.raw_transaction)
        return to_hex(bytes(tx_hash))

    async def _base_params(self, gas: Optional[int] = None, value: int = 0) -> TxParams:
        params: TxParams = {
            "from": self._account.address,
            "nonce": await self._web3.eth.get_transaction_count(self._account.address),
            "gasPrice": await self._web3.eth.gas_price,
            "value": value,
        }
        if gas is not None:
            params["gas"] = gas
        return params

    async def set_worker(self, worker: str) -> str:
        """Whitelist a worker address on the handler."""
        params = await self._base_params(gas=SET_WORKER_GAS_LIMIT)
        tx = await self._handler.functions.setWorker(AsyncWeb3.to_checksum_address(worker)).build_transaction(params)
        tx_hash = await self._sign_and_send(tx)
        log.info("[HANDLER][SET_WORKER] worker=%s tx=%s", worker, tx_hash)
        return tx_hash

    async def deposit(
            self,
            asset: str,
            amount: int,
            recipient: str,
            worker: str,
            task_id: str,
            data: str,
    ) -> str:
        """Deposit a task: lock `amount` of `asset` on the handler and publish the task for `worker`."""
        params = await self._base_params()
        tx = await self._handler.functions.deposit(
            AsyncWeb3.to_checksum_address(asset),
            int(amount),
            from_hex(recipient),
            AsyncWeb3.to_checksum_address(worker),
            _bytes32(from_hex(task_id)),
            from_hex(data),
        ).build_transaction(params)
        tx_hash = await self._sign_and_send(tx)
        log.info("[HANDLER][DEPOSIT] asset=%s amount=%s worker=%s task=%s tx=%s",
                 asset, amount, worker, task_id, tx_hash)
        return tx_hash


async def read_balance(endpoint: str, account: str, asset: Optional[str] = None) -> int:
    """Native balance of `account`, or its ERC-20 balance when `asset` is a token address."""
    web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(endpoint))
    owner = AsyncWeb3.to_checksum_address(account)
    if asset is None:
        return int(await web3.eth.get_balance(owner))
    token = web3.eth.contract(address=AsyncWeb3.to_checksum_address(asset), abi=ERC20_ABI)
    return int(await token.functions.balanceOf(owner).call())
