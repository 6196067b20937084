from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from index_control.core.errors import ContractCallError
from index_control.core.structures.executor import AccountInfo, QueryOutcome, RunningMode, TxOutcome
from index_control.core.utils.hex_utils import from_hex, to_hex
from index_control.integrations.contract.contract_client import ContractClient, ok_value
from index_control.integrations.contract.contract_helpers import _error_code
from index_control.logging.logger import get_logger

log = get_logger(__name__)

JSON = Any


def _capitalize_chain(chain: str) -> str:
    """The executor keys per-worker task queues by capitalized chain name (e.g. 'Moonbeam')."""
    text = chain.strip()
    return text[:1].upper() + text[1:].lower()


def _flatten_result(outcome: QueryOutcome) -> QueryOutcome:
    """Fold a message-level `Ok`/`Err` answer into the outcome itself."""
    value = outcome.value
    if outcome.ok and isinstance(value, dict) and len(value) == 1:
        if "Ok" in value:
            return replace(outcome, value=value["Ok"])
        if "Err" in value:
            return replace(outcome, ok=False, value=None, error_code=_error_code(value["Err"]))
    return outcome


def _decode_accounts(method: str, payload: JSON) -> List[AccountInfo]:
    if not isinstance(payload, list):
        raise ContractCallError(method, "MalformedAccounts")
    return [AccountInfo.from_json(entry) for entry in payload if isinstance(entry, Mapping)]


class ExecutorClient:
    """
    Adaptor over the remote task executor.

    Configuration and lifecycle calls (`configure`, `resume`, `pause`) are two-phase
    transactions. Everything else, including `run`, is read-shaped: the executor performs
    any resulting on-chain submission on its own.
    """

    def __init__(self, contract: ContractClient) -> None:
        self._contract = contract

    # -------- Lifecycle -------- #

    async def configure(self, storage_url: str, storage_key: str, keystore_id: str, resume: bool) -> TxOutcome:
        log.info("[EXECUTOR][CONFIG] Configuring engine storage=%s keystore=%s resume=%s",
                 storage_url, keystore_id, resume)
        return await self._contract.transact("configEngine", storage_url, storage_key, keystore_id, resume)

    async def resume(self) -> TxOutcome:
        log.info("[EXECUTOR][LIFECYCLE] Resuming executor")
        return await self._contract.transact("resumeExecutor")

    async def pause(self) -> TxOutcome:
        log.info("[EXECUTOR][LIFECYCLE] Pausing executor")
        return await self._contract.transact("pauseExecutor")

    async def is_running(self) -> bool:
        outcome = await self._contract.query("isRunning")
        return bool(ok_value(outcome))

    # -------- Task cycles -------- #

    async def run(self, mode: RunningMode) -> QueryOutcome:
        """
        Trigger one discovery or execution cycle server-side.

        The returned outcome is opaque beyond success/failure; an `Err` answer is
        reported through the outcome, not raised.
        """
        return _flatten_result(await self._contract.query("run", mode.to_json()))

    async def get_running_tasks(self) -> List[Dict[str, JSON]]:
        payload = ok_value(await self._contract.query("getAllRunningTasks"))
        return [task for task in payload or [] if isinstance(task, dict)]

    async def get_running_task(self, task_id: bytes) -> Optional[Dict[str, JSON]]:
        payload = ok_value(await self._contract.query("getRunningTask", to_hex(task_id)))
        return payload if isinstance(payload, dict) else None

    async def get_config(self) -> Optional[Dict[str, JSON]]:
        payload = ok_value(await self._contract.query("getConfig"))
        return payload if isinstance(payload, dict) else None

    # -------- Accounts -------- #

    async def get_executor_account(self) -> AccountInfo:
        payload = ok_value(await self._contract.query("getExecutorAccount"))
        if not isinstance(payload, Mapping):
            raise ContractCallError("getExecutorAccount", "MalformedAccount")
        return AccountInfo.from_json(payload)

    async def get_worker_accounts(self) -> List[AccountInfo]:
        return _decode_accounts("getWorkerAccounts", ok_value(await self._contract.query("getWorkerAccounts")))

    async def get_free_worker_accounts(self) -> List[bytes]:
        payload = ok_value(await self._contract.query("getFreeWorkerAccount"))
        return [from_hex(worker) for worker in payload or []]

    # -------- Per-worker operations -------- #

    async def worker_approve(
            self,
            worker: bytes,
            chain: str,
            token: str,
            spender: str,
            amount: int,
    ) -> QueryOutcome:
        log.info("[EXECUTOR][WORKER] Approve worker=%s chain=%s token=%s spender=%s amount=%s",
                 to_hex(worker), chain, token, spender, amount)
        outcome = await self._contract.query(
            "workerApprove", to_hex(worker), chain.strip().lower(), token, spender, str(amount)
        )
        return _flatten_result(outcome)

    async def worker_drop_task(self, worker: bytes, chain: str, task_id: bytes) -> QueryOutcome:
        log.info("[EXECUTOR][WORKER] Drop task=%s worker=%s chain=%s", to_hex(task_id), to_hex(worker), chain)
        outcome = await self._contract.query(
            "workerDropTask", to_hex(worker), _capitalize_chain(chain), to_hex(task_id)
        )
        return _flatten_result(outcome)


class KeystoreClient:
    """Key-store contract: holds worker keys and releases them to one authorized executor."""

    def __init__(self, contract: ContractClient) -> None:
        self._contract = contract

    async def set_executor(self, executor_contract_id: str) -> TxOutcome:
        log.info("[KEYSTORE] Authorizing executor=%s", executor_contract_id)
        return await self._contract.transact("setExecutor", executor_contract_id)
