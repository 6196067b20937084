from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from index_control.core.utils.hex_utils import from_hex, to_hex

JSON = Any


@dataclass(frozen=True)
class FetchMode:
    """Look for one active task on `source_chain` that belongs to `worker_id`."""
    source_chain: str
    worker_id: bytes

    def to_json(self) -> JSON:
        return {"Fetch": [self.source_chain, to_hex(self.worker_id)]}

    def label(self) -> str:
        return f"Fetch({self.source_chain}, {to_hex(self.worker_id)})"


@dataclass(frozen=True)
class ExecuteMode:
    """Drive execution of every task the executor currently tracks."""

    def to_json(self) -> JSON:
        return "Execute"

    def label(self) -> str:
        return "Execute"


RunningMode = Union[FetchMode, ExecuteMode]


@dataclass(frozen=True)
class AccountInfo:
    """A worker account in both of its chain representations."""
    account32: bytes
    account20: bytes

    @staticmethod
    def from_json(payload: Mapping[str, JSON]) -> "AccountInfo":
        return AccountInfo(
            account32=from_hex(payload["account32"]),
            account20=from_hex(payload["account20"]),
        )

    def to_json(self) -> Dict[str, str]:
        return {"account32": to_hex(self.account32), "account20": to_hex(self.account20)}


class StorageDepositKind(Enum):
    CHARGE = "Charge"
    REFUND = "Refund"


@dataclass(frozen=True)
class QueryOutcome:
    """
    Result of a read-shaped call, including the cost estimation the gateway
    attaches to every dry run.
    """
    method: str
    ok: bool
    value: JSON
    error_code: Optional[str]
    gas_required: int
    storage_deposit_kind: Optional[StorageDepositKind] = None
    storage_deposit: int = 0

    @property
    def storage_deposit_limit(self) -> Optional[int]:
        """The deposit limit a submission must carry: the charge, or None when nothing is charged."""
        if self.storage_deposit_kind is StorageDepositKind.CHARGE:
            return self.storage_deposit
        return None


@dataclass(frozen=True)
class TxOutcome:
    """Inclusion receipt of a submitted transaction."""
    method: str
    status: str
    block_hash: Optional[str]
    tx_hash: Optional[str]
