from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from eth_account.signers.local import LocalAccount

from index_control.core.errors import ContractCallError
from index_control.core.structures.executor import QueryOutcome, TxOutcome
from index_control.core.utils.dict_utils import _read_field
from index_control.integrations.contract.contract_helpers import (
    _decode_query_outcome,
    _decode_tx_outcome,
    _error_code,
    _post_json,
    _sign_body,
)
from index_control.logging.logger import get_logger

log = get_logger(__name__)

JSON = Any


def ok_value(outcome: QueryOutcome) -> JSON:
    """
    Unwrap the `Ok` value of a query or raise the contract's error.

    Messages that themselves return a result come back as `Ok(Ok(v))` or `Ok(Err(code))`;
    the inner layer is unwrapped the same way.
    """
    if not outcome.ok:
        raise ContractCallError(outcome.method, outcome.error_code or "Unknown")
    value = outcome.value
    if isinstance(value, dict) and len(value) == 1:
        if "Ok" in value:
            return value["Ok"]
        if "Err" in value:
            raise ContractCallError(outcome.method, _error_code(value["Err"]))
    return value


class ContractClient:
    """
    Request/response access to one contract behind the remote gateway.

    Read-shaped calls are dry runs (`query`). State-mutating calls (`transact`) follow
    the two-step protocol: estimate cost with a dry run, then submit a signed
    transaction carrying the estimated gas and storage budget and wait for inclusion.

    The client holds no local state beyond the connection handle and is safe to share
    between concurrent callers.
    """

    def __init__(
            self,
            base_url: str,
            contract_id: str,
            signer: Optional[LocalAccount] = None,
            http_client: Optional[httpx.AsyncClient] = None,
            timeout: Optional[float] = None,
    ) -> None:
        if not base_url.strip():
            raise ValueError("Contract gateway base URL must be configured.")
        if not contract_id.strip():
            raise ValueError("Contract id must be configured.")
        self.base_url = base_url.rstrip("/")
        self.contract_id = contract_id
        self._signer = signer
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout if timeout and timeout > 0 else None)
        )

    @property
    def origin(self) -> Optional[str]:
        return self._signer.address if self._signer is not None else None

    def _url(self, kind: str) -> str:
        return f"{self.base_url}/contracts/{self.contract_id}/{kind}"

    async def query(self, method: str, *args: JSON) -> QueryOutcome:
        body: Dict[str, JSON] = {"method": method, "args": list(args), "origin": self.origin}
        log.debug("[CONTRACT][QUERY] contract=%s method=%s", self.contract_id, method)
        payload = await _post_json(self._client, self._url("query"), body)
        return _decode_query_outcome(method, payload)

    async def transact(self, method: str, *args: JSON) -> TxOutcome:
        if self._signer is None:
            raise ValueError(f"{method}: a signer is required to submit transactions.")

        estimation = await self.query(method, *args)
        ok_value(estimation)

        body: Dict[str, JSON] = {
            "method": method,
            "args": list(args),
            "origin": self.origin,
            "gasLimit": estimation.gas_required,
            "storageDepositLimit": estimation.storage_deposit_limit,
        }
        body["signature"] = _sign_body(self._signer, body)

        log.info(
            "[CONTRACT][TX] Submitting contract=%s method=%s gas_limit=%s storage_limit=%s",
            self.contract_id,
            method,
            estimation.gas_required,
            estimation.storage_deposit_limit,
        )
        payload = await _post_json(self._client, self._url("tx"), body)

        dispatch_error = _read_field(payload, "dispatchError")
        if dispatch_error:
            raise ContractCallError(method, str(dispatch_error))

        outcome = _decode_tx_outcome(method, payload)
        log.info("[CONTRACT][TX] Included method=%s status=%s block=%s", method, outcome.status, outcome.block_hash)
        return outcome

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ContractClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
