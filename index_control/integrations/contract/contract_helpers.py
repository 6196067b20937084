from __future__ import annotations

import json
from typing import Dict, Mapping, Optional

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from index_control.core.errors import (
    FatalTransportError,
    TransientReason,
    TransientTransportError,
    TransportError,
)
from index_control.core.structures.executor import QueryOutcome, StorageDepositKind, TxOutcome
from index_control.core.utils.dict_utils import _read_field, _read_int_like_field, _read_str_field, _read_variant
from index_control.core.utils.hex_utils import to_hex
from index_control.logging.logger import get_logger

log = get_logger(__name__)

_RESET_ERRORS = (httpx.ConnectError, httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError)


def load_signer(secret: str, derivation_index: int = 0) -> LocalAccount:
    """
    Build the account used to sign submissions.

    Accepts a hex private key or a BIP-39 mnemonic (derived at m/44'/60'/0'/0/{index}).
    """
    if not secret or not secret.strip():
        raise ValueError("A signer key or mnemonic must be provided.")
    text = secret.strip()
    if " " in text:
        Account.enable_unaudited_hdwallet_features()
        return Account.from_mnemonic(text, account_path=f"m/44'/60'/0'/0/{derivation_index}")
    return Account.from_key(text)


def _canonical_body(body: Mapping[str, object]) -> str:
    return json.dumps(body, sort_keys=True, separators=(",", ":"))


def _sign_body(signer: LocalAccount, body: Mapping[str, object]) -> str:
    """Sign the canonical JSON encoding of a submission body (EIP-191 personal message)."""
    signed = signer.sign_message(encode_defunct(text=_canonical_body(body)))
    return to_hex(bytes(signed.signature))


def _caused_by_connection_reset(error: BaseException) -> bool:
    current: Optional[BaseException] = error
    while current is not None:
        if isinstance(current, ConnectionResetError):
            return True
        current = current.__cause__ or current.__context__
    return False


def _classify_transport_error(url: str, error: Exception) -> TransportError:
    """Map an httpx failure onto the closed transient set, or a fatal transport error."""
    if isinstance(error, _RESET_ERRORS) or _caused_by_connection_reset(error):
        return TransientTransportError(TransientReason.RESET, f"{type(error).__name__} on {url}: {error}")
    return FatalTransportError(f"{type(error).__name__} on {url}: {error}")


async def _post_json(client: httpx.AsyncClient, url: str, body: Mapping[str, object]) -> Dict[str, object]:
    """
    POST a JSON body and return the decoded JSON object.

    Raises:
        TransientTransportError on connection resets and undecodable payloads.
        FatalTransportError on non-2xx responses and any other transport failure.
    """
    try:
        response = await client.post(url, json=dict(body))
    except (httpx.HTTPError, OSError) as exc:
        raise _classify_transport_error(url, exc) from exc

    if response.is_error:
        log.warning("[CONTRACT][HTTP] %s returned status=%s body=%s", url, response.status_code, response.text[:256])
        raise FatalTransportError(f"HTTP {response.status_code} on {url}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise TransientTransportError(TransientReason.DECODE_QUIRK, f"Undecodable response from {url}") from exc
    if not isinstance(payload, dict):
        raise TransientTransportError(TransientReason.DECODE_QUIRK, f"Unexpected response shape from {url}")
    return payload


def _error_code(raw: object) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, Mapping) and len(raw) == 1:
        key, value = next(iter(raw.items()))
        return f"{key}({value})" if value not in (None, "") else str(key)
    return json.dumps(raw, sort_keys=True, default=str)


def _decode_query_outcome(method: str, payload: Mapping[str, object]) -> QueryOutcome:
    """Decode `{"result": {"Ok"|"Err": ...}, "gasRequired", "storageDeposit"}`."""
    result = _read_variant(_read_field(payload, "result"), ("Ok", "Err"))
    if result is None:
        raise TransientTransportError(TransientReason.DECODE_QUIRK, f"{method}: response carries no result")

    storage_kind: Optional[StorageDepositKind] = None
    storage_amount = 0
    storage = _read_field(payload, "storageDeposit")
    deposit = _read_variant(storage, (kind.value for kind in StorageDepositKind))
    if deposit is not None:
        amount = _read_int_like_field(storage, deposit[0])
        if amount is not None:
            storage_kind = StorageDepositKind(deposit[0])
            storage_amount = amount

    variant, value = result
    if variant == "Ok":
        return QueryOutcome(
            method=method,
            ok=True,
            value=value,
            error_code=None,
            gas_required=_read_int_like_field(payload, "gasRequired") or 0,
            storage_deposit_kind=storage_kind,
            storage_deposit=storage_amount,
        )
    return QueryOutcome(
        method=method,
        ok=False,
        value=None,
        error_code=_error_code(value),
        gas_required=_read_int_like_field(payload, "gasRequired") or 0,
        storage_deposit_kind=storage_kind,
        storage_deposit=storage_amount,
    )


def _decode_tx_outcome(method: str, payload: Mapping[str, object]) -> TxOutcome:
    status = _read_str_field(payload, "status")
    if status is None:
        raise TransientTransportError(TransientReason.DECODE_QUIRK, f"{method}: response carries no status")
    return TxOutcome(
        method=method,
        status=status,
        block_hash=_read_str_field(payload, "blockHash"),
        tx_hash=_read_str_field(payload, "txHash"),
    )
