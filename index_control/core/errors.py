from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Type


class IndexControlError(Exception):
    """Base class of every error raised by the control plane."""


class ConfigurationError(IndexControlError):
    """The deployment document or process settings are missing or invalid."""


# -------- Graph validation / registry -------- #

class GraphError(IndexControlError):
    """A registration violated a graph invariant, locally or on the remote registry."""
    code: str = "GraphError"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.code)


class AssetAlreadyRegistered(GraphError):
    code = "AssetAlreadyRegistered"


class AssetNotFound(GraphError):
    code = "AssetNotFound"


class UnknownAsset(GraphError):
    code = "UnknownAsset"


class ChainAlreadyRegistered(GraphError):
    code = "ChainAlreadyRegistered"


class ChainNotFound(GraphError):
    code = "ChainNotFound"


class BridgeAlreadyRegistered(GraphError):
    code = "BridgeAlreadyRegistered"


class BridgeNotFound(GraphError):
    code = "BridgeNotFound"


class DexAlreadyRegistered(GraphError):
    code = "DexAlreadyRegistered"


class DexNotFound(GraphError):
    code = "DexNotFound"


DuplicateAsset = AssetAlreadyRegistered
AlreadyRegistered = ChainAlreadyRegistered
UnknownChain = ChainNotFound

_GRAPH_ERRORS_BY_CODE: Dict[str, Type[GraphError]] = {
    error_type.code: error_type
    for error_type in (
        AssetAlreadyRegistered,
        AssetNotFound,
        UnknownAsset,
        ChainAlreadyRegistered,
        ChainNotFound,
        BridgeAlreadyRegistered,
        BridgeNotFound,
        DexAlreadyRegistered,
        DexNotFound,
    )
}


def graph_error_from_code(code: str, message: Optional[str] = None) -> Optional[GraphError]:
    """Return the graph error matching a remote registry error code, or None when the code is not a graph error."""
    error_type = _GRAPH_ERRORS_BY_CODE.get(code)
    if error_type is None:
        return None
    return error_type(message)


# -------- Transport -------- #

class TransientReason(Enum):
    """Closed set of transport faults the scheduler is allowed to absorb."""
    RESET = "RESET"
    DECODE_QUIRK = "DECODE_QUIRK"


class TransportError(IndexControlError):
    """A remote call could not be completed at the transport level."""


class TransientTransportError(TransportError):
    def __init__(self, reason: TransientReason, message: str) -> None:
        super().__init__(f"{reason.value}: {message}")
        self.reason = reason


class FatalTransportError(TransportError):
    """Unexpected HTTP status or any transport failure outside the transient set."""


class ContractCallError(IndexControlError):
    """The remote contract answered with an `Err` variant or a dispatch error."""

    def __init__(self, method: str, code: str) -> None:
        super().__init__(f"{method} failed: {code}")
        self.method = method
        self.code = code


# -------- Executor / scheduler -------- #

class ExecutorNotRunning(IndexControlError):
    def __init__(self) -> None:
        super().__init__("Executor not running")


class CredentialRefreshError(IndexControlError):
    """Obtaining a fresh storage access token failed."""


def is_transient(error: BaseException) -> bool:
    """True when the error belongs to the transient transport set."""
    return isinstance(error, TransientTransportError)
