from __future__ import annotations

from typing import Any, Mapping

from index_control.core.errors import ContractCallError, graph_error_from_code
from index_control.core.structures.executor import TxOutcome
from index_control.core.structures.graph import AssetInfo, AssetPair, ChainInfo, DexPair, Graph
from index_control.core.utils.hex_utils import to_hex
from index_control.integrations.contract.contract_client import ContractClient, ok_value
from index_control.logging.logger import get_logger

log = get_logger(__name__)

JSON = Any


class RegistryClient:
    """
    Thin adaptor over the registry contract.

    Writes are issued, awaited until inclusion and any terminal error is propagated;
    nothing is retried and nothing is cached. `get_graph` is the single read path.
    """

    def __init__(self, contract: ContractClient) -> None:
        self._contract = contract

    async def _write(self, method: str, *args: JSON) -> TxOutcome:
        try:
            return await self._contract.transact(method, *args)
        except ContractCallError as error:
            graph_error = graph_error_from_code(error.code, f"{method}: {error.code}")
            if graph_error is not None:
                raise graph_error from error
            raise

    # -------- Chains -------- #

    async def register_chain(self, info: ChainInfo) -> TxOutcome:
        log.info("[REGISTRY][CHAIN] Register chain=%s type=%s", info.name, info.chain_type.value)
        return await self._write("registerChain", info.to_json())

    async def unregister_chain(self, name: str) -> TxOutcome:
        log.info("[REGISTRY][CHAIN] Unregister chain=%s", name)
        return await self._write("unregisterChain", name)

    async def set_chain_native(self, chain: str, native: AssetInfo) -> TxOutcome:
        return await self._write("setChainNative", chain, native.to_json())

    async def set_chain_stable(self, chain: str, stable: AssetInfo) -> TxOutcome:
        return await self._write("setChainStable", chain, stable.to_json())

    async def set_chain_endpoint(self, chain: str, endpoint: str) -> TxOutcome:
        return await self._write("setChainEndpoint", chain, endpoint)

    # -------- Assets -------- #

    async def register_asset(self, chain: str, asset: AssetInfo) -> TxOutcome:
        log.info("[REGISTRY][ASSET] Register %s on %s location=%s", asset.symbol, chain, to_hex(asset.location))
        return await self._write("registerAsset", chain, asset.to_json())

    async def unregister_asset(self, chain: str, asset: AssetInfo) -> TxOutcome:
        log.info("[REGISTRY][ASSET] Unregister %s on %s", asset.symbol, chain)
        return await self._write("unregisterAsset", chain, asset.to_json())

    # -------- Bridges -------- #

    async def register_bridge(self, name: str, chain0: str, chain1: str) -> TxOutcome:
        log.info("[REGISTRY][BRIDGE] Register bridge=%s %s<->%s", name, chain0, chain1)
        return await self._write("registerBridge", name, chain0, chain1)

    async def unregister_bridge(self, name: str) -> TxOutcome:
        return await self._write("unregisterBridge", name)

    async def add_bridge_asset(self, bridge_name: str, pair: AssetPair) -> TxOutcome:
        log.info("[REGISTRY][BRIDGE] Add pair %s to bridge=%s", pair.to_json(), bridge_name)
        return await self._write("addBridgeAsset", bridge_name, pair.to_json())

    async def remove_bridge_asset(self, bridge_name: str, pair: AssetPair) -> TxOutcome:
        return await self._write("removeBridgeAsset", bridge_name, pair.to_json())

    # -------- Dexes -------- #

    async def register_dex(self, name: str, dex_id: bytes, chain: str) -> TxOutcome:
        log.info("[REGISTRY][DEX] Register dex=%s on %s", name, chain)
        return await self._write("registerDex", name, to_hex(dex_id), chain)

    async def unregister_dex(self, name: str) -> TxOutcome:
        return await self._write("unregisterDex", name)

    async def add_dex_pair(self, dex_name: str, pair: DexPair) -> TxOutcome:
        log.info("[REGISTRY][DEX] Add pair %s to dex=%s", to_hex(pair.id), dex_name)
        return await self._write("addDexPair", dex_name, pair.to_json())

    async def remove_dex_pair(self, dex_name: str, pair: DexPair) -> TxOutcome:
        return await self._write("removeDexPair", dex_name, pair.to_json())

    # -------- Read path -------- #

    async def get_graph(self) -> Graph:
        """Return the registry graph as of this call."""
        outcome = await self._contract.query("getGraph")
        try:
            payload = ok_value(outcome)
        except ContractCallError as error:
            graph_error = graph_error_from_code(error.code, f"getGraph: {error.code}")
            if graph_error is not None:
                raise graph_error from error
            raise
        if not isinstance(payload, Mapping):
            raise ContractCallError("getGraph", "MalformedGraph")
        try:
            graph = Graph.from_json(payload)
        except (KeyError, TypeError, ValueError) as error:
            raise ContractCallError("getGraph", "MalformedGraph") from error
        log.debug(
            "[REGISTRY][GRAPH] chains=%d assets=%d pairs=%d bridges=%d",
            len(graph.chains), len(graph.assets), len(graph.pairs), len(graph.bridges),
        )
        return graph
