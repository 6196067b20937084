from __future__ import annotations

from typing import Dict, List, Optional

from index_control.core.errors import (
    AssetAlreadyRegistered,
    BridgeAlreadyRegistered,
    BridgeNotFound,
    ChainAlreadyRegistered,
    ChainNotFound,
    DexAlreadyRegistered,
    DexNotFound,
    UnknownAsset,
)
from index_control.core.structures.graph import (
    AssetGraph,
    AssetInfo,
    AssetPair,
    BridgeGraph,
    ChainGraph,
    ChainInfo,
    Dex,
    DexGraph,
    DexPair,
    Graph,
    TradingPairGraph,
    chain_key,
)
from index_control.core.utils.hex_utils import to_hex


class GraphMirror:
    """
    Client-side mirror of the registry topology.

    Every mutation goes through a checked constructor that enforces the referential
    invariants of the graph:
    - (chain, location) is unique across registered assets
    - bridge pairs reference assets registered on the bridge's two chains
    - dex pairs reference assets registered on the dex's chain

    The authoritative copy lives in the remote registry; the mirror is only used to
    validate writes before they are issued and to model the registry in tests.
    """

    def __init__(self) -> None:
        self._chains: Dict[str, ChainInfo] = {}
        self._assets: Dict[str, List[AssetInfo]] = {}
        self._bridges: Dict[str, BridgeGraph] = {}
        self._dexes: Dict[str, Dex] = {}

    # -------- Chains -------- #

    def register_chain(self, info: ChainInfo) -> None:
        if info.key in self._chains:
            raise ChainAlreadyRegistered(f"Chain '{info.name}' is already registered")
        self._chains[info.key] = info
        self._assets[info.key] = []
        for asset in (info.stable, info.native):
            if asset is not None and self.lookup_asset(info.name, asset.location) is None:
                self._assets[info.key].append(asset)

    def chain(self, name: str) -> ChainInfo:
        info = self._chains.get(chain_key(name))
        if info is None:
            raise ChainNotFound(f"Chain '{name}' is not registered")
        return info

    def has_chain(self, name: str) -> bool:
        return chain_key(name) in self._chains

    # -------- Assets -------- #

    def lookup_asset(self, chain: str, location: bytes) -> Optional[AssetInfo]:
        for asset in self._assets.get(chain_key(chain), []):
            if asset.location == location:
                return asset
        return None

    def registered_assets(self, chain: str) -> List[AssetInfo]:
        self.chain(chain)
        return list(self._assets[chain_key(chain)])

    def validate_asset(self, chain: str, asset: AssetInfo) -> None:
        self.chain(chain)
        if self.lookup_asset(chain, asset.location) is not None:
            raise AssetAlreadyRegistered(
                f"Asset {to_hex(asset.location)} is already registered on '{chain}'"
            )

    def register_asset(self, chain: str, asset: AssetInfo) -> None:
        self.validate_asset(chain, asset)
        self._assets[chain_key(chain)].append(asset)

    # -------- Bridges -------- #

    def register_bridge(self, name: str, chain0: str, chain1: str) -> None:
        if name in self._bridges:
            raise BridgeAlreadyRegistered(f"Bridge '{name}' is already registered")
        first = self.chain(chain0)
        second = self.chain(chain1)
        self._bridges[name] = BridgeGraph(name=name, chain0=first.name, chain1=second.name)

    def bridge(self, name: str) -> BridgeGraph:
        bridge = self._bridges.get(name)
        if bridge is None:
            raise BridgeNotFound(f"Bridge '{name}' is not registered")
        return bridge

    def validate_bridge(self, bridge: BridgeGraph, pair: AssetPair) -> None:
        for chain, location in ((bridge.chain0, pair.asset0), (bridge.chain1, pair.asset1)):
            if self.lookup_asset(chain, location) is None:
                raise UnknownAsset(f"Asset {to_hex(location)} is not registered on '{chain}'")

    def add_bridge_asset(self, bridge_name: str, pair: AssetPair) -> None:
        bridge = self.bridge(bridge_name)
        self.validate_bridge(bridge, pair)
        if pair in bridge.assets:
            raise AssetAlreadyRegistered(f"Pair {pair.to_json()} is already carried by bridge '{bridge_name}'")
        self._bridges[bridge_name] = bridge.with_pair(pair)

    # -------- Dexes -------- #

    def register_dex(self, name: str, dex_id: bytes, chain: str) -> None:
        if name in self._dexes:
            raise DexAlreadyRegistered(f"Dex '{name}' is already registered")
        info = self.chain(chain)
        self._dexes[name] = Dex(name=name, id=dex_id, chain=info.name)

    def dex(self, name: str) -> Dex:
        dex = self._dexes.get(name)
        if dex is None:
            raise DexNotFound(f"Dex '{name}' is not registered")
        return dex

    def validate_dex_pair(self, dex: Dex, pair: DexPair) -> None:
        for location in (pair.asset0, pair.asset1):
            if self.lookup_asset(dex.chain, location) is None:
                raise UnknownAsset(f"Asset {to_hex(location)} is not registered on '{dex.chain}'")

    def add_dex_pair(self, dex_name: str, pair: DexPair) -> None:
        dex = self.dex(dex_name)
        self.validate_dex_pair(dex, pair)
        if any(existing.id == pair.id for existing in dex.pairs):
            raise AssetAlreadyRegistered(f"Pair {to_hex(pair.id)} is already listed on dex '{dex_name}'")
        self._dexes[dex_name] = dex.with_pair(pair)

    # -------- Projection -------- #

    def to_graph(self) -> Graph:
        chains = [
            ChainGraph(
                name=info.name,
                chain_type=info.chain_type,
                endpoint=info.endpoint,
                native=info.native.location if info.native else None,
                stable=info.stable.location if info.stable else None,
                network=info.network,
            )
            for info in self._chains.values()
        ]
        assets = [
            AssetGraph(
                chain=self._chains[key].name,
                location=asset.location,
                name=asset.name,
                symbol=asset.symbol,
                decimals=asset.decimals,
            )
            for key, chain_assets in self._assets.items()
            for asset in chain_assets
        ]
        dexes = [DexGraph(name=dex.name, id=dex.id, chain=dex.chain) for dex in self._dexes.values()]
        pairs = [
            TradingPairGraph(
                id=pair.id,
                asset0=pair.asset0,
                asset1=pair.asset1,
                dex=dex.name,
                chain=dex.chain,
                swap_fee=pair.swap_fee,
                dev_fee=pair.dev_fee,
            )
            for dex in self._dexes.values()
            for pair in dex.pairs
        ]
        return Graph(chains=chains, assets=assets, dexes=dexes, pairs=pairs, bridges=list(self._bridges.values()))

    @classmethod
    def from_graph(cls, graph: Graph) -> "GraphMirror":
        """Rebuild a mirror from a fetched graph, re-checking every invariant on the way in."""
        mirror = cls()
        for chain in graph.chains:
            mirror.register_chain(ChainInfo(name=chain.name, chain_type=chain.chain_type,
                                            endpoint=chain.endpoint, network=chain.network))
        for asset in graph.assets:
            if not mirror.has_chain(asset.chain):
                raise ChainNotFound(f"Asset {to_hex(asset.location)} references unknown chain '{asset.chain}'")
            mirror.register_asset(asset.chain, AssetInfo(name=asset.name, symbol=asset.symbol,
                                                         decimals=asset.decimals, location=asset.location))
        for chain in graph.chains:
            info = mirror.chain(chain.name)
            if chain.native is not None:
                info = info.with_native(mirror._require_asset(chain.name, chain.native))
            if chain.stable is not None:
                info = info.with_stable(mirror._require_asset(chain.name, chain.stable))
            mirror._chains[info.key] = info
        for dex in graph.dexes:
            mirror.register_dex(dex.name, dex.id, dex.chain)
        for pair in graph.pairs:
            mirror.add_dex_pair(pair.dex, DexPair(id=pair.id, asset0=pair.asset0, asset1=pair.asset1,
                                                  swap_fee=pair.swap_fee, dev_fee=pair.dev_fee))
        for bridge in graph.bridges:
            mirror.register_bridge(bridge.name, bridge.chain0, bridge.chain1)
            for pair in bridge.assets:
                mirror.add_bridge_asset(bridge.name, pair)
        return mirror

    def _require_asset(self, chain: str, location: bytes) -> AssetInfo:
        asset = self.lookup_asset(chain, location)
        if asset is None:
            raise UnknownAsset(f"Asset {to_hex(location)} is not registered on '{chain}'")
        return asset
