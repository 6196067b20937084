from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from index_control.core.utils.hex_utils import from_hex, to_hex

JSON = Any

MAX_DECIMALS = 255


def chain_key(name: str) -> str:
    """Case-normalized lookup key of a chain name."""
    return name.strip().lower()


def _optional_hex(value: Optional[bytes]) -> Optional[str]:
    return to_hex(value) if value is not None else None


def _optional_bytes(value: JSON) -> Optional[bytes]:
    return from_hex(value) if value is not None else None


class ChainType(Enum):
    EVM = "Evm"
    SUB = "Sub"


@dataclass(frozen=True)
class AssetInfo:
    """
    A fungible token on one chain.

    `location` is the chain-specific identification of the asset: a contract address on
    EVM chains, an encoded MultiLocation on Substrate chains. It is opaque to this package.
    """
    name: str
    symbol: str
    decimals: int
    location: bytes

    def __post_init__(self) -> None:
        if isinstance(self.decimals, bool) or not isinstance(self.decimals, int):
            raise ValueError(f"decimals must be an integer, got {self.decimals!r}")
        if not 0 <= self.decimals <= MAX_DECIMALS:
            raise ValueError(f"decimals must be within 0..{MAX_DECIMALS}, got {self.decimals}")
        if not isinstance(self.location, (bytes, bytearray)):
            raise ValueError("location must be bytes")

    def to_json(self) -> Dict[str, JSON]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "location": to_hex(self.location),
        }

    @staticmethod
    def from_json(payload: Mapping[str, JSON]) -> "AssetInfo":
        return AssetInfo(
            name=str(payload["name"]),
            symbol=str(payload["symbol"]),
            decimals=int(payload["decimals"]),
            location=from_hex(payload["location"]),
        )


@dataclass(frozen=True)
class ChainInfo:
    name: str
    chain_type: ChainType
    endpoint: str
    native: Optional[AssetInfo] = None
    stable: Optional[AssetInfo] = None
    network: Optional[int] = None

    @property
    def key(self) -> str:
        return chain_key(self.name)

    def with_native(self, native: AssetInfo) -> "ChainInfo":
        return replace(self, native=native)

    def with_stable(self, stable: AssetInfo) -> "ChainInfo":
        return replace(self, stable=stable)

    def with_endpoint(self, endpoint: str) -> "ChainInfo":
        return replace(self, endpoint=endpoint)

    def to_json(self) -> Dict[str, JSON]:
        return {
            "name": self.name,
            "chainType": self.chain_type.value,
            "native": self.native.to_json() if self.native else None,
            "stable": self.stable.to_json() if self.stable else None,
            "endpoint": self.endpoint,
            "network": self.network,
        }

    @staticmethod
    def from_json(payload: Mapping[str, JSON]) -> "ChainInfo":
        native = payload.get("native")
        stable = payload.get("stable")
        network = payload.get("network")
        return ChainInfo(
            name=str(payload["name"]),
            chain_type=ChainType(payload["chainType"]),
            endpoint=str(payload.get("endpoint") or ""),
            native=AssetInfo.from_json(native) if native else None,
            stable=AssetInfo.from_json(stable) if stable else None,
            network=int(network) if network is not None else None,
        )


@dataclass(frozen=True)
class AssetPair:
    """Two asset locations, asset0 on the first side of an edge, asset1 on the second."""
    asset0: bytes
    asset1: bytes

    def flip(self) -> "AssetPair":
        return AssetPair(asset0=self.asset1, asset1=self.asset0)

    def to_json(self) -> List[str]:
        return [to_hex(self.asset0), to_hex(self.asset1)]

    @staticmethod
    def from_json(payload: JSON) -> "AssetPair":
        first, second = payload
        return AssetPair(asset0=from_hex(first), asset1=from_hex(second))


@dataclass(frozen=True)
class BridgeGraph:
    """
    A named edge between chain0 and chain1 carrying the asset pairs it can move.

    Pairs are stored in the declared direction (asset0 on chain0), while lookups
    resolve either direction to the same edge.
    """
    name: str
    chain0: str
    chain1: str
    assets: Tuple[AssetPair, ...] = ()

    def connects(self, chain_a: str, chain_b: str) -> bool:
        ends = {chain_key(self.chain0), chain_key(self.chain1)}
        return {chain_key(chain_a), chain_key(chain_b)} == ends

    def pair_for(self, chain: str, location: bytes) -> Optional[AssetPair]:
        """Return the pair oriented from `chain`, so that asset0 is `location`."""
        key = chain_key(chain)
        for pair in self.assets:
            if key == chain_key(self.chain0) and pair.asset0 == location:
                return pair
            if key == chain_key(self.chain1) and pair.asset1 == location:
                return pair.flip()
        return None

    def with_pair(self, pair: AssetPair) -> "BridgeGraph":
        return replace(self, assets=self.assets + (pair,))

    def to_json(self) -> Dict[str, JSON]:
        return {
            "name": self.name,
            "chain0": self.chain0,
            "chain1": self.chain1,
            "assets": [pair.to_json() for pair in self.assets],
        }

    @staticmethod
    def from_json(payload: Mapping[str, JSON]) -> "BridgeGraph":
        return BridgeGraph(
            name=str(payload.get("name") or ""),
            chain0=str(payload["chain0"]),
            chain1=str(payload["chain1"]),
            assets=tuple(AssetPair.from_json(item) for item in payload.get("assets") or []),
        )


@dataclass(frozen=True)
class DexPair:
    """A liquidity pool on one chain, referencing two assets of that chain by location."""
    id: bytes
    asset0: bytes
    asset1: bytes
    swap_fee: int = 0
    dev_fee: int = 0

    def __post_init__(self) -> None:
        if self.swap_fee < 0 or self.dev_fee < 0:
            raise ValueError("swap_fee and dev_fee must be non-negative")

    def flip(self) -> "DexPair":
        return replace(self, asset0=self.asset1, asset1=self.asset0)

    def to_json(self) -> Dict[str, JSON]:
        return {
            "id": to_hex(self.id),
            "asset0": to_hex(self.asset0),
            "asset1": to_hex(self.asset1),
            "swapFee": self.swap_fee,
            "devFee": self.dev_fee,
        }

    @staticmethod
    def from_json(payload: Mapping[str, JSON]) -> "DexPair":
        return DexPair(
            id=from_hex(payload["id"]),
            asset0=from_hex(payload["asset0"]),
            asset1=from_hex(payload["asset1"]),
            swap_fee=int(payload.get("swapFee") or 0),
            dev_fee=int(payload.get("devFee") or 0),
        )


@dataclass(frozen=True)
class Dex:
    """A named collection of pairs deployed on a single chain."""
    name: str
    id: bytes
    chain: str
    pairs: Tuple[DexPair, ...] = ()

    def with_pair(self, pair: DexPair) -> "Dex":
        return replace(self, pairs=self.pairs + (pair,))


# -------- Flattened projection returned by the registry -------- #

@dataclass(frozen=True)
class ChainGraph:
    name: str
    chain_type: ChainType
    endpoint: str
    native: Optional[bytes] = None
    stable: Optional[bytes] = None
    network: Optional[int] = None

    def to_json(self) -> Dict[str, JSON]:
        return {
            "name": self.name,
            "chainType": self.chain_type.value,
            "endpoint": self.endpoint,
            "native": _optional_hex(self.native),
            "stable": _optional_hex(self.stable),
            "network": self.network,
        }

    @staticmethod
    def from_json(payload: Mapping[str, JSON]) -> "ChainGraph":
        network = payload.get("network")
        return ChainGraph(
            name=str(payload["name"]),
            chain_type=ChainType(payload["chainType"]),
            endpoint=str(payload.get("endpoint") or ""),
            native=_optional_bytes(payload.get("native")),
            stable=_optional_bytes(payload.get("stable")),
            network=int(network) if network is not None else None,
        )


@dataclass(frozen=True)
class AssetGraph:
    chain: str
    location: bytes
    name: str
    symbol: str
    decimals: int

    def to_json(self) -> Dict[str, JSON]:
        return {
            "chain": self.chain,
            "location": to_hex(self.location),
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
        }

    @staticmethod
    def from_json(payload: Mapping[str, JSON]) -> "AssetGraph":
        return AssetGraph(
            chain=str(payload["chain"]),
            location=from_hex(payload["location"]),
            name=str(payload["name"]),
            symbol=str(payload["symbol"]),
            decimals=int(payload["decimals"]),
        )


@dataclass(frozen=True)
class DexGraph:
    name: str
    id: bytes
    chain: str

    def to_json(self) -> Dict[str, JSON]:
        return {"name": self.name, "id": to_hex(self.id), "chain": self.chain}

    @staticmethod
    def from_json(payload: Mapping[str, JSON]) -> "DexGraph":
        return DexGraph(name=str(payload["name"]), id=from_hex(payload["id"]), chain=str(payload["chain"]))


@dataclass(frozen=True)
class TradingPairGraph:
    id: bytes
    asset0: bytes
    asset1: bytes
    dex: str
    chain: str
    swap_fee: int = 0
    dev_fee: int = 0

    def to_json(self) -> Dict[str, JSON]:
        return {
            "id": to_hex(self.id),
            "asset0": to_hex(self.asset0),
            "asset1": to_hex(self.asset1),
            "dex": self.dex,
            "chain": self.chain,
            "swapFee": self.swap_fee,
            "devFee": self.dev_fee,
        }

    @staticmethod
    def from_json(payload: Mapping[str, JSON]) -> "TradingPairGraph":
        return TradingPairGraph(
            id=from_hex(payload["id"]),
            asset0=from_hex(payload["asset0"]),
            asset1=from_hex(payload["asset1"]),
            dex=str(payload["dex"]),
            chain=str(payload["chain"]),
            swap_fee=int(payload.get("swapFee") or 0),
            dev_fee=int(payload.get("devFee") or 0),
        )


@dataclass(frozen=True)
class Graph:
    """
    Read-only projection of everything registered on the remote registry.

    References between records are identifiers (chain names, asset locations, dex names),
    never nested records. A Graph is rebuilt from each fetch and never mutated.
    """
    chains: List[ChainGraph] = field(default_factory=list)
    assets: List[AssetGraph] = field(default_factory=list)
    dexes: List[DexGraph] = field(default_factory=list)
    pairs: List[TradingPairGraph] = field(default_factory=list)
    bridges: List[BridgeGraph] = field(default_factory=list)

    def chain_names(self) -> List[str]:
        names: List[str] = []
        seen: set[str] = set()
        candidates = [c.name for c in self.chains] + [a.chain for a in self.assets]
        for bridge in self.bridges:
            candidates.extend([bridge.chain0, bridge.chain1])
        for name in candidates:
            if chain_key(name) not in seen:
                seen.add(chain_key(name))
                names.append(name)
        return names

    def assets_on(self, chain: str) -> List[AssetGraph]:
        key = chain_key(chain)
        return [asset for asset in self.assets if chain_key(asset.chain) == key]

    def bridges_between(self, chain_a: str, chain_b: str) -> List[BridgeGraph]:
        return [bridge for bridge in self.bridges if bridge.connects(chain_a, chain_b)]

    def to_json(self) -> Dict[str, JSON]:
        return {
            "chains": [c.to_json() for c in self.chains],
            "assets": [a.to_json() for a in self.assets],
            "dexes": [d.to_json() for d in self.dexes],
            "pairs": [p.to_json() for p in self.pairs],
            "bridges": [b.to_json() for b in self.bridges],
        }

    @staticmethod
    def from_json(payload: Mapping[str, JSON]) -> "Graph":
        return Graph(
            chains=[ChainGraph.from_json(item) for item in payload.get("chains") or []],
            assets=[AssetGraph.from_json(item) for item in payload.get("assets") or []],
            dexes=[DexGraph.from_json(item) for item in payload.get("dexes") or []],
            pairs=[TradingPairGraph.from_json(item) for item in payload.get("pairs") or []],
            bridges=[BridgeGraph.from_json(item) for item in payload.get("bridges") or []],
        )
