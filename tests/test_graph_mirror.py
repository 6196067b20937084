import pytest

from index_control.core.errors import (
    AssetAlreadyRegistered,
    BridgeNotFound,
    ChainAlreadyRegistered,
    ChainNotFound,
    DexNotFound,
    DuplicateAsset,
    UnknownAsset,
)
from index_control.core.graph.graph_mirror import GraphMirror
from index_control.core.structures.graph import AssetInfo, AssetPair, ChainInfo, ChainType, DexPair

ETH_PHA = bytes.fromhex("6c5ba91642f10282b576d91922ae6448c9d52f4e")
ETH_USDC = bytes.fromhex("a0b86991c6218b36c1d19d4a2e9eb0ce3606eb48")
KHALA_PHA = bytes.fromhex("010100cd1f")


def _pha(location: bytes, decimals: int) -> AssetInfo:
    return AssetInfo(name="Phala Token", symbol="PHA", decimals=decimals, location=location)


@pytest.fixture
def mirror() -> GraphMirror:
    m = GraphMirror()
    m.register_chain(ChainInfo(name="Ethereum", chain_type=ChainType.EVM, endpoint="https://eth.rpc"))
    m.register_chain(ChainInfo(name="Khala", chain_type=ChainType.SUB, endpoint="wss://khala.rpc"))
    return m


def test_chain_names_are_case_normalized(mirror: GraphMirror):
    assert mirror.chain("ethereum").name == "Ethereum"
    with pytest.raises(ChainAlreadyRegistered):
        mirror.register_chain(ChainInfo(name="ETHEREUM", chain_type=ChainType.EVM, endpoint="x"))


def test_duplicate_asset_is_rejected_and_kept_once(mirror: GraphMirror):
    mirror.register_asset("Ethereum", _pha(ETH_PHA, 18))

    with pytest.raises(AssetAlreadyRegistered):
        mirror.register_asset("Ethereum", _pha(ETH_PHA, 18))

    records = [a for a in mirror.to_graph().assets if a.chain == "Ethereum" and a.location == ETH_PHA]
    assert len(records) == 1
    assert DuplicateAsset is AssetAlreadyRegistered


def test_same_location_on_two_chains_is_allowed(mirror: GraphMirror):
    mirror.register_asset("Ethereum", _pha(ETH_PHA, 18))
    mirror.register_asset("Khala", _pha(ETH_PHA, 12))
    assert len(mirror.to_graph().assets) == 2


def test_asset_on_unknown_chain(mirror: GraphMirror):
    with pytest.raises(ChainNotFound):
        mirror.validate_asset("Polkadot", _pha(KHALA_PHA, 10))


def test_bridge_pair_requires_both_assets(mirror: GraphMirror):
    mirror.register_bridge("khala-ethereum", "Khala", "Ethereum")
    mirror.register_asset("Khala", _pha(KHALA_PHA, 12))
    pair = AssetPair(asset0=KHALA_PHA, asset1=ETH_PHA)

    with pytest.raises(UnknownAsset):
        mirror.add_bridge_asset("khala-ethereum", pair)

    mirror.register_asset("Ethereum", _pha(ETH_PHA, 18))
    mirror.add_bridge_asset("khala-ethereum", pair)
    assert mirror.bridge("khala-ethereum").assets == (pair,)


def test_bridge_pair_sides_are_checked_against_declared_chains(mirror: GraphMirror):
    mirror.register_asset("Khala", _pha(KHALA_PHA, 12))
    mirror.register_asset("Ethereum", _pha(ETH_PHA, 18))
    mirror.register_bridge("khala-ethereum", "Khala", "Ethereum")

    with pytest.raises(UnknownAsset):
        mirror.add_bridge_asset("khala-ethereum", AssetPair(asset0=ETH_PHA, asset1=KHALA_PHA))


def test_bridge_lookup_is_symmetric(mirror: GraphMirror):
    mirror.register_asset("Khala", _pha(KHALA_PHA, 12))
    mirror.register_asset("Ethereum", _pha(ETH_PHA, 18))
    mirror.register_bridge("khala-ethereum", "Khala", "Ethereum")
    mirror.add_bridge_asset("khala-ethereum", AssetPair(asset0=KHALA_PHA, asset1=ETH_PHA))

    bridge = mirror.bridge("khala-ethereum")
    assert bridge.connects("ethereum", "khala")
    assert bridge.pair_for("Ethereum", ETH_PHA) == AssetPair(asset0=ETH_PHA, asset1=KHALA_PHA)
    assert bridge.pair_for("Khala", KHALA_PHA) == AssetPair(asset0=KHALA_PHA, asset1=ETH_PHA)
    # Stored in the declared direction.
    assert bridge.assets[0].asset0 == KHALA_PHA


def test_duplicate_bridge_pair(mirror: GraphMirror):
    mirror.register_asset("Khala", _pha(KHALA_PHA, 12))
    mirror.register_asset("Ethereum", _pha(ETH_PHA, 18))
    mirror.register_bridge("khala-ethereum", "Khala", "Ethereum")
    pair = AssetPair(asset0=KHALA_PHA, asset1=ETH_PHA)
    mirror.add_bridge_asset("khala-ethereum", pair)

    with pytest.raises(AssetAlreadyRegistered):
        mirror.add_bridge_asset("khala-ethereum", pair)


def test_unknown_bridge_and_dex(mirror: GraphMirror):
    with pytest.raises(BridgeNotFound):
        mirror.add_bridge_asset("nope", AssetPair(asset0=ETH_PHA, asset1=KHALA_PHA))
    with pytest.raises(DexNotFound):
        mirror.add_dex_pair("nope", DexPair(id=b"\x01", asset0=ETH_PHA, asset1=ETH_USDC))


def test_dex_pair_is_scoped_to_dex_chain(mirror: GraphMirror):
    mirror.register_asset("Ethereum", _pha(ETH_PHA, 18))
    mirror.register_asset("Khala", _pha(KHALA_PHA, 12))
    mirror.register_dex("UniswapV2", b"\x7a\x25", "Ethereum")

    with pytest.raises(UnknownAsset):
        mirror.add_dex_pair("UniswapV2", DexPair(id=b"\x01", asset0=ETH_PHA, asset1=KHALA_PHA))

    mirror.register_asset("Ethereum", AssetInfo(name="USD Coin", symbol="USDC", decimals=6, location=ETH_USDC))
    pair = DexPair(id=b"\x01", asset0=ETH_PHA, asset1=ETH_USDC, swap_fee=3)
    mirror.add_dex_pair("UniswapV2", pair)

    graph = mirror.to_graph()
    assert len(graph.pairs) == 1
    assert graph.pairs[0].dex == "UniswapV2"
    assert graph.pairs[0].chain == "Ethereum"
    assert graph.pairs[0].swap_fee == 3


def test_chain_native_and_stable_become_assets():
    mirror = GraphMirror()
    usdc = AssetInfo(name="USD Coin", symbol="USDC", decimals=6, location=ETH_USDC)
    mirror.register_chain(ChainInfo(name="Ethereum", chain_type=ChainType.EVM, endpoint="x", stable=usdc))
    assert mirror.lookup_asset("Ethereum", ETH_USDC) == usdc
    assert mirror.to_graph().chains[0].stable == ETH_USDC


def test_from_graph_rebuilds_an_equal_graph(mirror: GraphMirror):
    mirror.register_asset("Khala", _pha(KHALA_PHA, 12))
    mirror.register_asset("Ethereum", _pha(ETH_PHA, 18))
    mirror.register_bridge("khala-ethereum", "Khala", "Ethereum")
    mirror.add_bridge_asset("khala-ethereum", AssetPair(asset0=KHALA_PHA, asset1=ETH_PHA))

    graph = mirror.to_graph()
    assert GraphMirror.from_graph(graph).to_graph() == graph
