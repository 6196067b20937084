import pytest

from index_control.core.errors import (
    AssetAlreadyRegistered,
    ChainAlreadyRegistered,
    ChainNotFound,
    ContractCallError,
    UnknownAsset,
)
from index_control.core.structures.graph import AssetInfo, AssetPair, ChainInfo, ChainType, DexPair
from index_control.integrations.registry.registry_client import RegistryClient

ETH_PHA = bytes.fromhex("6c5ba91642f10282b576d91922ae6448c9d52f4e")
KHALA_PHA = bytes.fromhex("010100cd1f")
ETH_WETH = bytes.fromhex("c02aaa39b223fe8d0a0e5c4f27ead9083c756cc2")


@pytest.fixture
def registry(fake_registry, gateway, make_contract) -> RegistryClient:
    return RegistryClient(make_contract(gateway.transport(), contract_id="0xregistry"))


async def _register_chains(registry: RegistryClient) -> None:
    await registry.register_chain(ChainInfo(name="Ethereum", chain_type=ChainType.EVM, endpoint="https://eth.rpc"))
    await registry.register_chain(ChainInfo(name="Khala", chain_type=ChainType.SUB, endpoint="wss://khala.rpc"))


@pytest.mark.asyncio
async def test_khala_ethereum_pha_bridge_scenario(registry: RegistryClient):
    await _register_chains(registry)
    await registry.register_asset("Ethereum", AssetInfo(name="Phala Token", symbol="PHA", decimals=18,
                                                        location=ETH_PHA))
    await registry.register_asset("Khala", AssetInfo(name="Phala Token", symbol="PHA", decimals=12,
                                                     location=KHALA_PHA))
    await registry.register_bridge("Khala↔Ethereum", "Khala", "Ethereum")
    await registry.add_bridge_asset("Khala↔Ethereum", AssetPair(asset0=KHALA_PHA, asset1=ETH_PHA))

    graph = await registry.get_graph()

    pha = sorted((a.chain, a.decimals) for a in graph.assets if a.symbol == "PHA")
    assert pha == [("Ethereum", 18), ("Khala", 12)]
    assert len(graph.bridges) == 1
    assert {graph.bridges[0].chain0, graph.bridges[0].chain1} == {"Khala", "Ethereum"}
    assert graph.bridges[0].assets == (AssetPair(asset0=KHALA_PHA, asset1=ETH_PHA),)


@pytest.mark.asyncio
async def test_get_graph_is_idempotent(registry: RegistryClient, gateway):
    await _register_chains(registry)
    await registry.register_asset("Ethereum", AssetInfo(name="Phala Token", symbol="PHA", decimals=18,
                                                        location=ETH_PHA))
    submitted_before = len([r for r in gateway.requests if r[0] == "tx"])

    first = await registry.get_graph()
    second = await registry.get_graph()

    assert first == second
    assert len([r for r in gateway.requests if r[0] == "tx"]) == submitted_before


@pytest.mark.asyncio
async def test_remote_errors_map_onto_graph_errors(registry: RegistryClient, fake_registry):
    await _register_chains(registry)
    pha = AssetInfo(name="Phala Token", symbol="PHA", decimals=18, location=ETH_PHA)
    await registry.register_asset("Ethereum", pha)

    with pytest.raises(ChainAlreadyRegistered):
        await registry.register_chain(ChainInfo(name="Khala", chain_type=ChainType.SUB, endpoint="wss://x"))
    with pytest.raises(AssetAlreadyRegistered):
        await registry.register_asset("Ethereum", pha)
    with pytest.raises(ChainNotFound):
        await registry.register_asset("Polkadot", pha)

    graph = await registry.get_graph()
    assert len([a for a in graph.assets if a.location == ETH_PHA]) == 1


@pytest.mark.asyncio
async def test_bridge_asset_with_unregistered_side_fails(registry: RegistryClient):
    await _register_chains(registry)
    await registry.register_asset("Khala", AssetInfo(name="Phala Token", symbol="PHA", decimals=12,
                                                     location=KHALA_PHA))
    await registry.register_bridge("khala-ethereum", "Khala", "Ethereum")

    with pytest.raises(UnknownAsset):
        await registry.add_bridge_asset("khala-ethereum", AssetPair(asset0=KHALA_PHA, asset1=ETH_PHA))

    graph = await registry.get_graph()
    assert graph.bridges[0].assets == ()


@pytest.mark.asyncio
async def test_dex_and_pairs(registry: RegistryClient):
    await _register_chains(registry)
    await registry.register_asset("Ethereum", AssetInfo(name="Phala Token", symbol="PHA", decimals=18,
                                                        location=ETH_PHA))
    await registry.register_asset("Ethereum", AssetInfo(name="Wrapped Ether", symbol="WETH", decimals=18,
                                                        location=ETH_WETH))
    await registry.register_dex("UniswapV2", bytes.fromhex("7a250d56"), "Ethereum")
    await registry.add_dex_pair("UniswapV2", DexPair(id=b"\x0b", asset0=ETH_PHA, asset1=ETH_WETH, swap_fee=30))

    graph = await registry.get_graph()

    assert [(p.dex, p.chain, p.swap_fee) for p in graph.pairs] == [("UniswapV2", "Ethereum", 30)]
    assert graph.dexes[0].id == bytes.fromhex("7a250d56")


@pytest.mark.asyncio
async def test_non_graph_errors_stay_contract_errors(registry: RegistryClient):
    with pytest.raises(ContractCallError) as info:
        await registry.unregister_chain("Ethereum")
    assert info.value.code == "Unimplemented"


@pytest.mark.asyncio
async def test_maintenance_calls_submit_their_messages(gateway, make_contract):
    for method in ("setChainEndpoint", "setChainNative", "removeDexPair", "unregisterBridge"):
        gateway.estimates[method] = lambda args: None
        gateway.submits[method] = lambda args: None
    registry = RegistryClient(make_contract(gateway.transport(), contract_id="0xregistry"))
    native = AssetInfo(name="Ether", symbol="ETH", decimals=18, location=ETH_WETH)

    await registry.set_chain_endpoint("Ethereum", "https://eth2.rpc")
    await registry.set_chain_native("Ethereum", native)
    await registry.remove_dex_pair("UniswapV2", DexPair(id=b"\x0b", asset0=ETH_PHA, asset1=ETH_WETH))
    await registry.unregister_bridge("Khala↔Ethereum")

    assert gateway.calls("tx", "setChainEndpoint")[0]["args"] == ["Ethereum", "https://eth2.rpc"]
    assert gateway.calls("tx", "setChainNative")[0]["args"] == ["Ethereum", native.to_json()]
    assert gateway.calls("tx", "removeDexPair")[0]["args"][1]["id"] == "0x0b"
    assert gateway.calls("tx", "unregisterBridge")[0]["args"] == ["Khala↔Ethereum"]


@pytest.mark.asyncio
@pytest.mark.parametrize("asset", [
    {"chain": "Ethereum", "location": "0xzz", "name": "Phala Token", "symbol": "PHA", "decimals": 18},
    {"chain": "Ethereum", "name": "Phala Token", "symbol": "PHA", "decimals": 18},
])
async def test_undecodable_graph_is_a_contract_error(gateway, make_contract, asset):
    gateway.queries["getGraph"] = lambda args: {"assets": [asset]}
    registry = RegistryClient(make_contract(gateway.transport(), contract_id="0xregistry"))

    with pytest.raises(ContractCallError) as info:
        await registry.get_graph()
    assert info.value.code == "MalformedGraph"
