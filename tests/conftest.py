"""Shared fixtures: a fake contract gateway served through httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount

from index_control.core.errors import GraphError
from index_control.core.graph.graph_mirror import GraphMirror
from index_control.core.structures.graph import AssetInfo, AssetPair, ChainInfo, DexPair
from index_control.core.utils.hex_utils import from_hex
from index_control.integrations.contract.contract_client import ContractClient

BASE_URL = "http://gateway.test"
SIGNER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

GAS_REQUIRED = 1_000
STORAGE_CHARGE = 10

Handler = Callable[[List[Any]], Any]


class FakeGateway:
    """
    In-memory contract gateway.

    `queries` and `estimates` answer dry runs, `submits` apply signed transactions. Each
    maps a message name to a callable receiving the call args. A GraphError raised by a
    handler is answered with the error code.
    """

    def __init__(self) -> None:
        self.requests: List[Tuple[str, Dict[str, Any]]] = []
        self.queries: Dict[str, Handler] = {}
        self.estimates: Dict[str, Handler] = {}
        self.submits: Dict[str, Handler] = {}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls(self, kind: str, method: str) -> List[Dict[str, Any]]:
        return [body for (k, body) in self.requests if k == kind and body["method"] == method]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        kind = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content)
        self.requests.append((kind, body))
        method = body["method"]
        args = body["args"]

        if kind == "query":
            handler = self.queries.get(method) or self.estimates.get(method)
            if handler is None:
                return _query_response({"Err": "Unimplemented"})
            try:
                value = handler(args)
            except GraphError as error:
                return _query_response({"Err": error.code})
            return _query_response({"Ok": value})

        submit = self.submits.get(method)
        if submit is None:
            return httpx.Response(200, json={"status": "InBlock", "dispatchError": "Unimplemented"})
        try:
            submit(args)
        except GraphError as error:
            return httpx.Response(200, json={"status": "InBlock", "dispatchError": error.code})
        return httpx.Response(200, json={"status": "InBlock", "blockHash": "0xb10c", "txHash": "0x7a"})


def _query_response(result: Dict[str, Any]) -> httpx.Response:
    return httpx.Response(
        200,
        json={"result": result, "gasRequired": GAS_REQUIRED, "storageDeposit": {"Charge": STORAGE_CHARGE}},
    )


class FakeRegistry:
    """Registry contract semantics on top of a GraphMirror."""

    def __init__(self, gateway: FakeGateway) -> None:
        self.mirror = GraphMirror()
        writes: Dict[str, Callable[[GraphMirror, List[Any]], None]] = {
            "registerChain": lambda m, a: m.register_chain(ChainInfo.from_json(a[0])),
            "registerAsset": lambda m, a: m.register_asset(a[0], AssetInfo.from_json(a[1])),
            "registerBridge": lambda m, a: m.register_bridge(a[0], a[1], a[2]),
            "addBridgeAsset": lambda m, a: m.add_bridge_asset(a[0], AssetPair.from_json(a[1])),
            "registerDex": lambda m, a: m.register_dex(a[0], from_hex(a[1]), a[2]),
            "addDexPair": lambda m, a: m.add_dex_pair(a[0], DexPair.from_json(a[1])),
        }
        for method, write in writes.items():
            gateway.estimates[method] = self._dry_run(write)
            gateway.submits[method] = self._apply(write)
        gateway.queries["getGraph"] = lambda _args: self.mirror.to_graph().to_json()

    def _dry_run(self, write: Callable[[GraphMirror, List[Any]], None]) -> Handler:
        def run(args: List[Any]) -> None:
            write(GraphMirror.from_graph(self.mirror.to_graph()), args)
            return None

        return run

    def _apply(self, write: Callable[[GraphMirror, List[Any]], None]) -> Handler:
        def run(args: List[Any]) -> None:
            write(self.mirror, args)

        return run


@pytest.fixture
def signer() -> LocalAccount:
    return Account.from_key(SIGNER_KEY)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fake_registry(gateway: FakeGateway) -> FakeRegistry:
    return FakeRegistry(gateway)


@pytest.fixture
def make_contract(signer: LocalAccount) -> Callable[..., ContractClient]:
    def _make(transport: httpx.BaseTransport, contract_id: str = "0xc0ffee") -> ContractClient:
        client = httpx.AsyncClient(transport=transport)
        return ContractClient(BASE_URL, contract_id, signer=signer, http_client=client)

    return _make
