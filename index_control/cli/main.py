from __future__ import annotations

import asyncio
import json
import signal
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import click

from index_control.configuration.config import (
    DeploymentConfig,
    chain_type_of,
    load_deployment_config,
    settings,
)
from index_control.core.errors import ConfigurationError
from index_control.core.graph.graph_mirror import GraphMirror
from index_control.core.jobs.scheduler import Scheduler, SchedulerConfig
from index_control.core.structures.executor import QueryOutcome
from index_control.core.structures.graph import AssetInfo, AssetPair, ChainInfo, ChainType, DexPair
from index_control.core.utils.hex_utils import from_hex, to_hex
from index_control.integrations.contract.contract_client import ContractClient
from index_control.integrations.contract.contract_helpers import load_signer
from index_control.integrations.credentials.token_provider import CommandAccessTokenProvider
from index_control.integrations.executor.executor_client import ExecutorClient, KeystoreClient
from index_control.integrations.handler.evm_handler import EvmHandlerClient, read_balance
from index_control.integrations.registry.registry_client import RegistryClient
from index_control.logging.logger import get_logger, init_logging

log = get_logger(__name__)


class HexBytesParam(click.ParamType):
    name = "hex"

    def convert(self, value: Any, param: Optional[click.Parameter], ctx: Optional[click.Context]) -> bytes:
        if isinstance(value, bytes):
            return value
        try:
            return from_hex(str(value))
        except ValueError:
            self.fail(f"{value!r} is not a valid hex string", param, ctx)


HEX = HexBytesParam()


@dataclass
class CliContext:
    config_path: str
    key: str
    storage_url: str
    storage_key: str
    _config: Optional[DeploymentConfig] = None

    @property
    def config(self) -> DeploymentConfig:
        if self._config is None:
            self._config = load_deployment_config(self.config_path)
        return self._config

    def contract(self, contract_id: str, signed: bool = True) -> ContractClient:
        if not contract_id:
            raise ConfigurationError("Contract id is missing from the deployment config.")
        signer = load_signer(self.key) if signed else None
        timeout = settings.CONTRACT_HTTP_TIMEOUT_SECONDS or None
        return ContractClient(self.config.pruntime_endpoint, contract_id, signer=signer, timeout=timeout)


def _run(coroutine_factory: Callable[[], Awaitable[Any]]) -> Any:
    """Run one command's coroutine; any failure is logged and turned into exit status 1."""
    try:
        return asyncio.run(coroutine_factory())
    except click.ClickException:
        raise
    except Exception as error:
        log.error("%s: %s", type(error).__name__, error)
        raise SystemExit(1) from error


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _outcome_json(outcome: QueryOutcome) -> Any:
    if outcome.ok:
        return {"Ok": outcome.value}
    return {"Err": outcome.error_code}


@click.group()
@click.option("--config", "config_path", default=settings.INDEX_CONFIG, show_default=True,
              help="Deployment document with contract ids, chains and handlers.")
@click.option("--key", default=settings.INDEX_SIGNER_KEY, help="Signer private key or mnemonic.")
@click.option("--storage-url", default=settings.INDEX_STORAGE_URL, help="Base URL of the executor storage.")
@click.option("--storage-key", default=settings.INDEX_STORAGE_KEY, help="Access key of the executor storage.")
@click.pass_context
def cli(ctx: click.Context, config_path: str, key: str, storage_url: str, storage_key: str) -> None:
    """Control plane of the cross-chain index executor."""
    init_logging()
    ctx.obj = CliContext(config_path=config_path, key=key, storage_url=storage_url, storage_key=storage_key)


# -------- keystore -------- #

@cli.group()
def keystore() -> None:
    """Key-store contract."""


@keystore.command("set-executor")
@click.pass_obj
def keystore_set_executor(obj: CliContext) -> None:
    """Authorize the configured executor to read worker keys."""

    async def _go() -> None:
        async with obj.contract(obj.config.key_store_contract_id) as contract:
            outcome = await KeystoreClient(contract).set_executor(obj.config.executor_contract_id)
        click.echo(f"Executor authorized on key store (block {outcome.block_hash})")

    _run(_go)


# -------- executor -------- #

@cli.group()
def executor() -> None:
    """Remote executor lifecycle and introspection."""


@executor.command("setup")
@click.option("--resume/--no-resume", default=True, show_default=True, help="Resume the executor after configuring it.")
@click.pass_obj
def executor_setup(obj: CliContext, resume: bool) -> None:
    """Configure the executor engine with the storage and key store."""

    async def _go() -> None:
        if not obj.storage_url or not obj.storage_key:
            raise ConfigurationError("--storage-url and --storage-key are required to configure the executor.")
        async with obj.contract(obj.config.executor_contract_id) as contract:
            client = ExecutorClient(contract)
            await client.configure(obj.storage_url, obj.storage_key, obj.config.key_store_contract_id, False)
            click.echo("Engine configured")
            if resume:
                await client.resume()
                click.echo("Executor resumed")

    _run(_go)


@executor.command("status")
@click.pass_obj
def executor_status(obj: CliContext) -> None:
    """Show whether the executor is running and its account."""

    async def _go() -> None:
        async with obj.contract(obj.config.executor_contract_id, signed=bool(obj.key)) as contract:
            client = ExecutorClient(contract)
            running = await client.is_running()
            account = await client.get_executor_account()
            configured = await client.get_config() is not None
        _echo_json({"running": running, "configured": configured, "account": account.to_json()})

    _run(_go)


@executor.command("tasks")
@click.option("--id", "task_id", type=HEX, default=None, help="Only show this task.")
@click.pass_obj
def executor_tasks(obj: CliContext, task_id: Optional[bytes]) -> None:
    """List tasks the executor is currently running."""

    async def _go() -> None:
        async with obj.contract(obj.config.executor_contract_id, signed=bool(obj.key)) as contract:
            client = ExecutorClient(contract)
            if task_id is not None:
                _echo_json(await client.get_running_task(task_id))
            else:
                _echo_json(await client.get_running_tasks())

    _run(_go)


@executor.command("pause")
@click.pass_obj
def executor_pause(obj: CliContext) -> None:
    """Pause the executor."""

    async def _go() -> None:
        async with obj.contract(obj.config.executor_contract_id) as contract:
            await ExecutorClient(contract).pause()
        click.echo("Executor paused")

    _run(_go)


@executor.command("resume")
@click.pass_obj
def executor_resume(obj: CliContext) -> None:
    """Resume the executor."""

    async def _go() -> None:
        async with obj.contract(obj.config.executor_contract_id) as contract:
            await ExecutorClient(contract).resume()
        click.echo("Executor resumed")

    _run(_go)


# -------- registry -------- #

@cli.group()
def registry() -> None:
    """Registry of chains, assets, bridges and dexes."""


async def _mirror(client: RegistryClient) -> GraphMirror:
    return GraphMirror.from_graph(await client.get_graph())


@registry.command("graph")
@click.pass_obj
def registry_graph(obj: CliContext) -> None:
    """Print the registry graph."""

    async def _go() -> None:
        async with obj.contract(obj.config.registry_contract_id, signed=bool(obj.key)) as contract:
            graph = await RegistryClient(contract).get_graph()
        _echo_json(graph.to_json())

    _run(_go)


@registry.command("register-chain")
@click.option("--name", required=True)
@click.option("--type", "chain_type", type=click.Choice([t.value for t in ChainType]), default=None,
              help="Chain type; inferred from the chain name when omitted.")
@click.option("--endpoint", required=True)
@click.option("--network", type=int, default=None)
@click.pass_obj
def registry_register_chain(obj: CliContext, name: str, chain_type: Optional[str], endpoint: str,
                            network: Optional[int]) -> None:
    """Register a chain."""

    async def _go() -> None:
        resolved_type = ChainType(chain_type) if chain_type else chain_type_of(name)
        info = ChainInfo(name=name, chain_type=resolved_type, endpoint=endpoint, network=network)
        async with obj.contract(obj.config.registry_contract_id) as contract:
            await RegistryClient(contract).register_chain(info)
        click.echo(f"Chain {name} registered")

    _run(_go)


@registry.command("register-asset")
@click.option("--chain", required=True)
@click.option("--location", type=HEX, required=True, help="Contract address or encoded location.")
@click.option("--name", required=True)
@click.option("--symbol", required=True)
@click.option("--decimals", type=int, required=True)
@click.pass_obj
def registry_register_asset(obj: CliContext, chain: str, location: bytes, name: str, symbol: str,
                            decimals: int) -> None:
    """Register an asset on a chain."""

    async def _go() -> None:
        asset = AssetInfo(name=name, symbol=symbol, decimals=decimals, location=location)
        async with obj.contract(obj.config.registry_contract_id) as contract:
            client = RegistryClient(contract)
            (await _mirror(client)).validate_asset(chain, asset)
            await client.register_asset(chain, asset)
        click.echo(f"Asset {symbol} registered on {chain}")

    _run(_go)


@registry.command("register-bridge")
@click.option("--name", required=True)
@click.option("--chain0", required=True)
@click.option("--chain1", required=True)
@click.pass_obj
def registry_register_bridge(obj: CliContext, name: str, chain0: str, chain1: str) -> None:
    """Register a bridge between two chains."""

    async def _go() -> None:
        async with obj.contract(obj.config.registry_contract_id) as contract:
            await RegistryClient(contract).register_bridge(name, chain0, chain1)
        click.echo(f"Bridge {name} registered")

    _run(_go)


@registry.command("add-bridge-asset")
@click.option("--bridge", "bridge_name", required=True)
@click.option("--asset0", type=HEX, required=True, help="Asset location on the bridge's first chain.")
@click.option("--asset1", type=HEX, required=True, help="Asset location on the bridge's second chain.")
@click.pass_obj
def registry_add_bridge_asset(obj: CliContext, bridge_name: str, asset0: bytes, asset1: bytes) -> None:
    """Declare an asset pair the bridge can move."""

    async def _go() -> None:
        pair = AssetPair(asset0=asset0, asset1=asset1)
        async with obj.contract(obj.config.registry_contract_id) as contract:
            client = RegistryClient(contract)
            mirror = await _mirror(client)
            mirror.validate_bridge(mirror.bridge(bridge_name), pair)
            await client.add_bridge_asset(bridge_name, pair)
        click.echo(f"Pair added to bridge {bridge_name}")

    _run(_go)


@registry.command("register-dex")
@click.option("--name", required=True)
@click.option("--id", "dex_id", type=HEX, required=True)
@click.option("--chain", required=True)
@click.pass_obj
def registry_register_dex(obj: CliContext, name: str, dex_id: bytes, chain: str) -> None:
    """Register a dex on a chain."""

    async def _go() -> None:
        async with obj.contract(obj.config.registry_contract_id) as contract:
            await RegistryClient(contract).register_dex(name, dex_id, chain)
        click.echo(f"Dex {name} registered on {chain}")

    _run(_go)


@registry.command("add-dex-pair")
@click.option("--dex", "dex_name", required=True)
@click.option("--id", "pair_id", type=HEX, required=True)
@click.option("--asset0", type=HEX, required=True)
@click.option("--asset1", type=HEX, required=True)
@click.option("--swap-fee", type=int, default=0, show_default=True)
@click.option("--dev-fee", type=int, default=0, show_default=True)
@click.pass_obj
def registry_add_dex_pair(obj: CliContext, dex_name: str, pair_id: bytes, asset0: bytes, asset1: bytes,
                          swap_fee: int, dev_fee: int) -> None:
    """List a trading pair on a dex."""

    async def _go() -> None:
        pair = DexPair(id=pair_id, asset0=asset0, asset1=asset1, swap_fee=swap_fee, dev_fee=dev_fee)
        async with obj.contract(obj.config.registry_contract_id) as contract:
            client = RegistryClient(contract)
            mirror = await _mirror(client)
            mirror.validate_dex_pair(mirror.dex(dex_name), pair)
            await client.add_dex_pair(dex_name, pair)
        click.echo(f"Pair {to_hex(pair_id)} added to dex {dex_name}")

    _run(_go)


# -------- worker -------- #

@cli.group()
def worker() -> None:
    """Worker accounts of the executor."""


@worker.command("list")
@click.option("--worker", "worker_id", type=HEX, default=None, help="Only show this worker (32-byte account).")
@click.option("--free", is_flag=True, default=False, help="Only list workers not allocated to a task.")
@click.pass_obj
def worker_list(obj: CliContext, worker_id: Optional[bytes], free: bool) -> None:
    """List worker accounts."""

    async def _go() -> None:
        async with obj.contract(obj.config.executor_contract_id, signed=bool(obj.key)) as contract:
            client = ExecutorClient(contract)
            if free:
                _echo_json([to_hex(account) for account in await client.get_free_worker_accounts()])
                return
            accounts = await client.get_worker_accounts()
        if worker_id is not None:
            match = next((account for account in accounts if account.account32 == worker_id), None)
            _echo_json(match.to_json() if match else None)
        else:
            _echo_json([account.to_json() for account in accounts])

    _run(_go)


@worker.command("approve")
@click.option("--worker", "worker_id", type=HEX, required=True)
@click.option("--chain", required=True)
@click.option("--token", required=True, help="ERC-20 token contract address.")
@click.option("--spender", required=True)
@click.option("--amount", type=int, required=True)
@click.pass_obj
def worker_approve(obj: CliContext, worker_id: bytes, chain: str, token: str, spender: str, amount: int) -> None:
    """Have a worker approve an ERC-20 allowance."""

    async def _go() -> None:
        async with obj.contract(obj.config.executor_contract_id, signed=bool(obj.key)) as contract:
            outcome = await ExecutorClient(contract).worker_approve(worker_id, chain, token, spender, amount)
        _echo_json(_outcome_json(outcome))

    _run(_go)


@worker.command("balance")
@click.option("--chain", required=True)
@click.option("--worker", "account", required=True, help="Worker address on the chain.")
@click.option("--asset", default=None, help="ERC-20 token address; native balance when omitted.")
@click.pass_obj
def worker_balance(obj: CliContext, chain: str, account: str, asset: Optional[str]) -> None:
    """Free balance of a worker account on a chain."""

    async def _go() -> None:
        if chain_type_of(chain) is not ChainType.EVM:
            raise ConfigurationError(f"{chain}: not implemented for Substrate chains")
        endpoint = obj.config.chain_endpoint(chain)
        if endpoint is None:
            raise ConfigurationError(f"No endpoint configured for chain '{chain}'")
        click.echo(str(await read_balance(endpoint, account, asset)))

    _run(_go)


@worker.command("drop-task")
@click.option("--worker", "worker_id", type=HEX, required=True)
@click.option("--chain", required=True)
@click.option("--id", "task_id", type=HEX, required=True)
@click.pass_obj
def worker_drop_task(obj: CliContext, worker_id: bytes, chain: str, task_id: bytes) -> None:
    """Drop a task that has not been claimed from the handler."""

    async def _go() -> None:
        async with obj.contract(obj.config.executor_contract_id, signed=bool(obj.key)) as contract:
            outcome = await ExecutorClient(contract).worker_drop_task(worker_id, chain, task_id)
        _echo_json(_outcome_json(outcome))

    _run(_go)


# -------- handler -------- #

@cli.group()
def handler() -> None:
    """Handler contracts on EVM chains."""


@handler.command("set-worker")
@click.option("--chain", required=True)
@click.option("--worker", "worker_address", required=True)
@click.option("--key", "admin_key", default=None, help="Handler admin key; defaults to the global --key.")
@click.pass_obj
def handler_set_worker(obj: CliContext, chain: str, worker_address: str, admin_key: Optional[str]) -> None:
    """Whitelist a worker on a chain's handler."""

    async def _go() -> None:
        client = EvmHandlerClient.for_chain(obj.config, chain, admin_key or obj.key)
        tx_hash = await client.set_worker(worker_address)
        click.echo(f"Whitelist worker on {chain}: {tx_hash}")

    _run(_go)


@handler.command("deposit")
@click.option("--chain", required=True)
@click.option("--asset", required=True)
@click.option("--amount", type=int, required=True)
@click.option("--recipient", required=True)
@click.option("--worker", "worker_address", required=True)
@click.option("--id", "task_id", required=True)
@click.option("--data", required=True)
@click.option("--key", "depositor_key", default=None, help="Depositor key; defaults to the global --key.")
@click.pass_obj
def handler_deposit(obj: CliContext, chain: str, asset: str, amount: int, recipient: str, worker_address: str,
                    task_id: str, data: str, depositor_key: Optional[str]) -> None:
    """Deposit a task on a chain's handler."""

    async def _go() -> None:
        client = EvmHandlerClient.for_chain(obj.config, chain, depositor_key or obj.key)
        tx_hash = await client.deposit(asset, amount, recipient, worker_address, task_id, data)
        click.echo(f"Deposited task on {chain}: {tx_hash}")

    _run(_go)


# -------- scheduler -------- #

@cli.group()
def scheduler() -> None:
    """Long-running task scheduler."""


@scheduler.command("run")
@click.option("--fetch-interval", type=int, default=None, help="Fetch period in milliseconds.")
@click.option("--execute-interval", type=int, default=None, help="Execute period in milliseconds.")
@click.option("--token-update-interval", type=int, default=None, help="Access token refresh period in milliseconds.")
@click.pass_obj
def scheduler_run(obj: CliContext, fetch_interval: Optional[int], execute_interval: Optional[int],
                  token_update_interval: Optional[int]) -> None:
    """Run the scheduled ticks until interrupted or a fatal fault."""

    async def _go() -> None:
        deployment = obj.config
        async with obj.contract(deployment.executor_contract_id) as contract:
            client = ExecutorClient(contract)
            workers = None
            if not deployment.workers:
                accounts = await client.get_worker_accounts()
                workers = [accounts[0].account32] if accounts else None
            config = SchedulerConfig.from_deployment(
                deployment,
                storage_url=obj.storage_url,
                workers=workers,
                fetch_interval_ms=fetch_interval,
                execute_interval_ms=execute_interval,
                token_refresh_interval_ms=token_update_interval,
            )
            runner = Scheduler(client, config, CommandAccessTokenProvider(settings.ACCESS_TOKEN_COMMAND))

            loop = asyncio.get_running_loop()
            for signum in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(signum, runner.request_shutdown)
            await runner.run()

    _run(_go)
