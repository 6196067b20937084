from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from index_control.configuration.config import DeploymentConfig, settings
from index_control.core.errors import ConfigurationError, ExecutorNotRunning, is_transient
from index_control.core.jobs.periodic_tick import PeriodicTick
from index_control.core.structures.executor import ExecuteMode, FetchMode, QueryOutcome
from index_control.core.utils.hex_utils import from_hex
from index_control.integrations.executor.executor_client import ExecutorClient
from index_control.logging.logger import get_logger

log = get_logger(__name__)

TokenProvider = Callable[[], Awaitable[str]]


class SchedulerState(Enum):
    INITIALIZING = "INITIALIZING"
    AWAITING_EXECUTOR_READY = "AWAITING_EXECUTOR_READY"
    RUNNING = "RUNNING"
    RECOVERING = "RECOVERING"
    TERMINATED = "TERMINATED"


class TickKind(Enum):
    FETCH = "fetch"
    EXECUTE = "execute"
    CREDENTIAL_REFRESH = "credential_refresh"


def _pick(explicit: Optional[int], fallback: int) -> int:
    return explicit if explicit is not None else fallback


@dataclass(frozen=True)
class SchedulerConfig:
    """Static scheduler inputs. Intervals are in seconds."""
    source_chains: Tuple[str, ...]
    workers: Tuple[bytes, ...]
    fetch_interval: float = 30.0
    execute_interval: float = 10.0
    token_refresh_interval: float = 60.0
    storage_url: str = ""
    keystore_contract_id: str = ""
    fetch_sources_concurrently: bool = True

    def __post_init__(self) -> None:
        if not self.source_chains:
            raise ConfigurationError("At least one source chain must be configured.")
        if not self.workers:
            raise ConfigurationError("At least one worker must be configured.")
        for name, value in (
                ("fetch_interval", self.fetch_interval),
                ("execute_interval", self.execute_interval),
                ("token_refresh_interval", self.token_refresh_interval),
        ):
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

    @staticmethod
    def from_deployment(
            deployment: DeploymentConfig,
            storage_url: str,
            workers: Optional[Sequence[bytes]] = None,
            fetch_interval_ms: Optional[int] = None,
            execute_interval_ms: Optional[int] = None,
            token_refresh_interval_ms: Optional[int] = None,
    ) -> "SchedulerConfig":
        """Explicit (CLI) intervals win over the deployment document, which wins over Settings."""
        worker_ids = tuple(workers) if workers else tuple(from_hex(worker) for worker in deployment.workers)
        return SchedulerConfig(
            source_chains=tuple(deployment.source_chains),
            workers=worker_ids,
            fetch_interval=_pick(fetch_interval_ms, deployment.fetch_interval_ms()) / 1000.0,
            execute_interval=_pick(execute_interval_ms, deployment.execute_interval_ms()) / 1000.0,
            token_refresh_interval=_pick(token_refresh_interval_ms, deployment.token_refresh_interval_ms()) / 1000.0,
            storage_url=storage_url,
            keystore_contract_id=deployment.key_store_contract_id,
            fetch_sources_concurrently=settings.FETCH_SOURCES_CONCURRENTLY,
        )


@dataclass
class _Run:
    """Ticks and fault channel of one RUNNING period."""
    ticks: List[PeriodicTick] = field(default_factory=list)
    fault: "asyncio.Future[Exception]" = field(default_factory=lambda: asyncio.get_running_loop().create_future())

    def escalate(self, error: Exception) -> None:
        if not self.fault.done():
            self.fault.set_result(error)


class Scheduler:
    """
    Long-lived driver of the remote executor.

    Three independent ticks run against the executor: Fetch (task discovery on every
    source chain), Execute (drive known tasks) and CredentialRefresh (push a fresh storage
    access token). Ticks neither block nor exclude each other; the remote executor is the
    serialization point for task state.

    Fault policy:
    - Fetch/Execute transient transport faults are logged and swallowed.
    - Any other fault, and every CredentialRefresh fault, is escalated to the supervisor.
    - The supervisor stops all ticks; a transient fault restarts them (RECOVERING ->
      RUNNING), anything else terminates the scheduler and is re-raised to the caller.
    """

    def __init__(
            self,
            executor: ExecutorClient,
            config: SchedulerConfig,
            token_provider: Optional[TokenProvider] = None,
    ) -> None:
        if token_provider is not None and not (config.storage_url and config.keystore_contract_id):
            raise ConfigurationError(
                "Credential refresh requires a storage URL and a key store contract id."
            )
        self._executor = executor
        self._config = config
        self._token_provider = token_provider
        self._state = SchedulerState.INITIALIZING
        self._shutdown = asyncio.Event()
        self._invocations: Dict[TickKind, int] = {kind: 0 for kind in TickKind}
        self.recoveries: int = 0
        self._current: Optional[_Run] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    def invocations(self, kind: TickKind) -> int:
        """Number of invocations of a tick kind issued since the scheduler was created."""
        return self._invocations[kind]

    def request_shutdown(self) -> None:
        log.info("[SCHEDULER] Shutdown requested")
        self._shutdown.set()

    # -------- Supervisor -------- #

    async def run(self) -> None:
        """
        Check the executor is running, then tick until shutdown or a fatal fault.

        Raises:
            ExecutorNotRunning: the executor is paused or not configured; no tick is issued.
            Exception: the first non-transient fault escalated by a tick.
        """
        self._state = SchedulerState.AWAITING_EXECUTOR_READY
        try:
            running = await self._executor.is_running()
        except BaseException:
            self._state = SchedulerState.TERMINATED
            raise
        if not running:
            self._state = SchedulerState.TERMINATED
            log.error("[SCHEDULER] Executor is not running; refusing to start ticks")
            raise ExecutorNotRunning()

        log.info(
            "[SCHEDULER] Start run interval tasks (fetch=%.3fs execute=%.3fs token=%.3fs sources=%s)",
            self._config.fetch_interval,
            self._config.execute_interval,
            self._config.token_refresh_interval,
            ",".join(self._config.source_chains),
        )

        while True:
            self._state = SchedulerState.RUNNING
            current = self._start_run()
            shutdown_waiter = asyncio.ensure_future(self._shutdown.wait())
            try:
                await asyncio.wait({current.fault, shutdown_waiter}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                self._state = SchedulerState.TERMINATED
                raise
            finally:
                shutdown_waiter.cancel()
                await self._stop_run(current)

            if self._shutdown.is_set():
                self._state = SchedulerState.TERMINATED
                log.info("[SCHEDULER] Stopped cleanly")
                return

            error = current.fault.result()
            if is_transient(error):
                self._state = SchedulerState.RECOVERING
                self.recoveries += 1
                log.warning("[SCHEDULER][RECOVER] Known transient fault, restarting ticks: %s", error)
                continue

            self._state = SchedulerState.TERMINATED
            log.error("[SCHEDULER] Fatal fault, terminating: %s", error)
            raise error

    def _start_run(self) -> _Run:
        current = _Run()

        def on_fault(name: str, error: Exception) -> None:
            self._route_fault(TickKind(name), error)

        current.ticks.append(PeriodicTick(TickKind.FETCH.value, self._config.fetch_interval, self._fetch_tick, on_fault))
        current.ticks.append(
            PeriodicTick(TickKind.EXECUTE.value, self._config.execute_interval, self._execute_tick, on_fault)
        )
        if self._token_provider is not None:
            current.ticks.append(PeriodicTick(
                TickKind.CREDENTIAL_REFRESH.value,
                self._config.token_refresh_interval,
                self._refresh_tick,
                on_fault,
            ))
        self._current = current
        for tick in current.ticks:
            tick.start()
        return current

    async def _stop_run(self, current: _Run) -> None:
        for tick in current.ticks:
            await tick.stop()
        self._current = None

    def _route_fault(self, kind: TickKind, error: Exception) -> None:
        if kind is not TickKind.CREDENTIAL_REFRESH and is_transient(error):
            log.warning("[SCHEDULER][%s] Transient fault ignored: %s", kind.name, error)
            return
        log.error("[SCHEDULER][%s] Escalating fault: %s: %s", kind.name, type(error).__name__, error)
        if self._current is not None:
            self._current.escalate(error)

    # -------- Ticks -------- #

    async def _fetch_tick(self) -> None:
        self._invocations[TickKind.FETCH] += 1
        modes = [FetchMode(chain, worker) for chain in self._config.source_chains for worker in self._config.workers]

        outcomes: List[object]
        if self._config.fetch_sources_concurrently:
            outcomes = list(await asyncio.gather(*(self._fetch_one(mode) for mode in modes), return_exceptions=True))
        else:
            outcomes = []
            for mode in modes:
                try:
                    outcomes.append(await self._fetch_one(mode))
                except Exception as error:
                    outcomes.append(error)

        for outcome in outcomes:
            if isinstance(outcome, Exception):
                self._route_fault(TickKind.FETCH, outcome)

    async def _fetch_one(self, mode: FetchMode) -> QueryOutcome:
        log.info("[SCHEDULER][FETCH] Trigger active task search from %s", mode.label())
        outcome = await self._executor.run(mode)
        _log_run_outcome("FETCH", outcome)
        return outcome

    async def _execute_tick(self) -> None:
        self._invocations[TickKind.EXECUTE] += 1
        log.info("[SCHEDULER][EXECUTE] Trigger task executing")
        outcome = await self._executor.run(ExecuteMode())
        _log_run_outcome("EXECUTE", outcome)

    async def _refresh_tick(self) -> None:
        if self._token_provider is None:
            return
        self._invocations[TickKind.CREDENTIAL_REFRESH] += 1
        token = await self._token_provider()
        await self._executor.configure(self._config.storage_url, token, self._config.keystore_contract_id, False)
        log.info("[SCHEDULER][TOKEN] Access token updated")


def _log_run_outcome(tag: str, outcome: QueryOutcome) -> None:
    if outcome.ok:
        log.info("[SCHEDULER][%s] Result: Ok %s", tag, outcome.value)
    else:
        log.warning("[SCHEDULER][%s] Result: Err %s", tag, outcome.error_code)
