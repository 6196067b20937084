from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from index_control.core.errors import ConfigurationError
from index_control.core.structures.graph import ChainType


def _as_bool(value: str | None, default: bool = False) -> bool:
    """Parse a truthy/falsey string into a boolean."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


class Settings:
    # Deployment document and signing
    INDEX_CONFIG: str = os.getenv("INDEX_CONFIG", "config.json")
    INDEX_SIGNER_KEY: str = os.getenv("INDEX_SIGNER_KEY", "")

    # Remote storage used by the executor engine
    INDEX_STORAGE_URL: str = os.getenv("INDEX_STORAGE_URL", "")
    INDEX_STORAGE_KEY: str = os.getenv("INDEX_STORAGE_KEY", "")

    # Scheduler
    FETCH_INTERVAL_MS: int = int(os.getenv("FETCH_INTERVAL_MS", "30000"))
    EXECUTE_INTERVAL_MS: int = int(os.getenv("EXECUTE_INTERVAL_MS", "10000"))
    TOKEN_REFRESH_INTERVAL_MS: int = int(os.getenv("TOKEN_REFRESH_INTERVAL_MS", "60000"))
    FETCH_SOURCES_CONCURRENTLY: bool = _as_bool(os.getenv("FETCH_SOURCES_CONCURRENTLY"), True)
    ACCESS_TOKEN_COMMAND: str = os.getenv("ACCESS_TOKEN_COMMAND", "gcloud auth print-access-token")

    # Contract gateway
    CONTRACT_HTTP_TIMEOUT_SECONDS: float = float(os.getenv("CONTRACT_HTTP_TIMEOUT_SECONDS", "0"))

    # Debug / logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "WARNING").upper()
    LOG_LEVEL_INDEX: str = os.getenv("LOG_LEVEL_INDEX", "INFO").upper()
    LOG_LEVEL_LIB_HTTPX: str = os.getenv("LOG_LEVEL_LIB_HTTPX", "WARNING").upper()
    LOG_LEVEL_LIB_HTTPCORE: str = os.getenv("LOG_LEVEL_LIB_HTTPCORE", "WARNING").upper()
    LOG_LEVEL_LIB_WEB3: str = os.getenv("LOG_LEVEL_LIB_WEB3", "WARNING").upper()
    LOG_LEVEL_LIB_ASYNCIO: str = os.getenv("LOG_LEVEL_LIB_ASYNCIO", "WARNING").upper()
    NO_COLOR: bool = _as_bool(os.getenv("NO_COLOR"), False)


settings = Settings()

DEFAULT_SOURCE_CHAINS: List[str] = ["Moonbeam", "AstarEvm"]

_EVM_CHAINS = {"ethereum", "goerli", "moonbeam", "astarevm"}
_SUB_CHAINS = {"astar", "poc3", "poc5", "khala", "phala", "acala"}


def chain_type_of(chain_name: str) -> ChainType:
    """Classify a known chain name as EVM-style or Substrate-style."""
    key = chain_name.strip().lower()
    if key in _EVM_CHAINS:
        return ChainType.EVM
    if key in _SUB_CHAINS:
        return ChainType.SUB
    raise ConfigurationError(f"Unrecognized chain type: {chain_name}")


def _flatten_chain_map(raw: object) -> Dict[str, str]:
    """
    Accept both `{"Moonbeam": "..."}` and the legacy `[{"Moonbeam": "..."}, ...]`
    shapes and return a lowercase-keyed mapping.
    """
    flattened: Dict[str, str] = {}
    if raw is None:
        return flattened
    entries: List[Mapping[str, object]]
    if isinstance(raw, Mapping):
        entries = [raw]
    elif isinstance(raw, list):
        entries = [entry for entry in raw if isinstance(entry, Mapping)]
    else:
        raise ValueError("chain map must be an object or a list of objects")
    for entry in entries:
        for name, value in entry.items():
            flattened[str(name).strip().lower()] = str(value)
    return flattened


class TickIntervals(BaseModel):
    """Optional per-deployment overrides of the scheduler periods, in milliseconds."""
    fetch_ms: Optional[int] = Field(None, gt=0)
    execute_ms: Optional[int] = Field(None, gt=0)
    token_refresh_ms: Optional[int] = Field(None, gt=0)


class DeploymentConfig(BaseModel):
    """Structured deployment document: endpoints, contract ids, chains, handlers and workers."""
    node_wss_endpoint: str = ""
    pruntime_endpoint: str
    executor_contract_id: str
    registry_contract_id: str = ""
    key_store_contract_id: str = ""
    chains: Dict[str, str] = Field(default_factory=dict)
    handlers: Dict[str, str] = Field(default_factory=dict)
    source_chains: List[str] = Field(default_factory=lambda: list(DEFAULT_SOURCE_CHAINS))
    workers: List[str] = Field(default_factory=list)
    intervals: TickIntervals = Field(default_factory=TickIntervals)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: object) -> object:
        if isinstance(data, dict) and "pruntime_endpoint" not in data and "pruntine_endpoint" in data:
            data = dict(data)
            data["pruntime_endpoint"] = data.pop("pruntine_endpoint")
        return data

    @field_validator("chains", "handlers", mode="before")
    @classmethod
    def _normalize_chain_map(cls, value: object) -> Dict[str, str]:
        return _flatten_chain_map(value)

    def chain_endpoint(self, chain_name: str) -> Optional[str]:
        return self.chains.get(chain_name.strip().lower())

    def chain_handler(self, chain_name: str) -> Optional[str]:
        return self.handlers.get(chain_name.strip().lower())

    def fetch_interval_ms(self) -> int:
        return self.intervals.fetch_ms or settings.FETCH_INTERVAL_MS

    def execute_interval_ms(self) -> int:
        return self.intervals.execute_ms or settings.EXECUTE_INTERVAL_MS

    def token_refresh_interval_ms(self) -> int:
        return self.intervals.token_refresh_ms or settings.TOKEN_REFRESH_INTERVAL_MS


def load_deployment_config(path: Union[str, Path, None] = None) -> DeploymentConfig:
    """
    Load and validate the deployment document.

    Raises:
        ConfigurationError: the file is missing, is not JSON, or does not match the schema.
    """
    config_path = Path(path or settings.INDEX_CONFIG)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Config file {config_path} is not valid JSON: {exc}") from exc

    try:
        return DeploymentConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid config file {config_path}: {exc}") from exc
