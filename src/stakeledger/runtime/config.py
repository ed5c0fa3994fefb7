# src/stakeledger/runtime/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class NodeConfig:
    mode: str  # "dev" | "prod"

    # "sqlite" persists the ledger to db_path; "memory" keeps it in process
    store: str
    db_path: str

    # address the ledger holds balances under in the token service
    contract_address: str

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "prod"}
_ALLOWED_STORES = {"sqlite", "memory"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_node_config(cfg: NodeConfig) -> None:
    """Fail-fast validation for operator config."""

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {cfg.mode!r}")

    if cfg.store not in _ALLOWED_STORES:
        raise ValueError(f"store must be one of {sorted(_ALLOWED_STORES)}; got: {cfg.store!r}")

    if cfg.store == "sqlite" and (not isinstance(cfg.db_path, str) or not cfg.db_path.strip()):
        raise ValueError("db_path must be a non-empty string when store is 'sqlite'")

    if mode == "prod" and cfg.store == "memory":
        raise ValueError("store 'memory' is not allowed in prod mode")

    if not cfg.contract_address.strip() or "/" in cfg.contract_address:
        raise ValueError(f"contract_address must be a non-empty address; got: {cfg.contract_address!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if str(cfg.log_level).upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_ALLOWED_LOG_LEVELS)}; got: {cfg.log_level!r}")


def default_node_config() -> NodeConfig:
    return NodeConfig(
        # without an explicit config file the node runs with durable storage
        mode="prod",
        store="sqlite",
        db_path="./data/stakeledger.db",
        contract_address="stakeledger",
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def read_node_config_file(path: str) -> NodeConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("node config must be a JSON object")

    d = default_node_config()

    cfg = NodeConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        store=_as_str(raw.get("store"), d.store).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        contract_address=_as_str(raw.get("contract_address"), d.contract_address).strip(),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
    )

    validate_node_config(cfg)
    return cfg


def load_node_config(*, config_path: Optional[str] = None) -> NodeConfig:
    p = config_path or os.environ.get("STAKELEDGER_CONFIG_PATH")
    if p:
        return read_node_config_file(p)

    cfg = default_node_config()
    validate_node_config(cfg)
    return cfg


def apply_node_config_to_env(cfg: NodeConfig) -> None:
    validate_node_config(cfg)
    # sqlite pragmas and logging read these
    os.environ["STAKELEDGER_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["STAKELEDGER_LOG_LEVEL"] = cfg.log_level
