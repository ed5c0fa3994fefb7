# src/stakeledger/runtime/executor_boot.py

from __future__ import annotations

from typing import Optional

from stakeledger.runtime.config import NodeConfig, load_node_config
from stakeledger.runtime.executor import LedgerExecutor
from stakeledger.runtime.sqlite_db import SqliteDB, SqliteKVStore
from stakeledger.runtime.storage import MemoryStore
from stakeledger.runtime.token_service import StoreTokenService, TokenService


def build_executor(cfg: Optional[NodeConfig] = None, *, tokens: Optional[TokenService] = None) -> LedgerExecutor:
    """
    Build a LedgerExecutor from an explicit node config or, if omitted,
    from STAKELEDGER_CONFIG_PATH / defaults.

    Token balances default to the same store as the ledger state, so
    custody survives a restart of a sqlite-backed node.
    """
    c = cfg or load_node_config()
    if c.store == "memory":
        store = MemoryStore()
    else:
        store = SqliteKVStore(db=SqliteDB(path=c.db_path))
    return LedgerExecutor(
        store=store,
        tokens=tokens if tokens is not None else StoreTokenService(store),
        contract_address=c.contract_address,
    )
