# src/stakeledger/runtime/storage.py
from __future__ import annotations

"""Host key-value store interface.

The ledger core reads and writes through a `KVStore`: an ordered map from
string keys to JSON values, with prefix iteration in ascending key order.
Atomicity is provided by `transaction()`, which the executor wraps around each
instruction.

Two implementations ship:
  - MemoryStore (tests, ephemeral nodes)
  - SqliteKVStore (runtime.sqlite_db)
"""

import copy
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Protocol, Tuple


class KVStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    def range_prefix(self, prefix: str) -> Iterator[Tuple[str, Any]]: ...


class MemoryStore:
    """Dict-backed store.

    transaction() snapshots the whole map and restores it if the block raises,
    so every transaction costs time and memory proportional to the total
    number of stored entries. Fine for tests and small dev nodes; use the
    sqlite store for anything larger.

    Values are deep-copied on the way in and out so callers never alias
    stored state.
    """

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        v = self._data.get(key)
        return copy.deepcopy(v) if v is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def range_prefix(self, prefix: str) -> Iterator[Tuple[str, Any]]:
        keys = sorted(k for k in self._data if k.startswith(prefix))
        for k in keys:
            yield k, copy.deepcopy(self._data[k])

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        saved = copy.deepcopy(self._data)
        try:
            yield self
        except BaseException:
            self._data = saved
            raise
