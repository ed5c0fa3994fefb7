from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, List, Optional

from stakeledger.ledger.assets import Coin
from stakeledger.ledger.state import LedgerState
from stakeledger.runtime.dispatch import apply_instruction
from stakeledger.runtime.errors import ApplyError
from stakeledger.runtime.instructions import InstructionEnvelope, _as_addr
from stakeledger.runtime.ledger_logging import log_event
from stakeledger.runtime.queries import run_query
from stakeledger.runtime.token_service import HostContext, TokenService

Json = Dict[str, Any]

_log = logging.getLogger("stakeledger.executor")


def _env_type(env: Any) -> Any:
    return env.get("type") if isinstance(env, dict) else getattr(env, "type", None)


class LedgerExecutor:
    """Runs instructions against a store, one at a time.

    Each instruction applies inside a single store transaction, and the funds
    attached to it plus the transfer effects in its receipt are settled with
    the token service before that transaction commits. A rejection (any
    exception, settlement included) rolls the whole instruction back.
    """

    def __init__(self, *, store: Any, tokens: TokenService, contract_address: str) -> None:
        self.store = store
        self.tokens = tokens
        self._contract_address = contract_address
        self._lock = threading.Lock()

    @property
    def contract_address(self) -> str:
        return self._contract_address

    @property
    def host(self) -> HostContext:
        return HostContext(contract_address=self._contract_address, tokens=self.tokens)

    def execute(self, env: Any) -> Json:
        """Apply one instruction envelope and return its receipt.

        Raises ApplyError on rejection; the store is left untouched.
        """
        with self._lock:
            started = time.monotonic()
            try:
                env_norm = InstructionEnvelope.from_json(env)
                with self.store.transaction() as tx:
                    tokens = self.tokens.within(tx)
                    host = HostContext(contract_address=self._contract_address, tokens=tokens)
                    host.require_funds(env_norm.sender, env_norm.funds)
                    receipt = apply_instruction(LedgerState(tx), env_norm, host)
                    effects: List[Json] = list(receipt.get("effects") or [])
                    tokens.settle(self._contract_address, env_norm.sender, env_norm.funds, effects)
            except ApplyError as e:
                log_event(_log, "instruction_rejected", type=_env_type(env), code=e.code, reason=e.reason)
                raise
            except Exception as e:
                log_event(_log, "instruction_rejected", type=_env_type(env), code="internal", reason=type(e).__name__)
                raise

            receipt.setdefault("effects", effects)
            log_event(
                _log,
                "instruction_applied",
                type=env_norm.type,
                sender=env_norm.sender,
                now=env_norm.now,
                applied=receipt.get("applied"),
                effects=len(effects),
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            return receipt

    def mint(self, holder: Any, coin: Any) -> Json:
        """Credit `holder` with a coin on the token service. Dev nodes only."""
        with self._lock:
            addr = _as_addr(holder, field="holder")
            c = Coin.from_json(coin)
            with self.store.transaction() as tx:
                tokens = self.tokens.within(tx)
                tokens.mint(c.asset, addr, c.amount)
                balance = tokens.balance_of(c.asset, addr)
            log_event(_log, "tokens_minted", holder=addr, asset=c.asset.key, amount=str(c.amount))
            return {"holder": addr, "asset": c.asset.to_json(), "balance": str(balance)}

    def query(self, q: Any, *, now: Optional[int] = None) -> Json:
        """Run a read-only query. `now` falls back to the query's own field, then the clock."""
        if now is None and isinstance(q, dict) and isinstance(q.get("now"), int):
            now = q["now"]
        ts = int(time.time()) if now is None else int(now)
        return run_query(LedgerState(self.store), q, self.host, ts)

    def state(self) -> LedgerState:
        return LedgerState(self.store)
