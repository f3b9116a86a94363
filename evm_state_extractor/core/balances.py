# core/balances.py
"""
Balance bookkeeping for trace replay.

Nodes only expose balances at block boundaries, so replay cannot know an
account's absolute balance. It tracks what each account received (credit)
and sent (debit) instead, and resolves those against baseline balances once
the trace has been walked.
"""

import threading
from typing import Callable, Dict, Iterable, Mapping, Optional, Set

import structlog

from ..errors import BalanceUnderflowError
from .ledger import LedgerState

logger = structlog.get_logger()


class BaselineBalances:
    """
    Memoised pre-transaction balances.

    Args:
        fetch_one: Returns the baseline balance of one address.
        fetch_many: Optional bulk variant used by ``resolve`` so distinct
            addresses can be looked up concurrently.
    """

    def __init__(
        self,
        fetch_one: Callable[[str], int],
        fetch_many: Optional[Callable[[Iterable[str]], Mapping[str, int]]] = None,
    ):
        self._fetch_one = fetch_one
        self._fetch_many = fetch_many
        self._cache: Dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, address: str) -> int:
        with self._lock:
            if address in self._cache:
                return self._cache[address]
        balance = self._fetch_one(address)
        with self._lock:
            return self._cache.setdefault(address, balance)

    def resolve(self, addresses: Iterable[str]) -> Dict[str, int]:
        """Return baselines for every address, fetching the unknown ones in one batch."""
        addresses = set(addresses)
        with self._lock:
            missing = addresses - self._cache.keys()
        if missing:
            if self._fetch_many is not None:
                fetched = dict(self._fetch_many(missing))
            else:
                fetched = {address: self._fetch_one(address) for address in missing}
            with self._lock:
                for address, balance in fetched.items():
                    self._cache.setdefault(address, balance)
        with self._lock:
            return {address: self._cache[address] for address in addresses}


class BalanceLedger:
    """Credit/debit accumulators kept in the snapshotted ledger state."""

    def __init__(self, state: LedgerState, baseline: Optional[BaselineBalances] = None):
        self.state = state
        self.baseline = baseline
        # accounts whose balance the transaction observed; survives reverts
        self.touched: Set[str] = set()

    def touch(self, address: str) -> None:
        self.touched.add(address)

    def credit(self, address: str, amount: int) -> None:
        self.touched.add(address)
        if amount:
            self.state.credits[address] = self.state.credits.get(address, 0) + amount

    def debit(self, address: str, amount: int) -> None:
        self.touched.add(address)
        if amount:
            self.state.debits[address] = self.state.debits.get(address, 0) + amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        self.debit(sender, amount)
        self.credit(recipient, amount)

    def net_change(self, address: str) -> int:
        return self.state.credits.get(address, 0) - self.state.debits.get(address, 0)

    def current_balance(self, address: str) -> int:
        """Balance at this point of the replay: baseline plus net change so far."""
        if self.baseline is None:
            raise RuntimeError("current_balance needs baseline balances")
        return self.baseline.get(address) + self.net_change(address)

    @property
    def accounts(self) -> Set[str]:
        return self.touched.union(self.state.credits, self.state.debits)

    def resolve(self, pre_balances: Mapping[str, int]) -> Dict[str, int]:
        """
        Compute post-transaction balances as ``pre + credit - debit``.

        Raises:
            BalanceUnderflowError: If an account would end up negative. The
                result is never clamped, since that would hide a trace the
                replay did not model correctly.
        """
        post: Dict[str, int] = {}
        for address, pre in pre_balances.items():
            credit = self.state.credits.get(address, 0)
            debit = self.state.debits.get(address, 0)
            balance = pre + credit - debit
            if balance < 0:
                logger.error(
                    "Balance underflow", address=address, pre=pre, credit=credit, debit=debit
                )
                raise BalanceUnderflowError(address, pre, credit, debit)
            post[address] = balance
        return post
