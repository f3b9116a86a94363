# core/backfill.py
"""
Exact pre-transaction balances.

A node reports balances at block boundaries only. To learn an account's
balance right before transaction ``i`` of a block, start from the parent
block and replay the balance effects of transactions ``0..i-1`` in order.
"""

from typing import Dict, Iterable, List, Optional

import structlog

from ..errors import BalanceUnderflowError, ChainDataError
from ..ethereum.types import BlockInfo, TransactionInfo, TransactionTrace
from .addresses import compute_create_address
from .balances import BaselineBalances
from .replay import ReplayState, TraceReplayer

logger = structlog.get_logger()


def preceding_transactions(block: BlockInfo, tx: TransactionInfo) -> List[TransactionInfo]:
    """Transactions of ``block`` executed before ``tx``, in index order."""
    for position, candidate in enumerate(block.transactions):
        if candidate.hash == tx.hash:
            return block.transactions[:position]
    raise ChainDataError(f"Transaction 0x{tx.hash.hex()} is not part of block {block.number}")


def balance_effects(
    tx: TransactionInfo, trace: TransactionTrace, baseline: BaselineBalances
) -> Dict[str, int]:
    """
    Net balance change of every account a transaction moved wei for.

    Uses the same frame and rollback rules as the full replay, restricted to
    balances.
    """
    target = tx.to or compute_create_address(tx.sender, tx.nonce)
    state = ReplayState(target, baseline=baseline)
    replayer = TraceReplayer(state, balances_only=True)
    replayer.seed_transaction(tx, trace.gas_used)
    if trace.failed:
        # only the gas payment survives
        replayer.replay([], failed=True)
    else:
        replayer.replay(trace.struct_logs)
    return {address: state.balances.net_change(address) for address in state.balances.accounts}


class BlockPrefix:
    """
    The transactions of a block that execute before a target transaction.

    Their traces are fetched once, on first use, and shared by every balance
    query. Baselines that are filled in lazily during replay (a SELFDESTRUCT
    valuing the executing account) therefore never re-trace the block.

    Args:
        client: Chain data client.
        tx: The transaction being reconstructed.
        block: Its block, with full transaction objects.
        max_workers: Concurrency for balance and trace fetches.
    """

    def __init__(self, client, tx: TransactionInfo, block: BlockInfo, max_workers: int = 8):
        self.client = client
        self.parent = block.number - 1
        self.max_workers = max_workers
        self.transactions = preceding_transactions(block, tx)
        self._traces: Optional[List[TransactionTrace]] = None
        logger.info(
            "Backfilling pre-transaction balances",
            block=block.number,
            preceding=len(self.transactions),
        )

    @property
    def traces(self) -> List[TransactionTrace]:
        if self._traces is None:
            # fetching is independent per transaction; replay is strictly ordered
            self._traces = self.client.trace_transactions(
                [p.hash for p in self.transactions], max_workers=self.max_workers
            )
        return self._traces

    def pre_balances(
        self, addresses: Iterable[str], parent_balances: Optional[Dict[str, int]] = None
    ) -> Dict[str, int]:
        """
        Balances of ``addresses`` immediately before the target transaction.

        Args:
            addresses: Accounts to track.
            parent_balances: Balances at the parent block if already known.

        Raises:
            BalanceUnderflowError: If a preceding transaction drives a tracked
                balance negative.
        """
        tracked = set(addresses)
        balances = dict(parent_balances or {})
        missing = tracked - balances.keys()
        if missing:
            balances.update(
                self.client.get_balances(missing, self.parent, max_workers=self.max_workers)
            )
        logger.debug("Replaying block prefix", accounts=len(tracked))

        for prior_tx, trace in zip(self.transactions, self.traces):
            running = dict(balances)
            baseline = BaselineBalances(
                lambda address: running[address]
                if address in running
                else self.client.get_balance(address, self.parent)
            )
            for address, change in balance_effects(prior_tx, trace, baseline).items():
                if address not in tracked or not change:
                    continue
                updated = balances[address] + change
                if updated < 0:
                    credit, debit = max(change, 0), max(-change, 0)
                    raise BalanceUnderflowError(address, balances[address], credit, debit)
                balances[address] = updated
        return {address: balances[address] for address in tracked}

    def baseline(self) -> BaselineBalances:
        """Memoised baselines served from this prefix instead of the parent block."""
        return BaselineBalances(
            lambda address: self.pre_balances([address])[address],
            self.pre_balances,
        )


def backfill_pre_balances(
    client,
    tx: TransactionInfo,
    block: BlockInfo,
    addresses: Iterable[str],
    max_workers: int = 8,
    parent_balances: Optional[Dict[str, int]] = None,
) -> Dict[str, int]:
    """
    Balances of ``addresses`` immediately before ``tx`` executes.

    Starts from the parent block and replays the balance effects of the
    block's preceding transactions in order.
    """
    prefix = BlockPrefix(client, tx, block, max_workers=max_workers)
    return prefix.pre_balances(addresses, parent_balances)
