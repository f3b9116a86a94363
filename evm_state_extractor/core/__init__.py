"""
Trace-replay state reconstruction engine.
"""

from .assembler import AccountStateDiff, ExtractionResult, TransactionContext, assemble
from .backfill import BlockPrefix, backfill_pre_balances
from .balances import BalanceLedger, BaselineBalances
from .block_hashes import BlockHashResolver
from .call_stack import CallContextStack, CallFrame
from .code import CodeResolver
from .ledger import LedgerState
from .replay import ReplayState, TraceReplayer, find_created_address
from .snapshots import SnapshotManager
from .storage import StorageDiffTracker

__all__ = [
    "AccountStateDiff",
    "ExtractionResult",
    "TransactionContext",
    "assemble",
    "BlockPrefix",
    "backfill_pre_balances",
    "BalanceLedger",
    "BaselineBalances",
    "BlockHashResolver",
    "CallContextStack",
    "CallFrame",
    "CodeResolver",
    "LedgerState",
    "ReplayState",
    "TraceReplayer",
    "find_created_address",
    "SnapshotManager",
    "StorageDiffTracker",
]
