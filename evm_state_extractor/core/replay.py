# core/replay.py
"""
Trace replay: a call-stack simulator with snapshot/rollback over one linear
struct-log trace.

The replayer never sees VM memory. Everything it learns comes from operand
stacks: the stack at an opcode gives its inputs, and the stack of the next
record back in the same frame gives its result (SLOAD values, BLOCKHASH
hashes, addresses produced by CREATE/CREATE2).
"""

from typing import Callable, Dict, List, Optional, Sequence

import structlog

from ..errors import MalformedTraceError
from ..ethereum.types import ZERO_ADDRESS, TraceRecord, TransactionInfo, word_to_address
from .balances import BalanceLedger, BaselineBalances
from .block_hashes import BlockHashResolver
from .call_stack import CallContextStack
from .code import CodeResolver
from .ledger import LedgerState
from .opcodes import ABORT_OPS, CALL_OPS, CODE_INSPECTION_OPS, CREATE_OPS, Opcode, parse_opcode
from .snapshots import SnapshotManager
from .storage import StorageDiffTracker

logger = structlog.get_logger()


def find_created_address(records: Sequence[TraceRecord], index: int) -> Optional[str]:
    """
    Look ahead for the address produced by the CREATE/CREATE2 at ``index``.

    The first later record back at the creator's depth carries the result on
    top of its stack. Returns None when the creation failed (zero result) or
    the trace ends before the creator resumes.
    """
    depth = records[index].depth
    for record in records[index + 1:]:
        if record.depth == depth:
            address = word_to_address(record.peek(0))
            return None if address == ZERO_ADDRESS else address
    return None


def frame_started(records: Sequence[TraceRecord], index: int) -> bool:
    """
    Whether the call-like opcode at ``index`` actually entered a new frame.

    A call that cannot start (insufficient balance, depth limit) leaves no
    marker in the trace; the only sign is that the next record stays at the
    caller's depth.
    """
    if index + 1 >= len(records):
        return False
    return records[index + 1].depth > records[index].depth


class ReplayState:
    """
    The ledgers, stacks and resolvers one replay mutates.

    Owned by a single ``TraceReplayer`` for one transaction; never shared.

    Args:
        root_address: Account executing at depth 1 (the transaction target).
        fetch_pre_code: Code of an account before the transaction. Omit for
            balance-only replays.
        fetch_post_code: Code of an account after the transaction.
        baseline: Baseline balances, needed to value SELFDESTRUCT transfers.
    """

    def __init__(
        self,
        root_address: str,
        fetch_pre_code: Optional[Callable[[str], bytes]] = None,
        fetch_post_code: Optional[Callable[[str], bytes]] = None,
        baseline: Optional[BaselineBalances] = None,
    ):
        self.ledger = LedgerState()
        self.frames = CallContextStack(root_address)
        self.snapshots = SnapshotManager(self.ledger)
        self.storage = StorageDiffTracker(self.ledger)
        self.balances = BalanceLedger(self.ledger, baseline)
        self.code: Optional[CodeResolver] = None
        if fetch_pre_code is not None:
            self.code = CodeResolver(self.ledger, fetch_pre_code, fetch_post_code or fetch_pre_code)
        self.block_hashes = BlockHashResolver()
        self.root_snapshot: Optional[LedgerState] = None
        self.root_aborted = False


class TraceReplayer:
    """
    Walks struct-log records once, in order, mutating a ``ReplayState``.

    With ``balances_only`` set, storage, code and block-hash observations are
    skipped; frame handling and rollback rules are unchanged. The historical
    balance backfill replays preceding transactions this way.
    """

    def __init__(self, state: ReplayState, balances_only: bool = False):
        self.state = state
        self.balances_only = balances_only
        self._code = None if balances_only else state.code
        # current storage/balance owner for every replayed record
        self.contexts: List[str] = []
        self._handlers: Dict[Opcode, Callable[[Sequence[TraceRecord], int, Opcode], None]] = {
            Opcode.SELFDESTRUCT: self._selfdestruct,
        }
        self._handlers.update((opcode, self._call) for opcode in CALL_OPS)
        self._handlers.update((opcode, self._create) for opcode in CREATE_OPS)
        if not balances_only:
            self._handlers.update(
                {
                    Opcode.SLOAD: self._sload,
                    Opcode.SSTORE: self._sstore,
                    Opcode.BALANCE: self._balance,
                    Opcode.SELFBALANCE: self._selfbalance,
                    Opcode.BLOCKHASH: self._blockhash,
                }
            )
            self._handlers.update((opcode, self._extcode) for opcode in CODE_INSPECTION_OPS)

    def seed_transaction(self, tx: TransactionInfo, gas_used: int) -> None:
        """
        Apply the transaction's own effects before any opcode runs.

        The gas fee is charged first and survives a top-level failure, so the
        root baseline is captured right after it. The value transfer and the
        deployed code of a creation transaction come after and are undone if
        the transaction fails.
        """
        state = self.state
        target = state.frames.root
        state.balances.debit(tx.sender, gas_used * tx.gas_price)
        state.balances.touch(target)
        state.root_snapshot = state.ledger.clone()

        state.balances.transfer(tx.sender, target, tx.value)
        if self._code is not None:
            if tx.is_contract_creation:
                self._code.record_created(target)
            else:
                self._code.reference(target)

    def replay(self, records: Sequence[TraceRecord], failed: bool = False) -> ReplayState:
        """
        Replay every record, then settle the frame stack.

        Args:
            records: The transaction's struct logs, in execution order.
            failed: The trace's top-level ``failed`` flag. A failed
                transaction keeps only its gas payment even if the trace
                carries no abort marker at depth 1.

        Raises:
            MalformedTraceError: If a record lacks an operand the dispatch
                needs or the depth grows without a call-like opcode.
        """
        state = self.state
        if state.root_snapshot is None:
            state.root_snapshot = state.ledger.clone()
        for index in range(len(records)):
            try:
                self._step(records, index)
            except MalformedTraceError as e:
                if e.index < 0:
                    e.index = index
                    e.op = records[index].op
                logger.error(
                    "Malformed trace",
                    index=index,
                    op=records[index].op,
                    pc=records[index].pc,
                    error=str(e),
                )
                raise

        # a trace may stop inside nested frames when the root halts abruptly
        self._return_to(1)
        if failed and not state.root_aborted:
            self._abort_root()

        logger.debug(
            "Replayed trace",
            records=len(records),
            snapshots_pushed=state.snapshots.pushes,
            rollbacks=state.snapshots.rollbacks,
            failed=failed,
        )
        return state

    def _step(self, records: Sequence[TraceRecord], index: int) -> None:
        state = self.state
        record = records[index]
        if record.depth > state.frames.depth:
            raise MalformedTraceError(
                f"depth jumps to {record.depth} without a call (frame depth {state.frames.depth})"
            )
        if record.depth < state.frames.depth:
            self._return_to(record.depth)
        self.contexts.append(state.frames.current)

        # an erroring opcode did not execute; its frame is aborted instead
        if record.error is not None:
            self._abort()
            return

        opcode = parse_opcode(record.op)
        if opcode is None:
            return
        if opcode in ABORT_OPS:
            self._abort()
            return
        handler = self._handlers.get(opcode)
        if handler is not None:
            handler(records, index, opcode)

    def _return_to(self, depth: int) -> None:
        """
        Frames above ``depth`` returned; drop their snapshots.

        A creation frame whose result was the zero address returned normally
        yet deployed nothing (e.g. code deposit failure), so its effects are
        rolled back.
        """
        for frame in self.state.frames.unwind_to(depth):
            if frame.placeholder and frame.opcode in CREATE_OPS:
                self.state.snapshots.rollback()
            else:
                self.state.snapshots.pop()

    def _abort(self) -> None:
        state = self.state
        if state.frames.depth == 1:
            self._abort_root()
            return
        state.frames.leave()
        state.snapshots.rollback()

    def _abort_root(self) -> None:
        state = self.state
        if state.root_aborted:
            return
        state.root_aborted = True
        if state.root_snapshot is not None:
            state.ledger.restore(state.root_snapshot.clone())
        logger.debug("Transaction reverted at top level", root=state.frames.root)

    def _enter(self, opcode: Opcode, target: str, placeholder: bool = False) -> None:
        self.state.snapshots.push()
        self.state.frames.enter(opcode, target, placeholder)

    def _next_record(self, records: Sequence[TraceRecord], index: int) -> TraceRecord:
        if index + 1 >= len(records):
            raise MalformedTraceError(f"{records[index].op} is the last record; its result is missing")
        return records[index + 1]

    def _call(self, records: Sequence[TraceRecord], index: int, opcode: Opcode) -> None:
        state = self.state
        record = records[index]
        target = word_to_address(record.peek(1))
        # CALLCODE moves value from the caller to itself: no net change
        value = record.peek(2) if opcode is Opcode.CALL else 0
        caller = state.frames.top
        if self._code is not None:
            self._code.reference(target)

        self._enter(opcode, target)
        if value and not caller.placeholder and frame_started(records, index):
            state.balances.transfer(caller.address, target, value)

    def _create(self, records: Sequence[TraceRecord], index: int, opcode: Opcode) -> None:
        state = self.state
        record = records[index]
        value = record.peek(0)
        creator = state.frames.top
        address = find_created_address(records, index)

        if address is None:
            logger.debug("Contract creation failed", creator=creator.address, index=index)
            self._enter(opcode, ZERO_ADDRESS, placeholder=True)
            return

        self._enter(opcode, address)
        if self._code is not None:
            self._code.record_created(address)
        if value and not creator.placeholder and frame_started(records, index):
            state.balances.transfer(creator.address, address, value)

    def _selfdestruct(self, records: Sequence[TraceRecord], index: int, opcode: Opcode) -> None:
        state = self.state
        if state.frames.top.placeholder:
            return
        beneficiary = word_to_address(records[index].peek(0))
        account = state.frames.current
        if state.balances.baseline is not None:
            remaining = state.balances.current_balance(account)
            if remaining > 0:
                state.balances.transfer(account, beneficiary, remaining)
        state.balances.touch(beneficiary)
        if self._code is not None:
            self._code.record_destroyed(account)
        logger.warning(
            "SELFDESTRUCT replayed best-effort", account=account, beneficiary=beneficiary
        )

    def _sload(self, records: Sequence[TraceRecord], index: int, opcode: Opcode) -> None:
        slot = records[index].peek(0)
        value = self._next_record(records, index).peek(0)
        if not self.state.frames.top.placeholder:
            self.state.storage.observe_read(self.state.frames.current, slot, value)

    def _sstore(self, records: Sequence[TraceRecord], index: int, opcode: Opcode) -> None:
        record = records[index]
        self.state.storage.observe_write(self.state.frames.current, record.peek(0), record.peek(1))

    def _balance(self, records: Sequence[TraceRecord], index: int, opcode: Opcode) -> None:
        self.state.balances.touch(word_to_address(records[index].peek(0)))

    def _selfbalance(self, records: Sequence[TraceRecord], index: int, opcode: Opcode) -> None:
        if not self.state.frames.top.placeholder:
            self.state.balances.touch(self.state.frames.current)

    def _extcode(self, records: Sequence[TraceRecord], index: int, opcode: Opcode) -> None:
        if self._code is not None:
            self._code.reference(word_to_address(records[index].peek(0)))

    def _blockhash(self, records: Sequence[TraceRecord], index: int, opcode: Opcode) -> None:
        number = records[index].peek(0)
        block_hash = self._next_record(records, index).peek(0)
        self.state.block_hashes.record(number, block_hash)
