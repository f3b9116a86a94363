# core/snapshots.py
from typing import List

import structlog

from ..errors import MalformedTraceError
from .ledger import LedgerState

logger = structlog.get_logger()


class SnapshotManager:
    """
    Stack of ledger copies, one per call frame nested below the root.

    ``push`` is called once per call-like or creation opcode, ``pop`` when a
    frame returns normally and ``rollback`` when a frame aborts (REVERT,
    INVALID or a trace error). The counters let callers check that every push
    was matched by exactly one pop or rollback.
    """

    def __init__(self, state: LedgerState):
        self.state = state
        self._stack: List[LedgerState] = []
        self.pushes = 0
        self.pops = 0
        self.rollbacks = 0

    def __len__(self) -> int:
        return len(self._stack)

    def push(self) -> None:
        self._stack.append(self.state.clone())
        self.pushes += 1

    def pop(self) -> LedgerState:
        """Discard the newest snapshot, keeping the live ledgers as they are."""
        if not self._stack:
            raise MalformedTraceError("Snapshot stack underflow on frame return")
        self.pops += 1
        return self._stack.pop()

    def rollback(self) -> None:
        """Discard the newest snapshot and restore the live ledgers from it."""
        if not self._stack:
            raise MalformedTraceError("Snapshot stack underflow on frame abort")
        self.rollbacks += 1
        self.state.restore(self._stack.pop())
        logger.debug("Rolled back call frame", depth=len(self._stack) + 2)
