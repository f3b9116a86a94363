# core/ledger.py
from typing import Dict


class LedgerState:
    """
    The four mutable ledgers a call frame can change and a revert must undo.

    Attributes:
        post_storage: account -> slot -> last written value
        post_code: account -> code deployed (or cleared) during the transaction
        credits: account -> total wei received
        debits: account -> total wei sent
    """

    def __init__(
        self,
        post_storage: Dict[str, Dict[int, int]] = None,
        post_code: Dict[str, bytes] = None,
        credits: Dict[str, int] = None,
        debits: Dict[str, int] = None,
    ):
        self.post_storage = post_storage or {}
        self.post_code = post_code or {}
        self.credits = credits or {}
        self.debits = debits or {}

    def clone(self) -> "LedgerState":
        """Create a copy that shares no mutable maps with this state."""
        return LedgerState(
            post_storage={account: dict(slots) for account, slots in self.post_storage.items()},
            post_code=dict(self.post_code),
            credits=dict(self.credits),
            debits=dict(self.debits),
        )

    def restore(self, snapshot: "LedgerState") -> None:
        """Replace the live ledgers in place with a snapshot's contents."""
        self.post_storage = snapshot.post_storage
        self.post_code = snapshot.post_code
        self.credits = snapshot.credits
        self.debits = snapshot.debits

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LedgerState):
            return NotImplemented
        return (
            self.post_storage == other.post_storage
            and self.post_code == other.post_code
            and self.credits == other.credits
            and self.debits == other.debits
        )

    def __repr__(self) -> str:
        return (
            f"LedgerState(storage={len(self.post_storage)}, code={len(self.post_code)}, "
            f"credits={len(self.credits)}, debits={len(self.debits)})"
        )
