# core/storage.py
from typing import Dict

from .ledger import LedgerState

StorageMap = Dict[str, Dict[int, int]]


class StorageDiffTracker:
    """
    First-observed and last-written values per (account, slot).

    Pre-values are plain observations and survive reverts; post-values live
    in the snapshotted ``LedgerState``.
    """

    def __init__(self, state: LedgerState):
        self.state = state
        self.pre_storage: StorageMap = {}

    def observe_read(self, account: str, slot: int, value: int) -> None:
        """Record ``value`` as the slot's pre-value unless one is already known."""
        if slot in self.pre_storage.get(account, {}):
            return
        # a read after a live write sees our own value, not the pre-state
        if slot in self.state.post_storage.get(account, {}):
            return
        self.pre_storage.setdefault(account, {})[slot] = value

    def observe_write(self, account: str, slot: int, value: int) -> None:
        self.state.post_storage.setdefault(account, {})[slot] = value

    def finalize(self) -> StorageMap:
        """
        Return the post-storage map with untouched read slots carried over.

        Slots that were written without a prior read keep no pre-entry.
        """
        post: StorageMap = {
            account: dict(slots) for account, slots in self.state.post_storage.items()
        }
        for account, slots in self.pre_storage.items():
            account_post = post.setdefault(account, {})
            for slot, value in slots.items():
                account_post.setdefault(slot, value)
        return post
