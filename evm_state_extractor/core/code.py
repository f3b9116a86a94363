# core/code.py
from typing import Callable, Dict

import structlog

from .ledger import LedgerState

logger = structlog.get_logger()


class CodeResolver:
    """
    Lazily fetched bytecode, before and after the transaction.

    Pre-code is fetched once per address on first reference and cached.
    Creations and self-destructs record post-code deltas in the snapshotted
    ledger state so a reverted frame loses its deployment.
    """

    def __init__(
        self,
        state: LedgerState,
        fetch_pre_code: Callable[[str], bytes],
        fetch_post_code: Callable[[str], bytes],
    ):
        self.state = state
        self._fetch_pre_code = fetch_pre_code
        self._fetch_post_code = fetch_post_code
        self.pre_code: Dict[str, bytes] = {}

    def reference(self, address: str) -> bytes:
        if address not in self.pre_code:
            self.pre_code[address] = self._fetch_pre_code(address)
            logger.debug("Resolved code", address=address, size=len(self.pre_code[address]))
        return self.pre_code[address]

    def record_created(self, address: str) -> bytes:
        code = self._fetch_post_code(address)
        self.state.post_code[address] = code
        logger.debug("Recorded deployed code", address=address, size=len(code))
        return code

    def record_destroyed(self, address: str) -> None:
        self.state.post_code[address] = b""

    def finalize(self) -> Dict[str, bytes]:
        post = dict(self.pre_code)
        post.update(self.state.post_code)
        return post
