from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from evm_state_extractor.core.balances import BaselineBalances
from evm_state_extractor.core.replay import ReplayState, TraceReplayer
from evm_state_extractor.errors import ChainDataNotFoundError
from evm_state_extractor.ethereum.types import (
    BlockInfo,
    TraceRecord,
    TransactionInfo,
    TransactionTrace,
)

# --- Helpers ---

PARENT_BLOCK = 99
BLOCK_NUMBER = 100
GAS_PRICE = 10


def address(n: int) -> str:
    return "0x" + n.to_bytes(20, "big").hex()


def word(addr: str) -> int:
    return int(addr, 16)


def step(op: str, depth: int = 1, stack: Sequence[int] = (), error: Optional[str] = None) -> TraceRecord:
    """Build a trace record; ``stack`` is listed bottom first, top last."""
    return TraceRecord(op=op, depth=depth, stack=tuple(stack), error=error)


def call(to: str, value: int = 0, depth: int = 1, op: str = "CALL") -> TraceRecord:
    if op in ("CALL", "CALLCODE"):
        # retLength retOffset argsLength argsOffset value to gas
        return step(op, depth, [0, 0, 0, 0, value, word(to), 50000])
    return step(op, depth, [0, 0, 0, 0, word(to), 50000])


def tx_hash(n: int) -> bytes:
    return n.to_bytes(32, "big")


SENDER = address(0xA11CE)
RECEIVER = address(0xB0B)
CONTRACT = address(0xC0DE)
OTHER = address(0x07E2)


def _hash_key(value: Union[str, bytes]) -> bytes:
    if isinstance(value, bytes):
        return value
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


class FakeChainClient:
    """In-memory chain data client recording every request it serves."""

    def __init__(
        self,
        transactions: Iterable[TransactionInfo] = (),
        blocks: Iterable[BlockInfo] = (),
        traces: Optional[Dict[bytes, TransactionTrace]] = None,
        codes: Optional[Dict] = None,
        balances: Optional[Dict] = None,
    ):
        self.transactions = {tx.hash: tx for tx in transactions}
        self.blocks = {block.hash: block for block in blocks}
        self.traces = traces or {}
        # keyed by (address, block) or just address
        self.codes = codes or {}
        self.balances = balances or {}
        self.code_requests: List[Tuple[str, object]] = []
        self.balance_requests: List[Tuple[str, object]] = []
        self.trace_requests: List[bytes] = []

    def get_transaction(self, tx_hash):
        key = _hash_key(tx_hash)
        if key not in self.transactions:
            raise ChainDataNotFoundError(f"Transaction not found: {tx_hash!r}")
        return self.transactions[key]

    def get_block(self, block_identifier, full_transactions=False):
        key = _hash_key(block_identifier)
        if key not in self.blocks:
            raise ChainDataNotFoundError(f"Block not found: {block_identifier!r}")
        return self.blocks[key]

    def get_code(self, address, block_identifier=None):
        self.code_requests.append((address, block_identifier))
        return self.codes.get((address, block_identifier), self.codes.get(address, b""))

    def get_balance(self, address, block_identifier):
        self.balance_requests.append((address, block_identifier))
        return self.balances.get((address, block_identifier), self.balances.get(address, 0))

    def get_balances(self, addresses, block_identifier, max_workers=8):
        return {a: self.get_balance(a, block_identifier) for a in sorted(set(addresses))}

    def trace_transaction(self, tx_hash):
        key = _hash_key(tx_hash)
        self.trace_requests.append(key)
        if key not in self.traces:
            raise ChainDataNotFoundError(f"Trace not available for {tx_hash!r}")
        return self.traces[key]

    def trace_transactions(self, tx_hashes, max_workers=8):
        return [self.trace_transaction(h) for h in tx_hashes]


def make_tx(
    n: int = 1,
    sender: str = SENDER,
    to: Optional[str] = RECEIVER,
    value: int = 0,
    nonce: int = 0,
    gas_price: int = GAS_PRICE,
    index: int = 0,
    block_hash: bytes = b"\xbb" * 32,
) -> TransactionInfo:
    return TransactionInfo(
        hash=tx_hash(n),
        sender=sender,
        to=to,
        nonce=nonce,
        value=value,
        input=b"",
        gas=100000,
        gas_price=gas_price,
        chain_id=1,
        block_hash=block_hash,
        block_number=BLOCK_NUMBER,
        transaction_index=index,
        max_priority_fee_per_gas=None,
        max_fee_per_gas=None,
    )


def make_block(transactions: Sequence[TransactionInfo] = (), block_hash: bytes = b"\xbb" * 32) -> BlockInfo:
    return BlockInfo(
        number=BLOCK_NUMBER,
        hash=block_hash,
        timestamp=1_600_000_000,
        difficulty=0,
        mix_hash=b"\x01" * 32,
        coinbase=address(0xFEE),
        base_fee_per_gas=7,
        transactions=list(transactions),
    )


def make_replayer(
    root: str = CONTRACT,
    pre_codes: Optional[Dict[str, bytes]] = None,
    post_codes: Optional[Dict[str, bytes]] = None,
    balances: Optional[Dict[str, int]] = None,
    balances_only: bool = False,
) -> Tuple[ReplayState, TraceReplayer]:
    pre_codes = pre_codes or {}
    post_codes = post_codes or {}
    balances = balances or {}
    state = ReplayState(
        root,
        fetch_pre_code=lambda a: pre_codes.get(a, b""),
        fetch_post_code=lambda a: post_codes.get(a, b""),
        baseline=BaselineBalances(lambda a: balances.get(a, 0)),
    )
    return state, TraceReplayer(state, balances_only=balances_only)
