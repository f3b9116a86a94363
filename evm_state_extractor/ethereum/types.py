# ethereum/types.py
"""
Typed views over the JSON-RPC payloads the extractor consumes.

web3 hands back ``AttributeDict`` objects with ``HexBytes`` and checksum
addresses, while ``debug_traceTransaction`` returns raw JSON with hex strings.
Both are normalised here so the replay engine only ever sees ints, bytes and
lowercase ``0x`` addresses.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from eth_utils import to_bytes, to_normalized_address

from ..errors import MalformedTraceError

ADDRESS_MASK = (1 << 160) - 1
ZERO_ADDRESS = "0x" + "00" * 20

HexLike = Union[int, str, bytes, None]


def to_int(value: HexLike, default: int = 0) -> int:
    """Parse an int from an int, ``0x`` hex string, bare hex string or bytes."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    text = value.strip()
    if text in ("", "0x"):
        return default
    if text.startswith(("0x", "0X")):
        return int(text, 16)
    # geth struct logs before 1.10 emit stack words as bare hex
    return int(text, 16)


def to_data(value: HexLike) -> bytes:
    """Parse raw bytes from bytes/HexBytes or a hex string; None is empty."""
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value.strip()
    if text in ("", "0x"):
        return b""
    if not text.startswith(("0x", "0X")):
        text = "0x" + text
    return to_bytes(hexstr=text)


def to_address(value: HexLike) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return to_normalized_address(bytes(value))
    return to_normalized_address(value)


def word_to_address(word: int) -> str:
    """Decode an address from the low 20 bytes of a 256-bit stack word."""
    return "0x" + (word & ADDRESS_MASK).to_bytes(20, "big").hex()


@dataclass(frozen=True)
class TraceRecord:
    """One step of a struct-logger trace; ``stack`` has the top last."""

    op: str
    depth: int
    stack: Tuple[int, ...] = ()
    error: Optional[str] = None
    pc: int = 0

    def peek(self, position: int = 0) -> int:
        """
        Return the stack operand ``position`` slots below the top.

        Raises:
            MalformedTraceError: If the stack holds too few operands.
        """
        if position >= len(self.stack):
            raise MalformedTraceError(
                f"{self.op} at depth {self.depth} needs {position + 1} stack "
                f"operands, trace has {len(self.stack)}",
                op=self.op,
            )
        return self.stack[-1 - position]

    @classmethod
    def from_rpc(cls, log: Mapping[str, Any]) -> "TraceRecord":
        stack = log.get("stack") or []
        return cls(
            op=log["op"],
            depth=int(log["depth"]),
            stack=tuple(to_int(word) for word in stack),
            error=log.get("error") or None,
            pc=to_int(log.get("pc")),
        )


@dataclass
class TransactionTrace:
    failed: bool
    gas_used: int
    return_value: bytes = b""
    struct_logs: List[TraceRecord] = field(default_factory=list)

    @classmethod
    def from_rpc(cls, result: Mapping[str, Any]) -> "TransactionTrace":
        return cls(
            failed=bool(result.get("failed", False)),
            gas_used=to_int(result.get("gas")),
            return_value=to_data(result.get("returnValue")),
            struct_logs=[TraceRecord.from_rpc(log) for log in result.get("structLogs") or []],
        )


@dataclass
class TransactionInfo:
    hash: bytes
    sender: str
    to: Optional[str]
    nonce: int
    value: int
    input: bytes
    gas: int
    gas_price: int
    chain_id: Optional[int] = None
    block_hash: Optional[bytes] = None
    block_number: Optional[int] = None
    transaction_index: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None

    @property
    def is_contract_creation(self) -> bool:
        return self.to is None

    @classmethod
    def from_rpc(cls, tx: Mapping[str, Any]) -> "TransactionInfo":
        def optional_int(key: str) -> Optional[int]:
            raw = tx.get(key)
            return None if raw is None else to_int(raw)

        block_hash = tx.get("blockHash")
        return cls(
            hash=to_data(tx.get("hash")),
            sender=to_address(tx["from"]),
            to=to_address(tx.get("to")),
            nonce=to_int(tx.get("nonce")),
            value=to_int(tx.get("value")),
            input=to_data(tx.get("input", tx.get("data"))),
            gas=to_int(tx.get("gas")),
            gas_price=to_int(tx.get("gasPrice")),
            chain_id=optional_int("chainId"),
            block_hash=None if block_hash is None else to_data(block_hash),
            block_number=optional_int("blockNumber"),
            transaction_index=optional_int("transactionIndex"),
            max_priority_fee_per_gas=optional_int("maxPriorityFeePerGas"),
            max_fee_per_gas=optional_int("maxFeePerGas"),
        )


@dataclass
class BlockInfo:
    number: int
    hash: bytes
    timestamp: int
    difficulty: int = 0
    mix_hash: Optional[bytes] = None
    coinbase: Optional[str] = None
    base_fee_per_gas: Optional[int] = None
    transactions: List[TransactionInfo] = field(default_factory=list)

    @classmethod
    def from_rpc(cls, block: Mapping[str, Any]) -> "BlockInfo":
        mix_hash = block.get("mixHash")
        base_fee = block.get("baseFeePerGas")
        # hash-only transaction lists carry nothing the backfill can use
        transactions = [
            TransactionInfo.from_rpc(tx)
            for tx in block.get("transactions") or []
            if isinstance(tx, Mapping)
        ]
        return cls(
            number=to_int(block["number"]),
            hash=to_data(block["hash"]),
            timestamp=to_int(block.get("timestamp")),
            difficulty=to_int(block.get("difficulty")),
            mix_hash=None if mix_hash is None else to_data(mix_hash),
            coinbase=to_address(block.get("miner")),
            base_fee_per_gas=None if base_fee is None else to_int(base_fee),
            transactions=transactions,
        )


def as_plain_dict(payload: Any) -> Dict[str, Any]:
    """Convert a web3 ``AttributeDict`` (or any mapping) to a plain dict."""
    return dict(payload)
