# core/assembler.py
"""
Builds the extractor's output contract from the replay ledgers.

All numbers are rendered as 32-byte big-endian hex, addresses as 20-byte hex,
neither with a ``0x`` prefix (the transaction hash keeps its prefix). A
missing optional scalar is rendered as ``"00"`` so the schema stays total;
missing code is ``None``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Set

from ..ethereum.types import BlockInfo, TransactionInfo, TransactionTrace
from .replay import ReplayState

MISSING = "00"


def encode_u256(value: Optional[int]) -> str:
    if value is None:
        return MISSING
    return value.to_bytes(32, "big").hex()


def encode_address(address: Optional[str]) -> str:
    if address is None:
        return MISSING
    return address[2:] if address.startswith("0x") else address


def encode_bytes(data: Optional[bytes]) -> Optional[str]:
    return None if data is None else data.hex()


@dataclass
class AccountStateDiff:
    pre_balance: int
    post_balance: int
    pre_storage: Dict[int, int] = field(default_factory=dict)
    post_storage: Dict[int, int] = field(default_factory=dict)
    pre_code: Optional[bytes] = None
    post_code: Optional[bytes] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pre_balance": encode_u256(self.pre_balance),
            "post_balance": encode_u256(self.post_balance),
            "pre_storage": {encode_u256(k): encode_u256(v) for k, v in sorted(self.pre_storage.items())},
            "post_storage": {encode_u256(k): encode_u256(v) for k, v in sorted(self.post_storage.items())},
            "pre_code": encode_bytes(self.pre_code),
            "post_code": encode_bytes(self.post_code),
        }


@dataclass
class TransactionContext:
    """Transaction and block metadata the test-vector generator needs."""

    tx_hash: bytes
    chain_id: Optional[int]
    sender: str
    to: Optional[str]
    input: bytes
    value: int
    gas_limit: int
    gas_price: Optional[int]
    fee_cap: Optional[int]
    priority_fee: Optional[int]
    block_number: int
    block_hash: Optional[bytes]
    timestamp: int
    difficulty: int
    nonce: int
    status: int
    return_data: bytes
    gas_used: int = 0
    coinbase: Optional[str] = None
    base_fee: Optional[int] = None
    mix_hash: Optional[bytes] = None

    @classmethod
    def from_chain(
        cls, tx: TransactionInfo, block: BlockInfo, trace: TransactionTrace
    ) -> "TransactionContext":
        return cls(
            tx_hash=tx.hash,
            chain_id=tx.chain_id,
            sender=tx.sender,
            to=tx.to,
            input=tx.input,
            value=tx.value,
            gas_limit=tx.gas,
            gas_price=tx.gas_price,
            fee_cap=tx.max_fee_per_gas,
            priority_fee=tx.max_priority_fee_per_gas,
            block_number=block.number,
            block_hash=block.hash,
            timestamp=block.timestamp,
            difficulty=block.difficulty,
            nonce=tx.nonce,
            status=0 if trace.failed else 1,
            return_data=trace.return_value,
            gas_used=trace.gas_used,
            coinbase=block.coinbase,
            base_fee=block.base_fee_per_gas,
            mix_hash=block.mix_hash,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": "0x" + self.tx_hash.hex(),
            "chain_id": self.chain_id or 0,
            "from": encode_address(self.sender),
            "to": encode_address(self.to),
            "input": self.input.hex(),
            "value": encode_u256(self.value),
            "gas_limit": self.gas_limit,
            "gas_price": encode_u256(self.gas_price),
            "fee_cap": encode_u256(self.fee_cap),
            "priority_fee": encode_u256(self.priority_fee),
            "block_number": self.block_number,
            "block_hash": self.block_hash.hex() if self.block_hash is not None else MISSING,
            "timestamp": self.timestamp,
            "difficulty": self.difficulty,
            "nonce": self.nonce,
            "status": self.status,
            "return_data": self.return_data.hex(),
            "gas_used": self.gas_used,
            "coinbase": encode_address(self.coinbase),
            "base_fee": encode_u256(self.base_fee),
            "mix_hash": self.mix_hash.hex() if self.mix_hash is not None else MISSING,
        }


@dataclass
class ExtractionResult:
    accounts: Dict[str, AccountStateDiff]
    block_hashes: Dict[int, bytes]
    context: TransactionContext

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accounts": {
                encode_address(address): diff.to_dict()
                for address, diff in sorted(self.accounts.items())
            },
            "block_hashes": {
                number: block_hash.hex() for number, block_hash in sorted(self.block_hashes.items())
            },
            "context": self.context.to_dict(),
        }


def touched_accounts(state: ReplayState) -> Set[str]:
    """Every account any ledger mentions."""
    accounts = set(state.balances.accounts)
    accounts.update(state.storage.pre_storage, state.ledger.post_storage)
    if state.code is not None:
        accounts.update(state.code.pre_code, state.ledger.post_code)
    return accounts


def assemble(
    state: ReplayState,
    pre_balances: Mapping[str, int],
    context: TransactionContext,
) -> ExtractionResult:
    """
    Merge the replay ledgers into the per-account diff.

    Args:
        state: A fully replayed state.
        pre_balances: Baseline balance of every account in the diff.
        context: Transaction context record.
    """
    post_storage = state.storage.finalize()
    post_code = state.code.finalize() if state.code is not None else {}
    pre_code = state.code.pre_code if state.code is not None else {}
    post_balances = state.balances.resolve(pre_balances)

    accounts = {}
    for address in touched_accounts(state):
        accounts[address] = AccountStateDiff(
            pre_balance=pre_balances[address],
            post_balance=post_balances[address],
            pre_storage=dict(state.storage.pre_storage.get(address, {})),
            post_storage=post_storage.get(address, {}),
            pre_code=pre_code.get(address),
            post_code=post_code.get(address),
        )
    return ExtractionResult(
        accounts=accounts,
        block_hashes=dict(state.block_hashes.hashes),
        context=context,
    )
