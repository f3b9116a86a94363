"""Chain data access for the extractor."""

from .chain_client import ChainDataClient
from .types import BlockInfo, TraceRecord, TransactionInfo, TransactionTrace

__all__ = [
    "ChainDataClient",
    "BlockInfo",
    "TraceRecord",
    "TransactionInfo",
    "TransactionTrace",
]
