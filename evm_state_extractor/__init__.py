"""
Reconstruct per-account pre/post state of an Ethereum transaction from its
opcode-level execution trace.
"""

from .config import ExtractorConfig
from .core import ExtractionResult
from .errors import (
    BalanceUnderflowError,
    ChainDataError,
    ChainDataNotFoundError,
    ExtractionError,
    MalformedTraceError,
)
from .ethereum import ChainDataClient
from .extractor import extract_transaction

__version__ = "0.1.0"

__all__ = [
    "ExtractorConfig",
    "ExtractionResult",
    "BalanceUnderflowError",
    "ChainDataError",
    "ChainDataNotFoundError",
    "ExtractionError",
    "MalformedTraceError",
    "ChainDataClient",
    "extract_transaction",
]
