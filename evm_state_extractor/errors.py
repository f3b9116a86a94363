# errors.py
"""
Exception hierarchy for state extraction.

Every exception here is fatal for the transaction being reconstructed:
partial output is never returned.
"""


class ExtractionError(Exception):
    """Base class for all extraction failures."""


class ChainDataError(ExtractionError):
    """The chain data client failed to answer a request."""


class ChainDataNotFoundError(ChainDataError):
    """A transaction, block or trace is unknown to the node (or pruned)."""


class MalformedTraceError(ExtractionError):
    """The trace lacks data the opcode dispatch needs."""

    def __init__(self, message: str, index: int = -1, op: str = ""):
        super().__init__(message)
        self.index = index
        self.op = op


class BalanceUnderflowError(ExtractionError):
    """More was debited from an account than it could have held."""

    def __init__(self, address: str, pre_balance: int, credit: int, debit: int):
        super().__init__(
            f"Balance underflow for {address}: pre={pre_balance} "
            f"credit={credit} debit={debit}"
        )
        self.address = address
        self.pre_balance = pre_balance
        self.credit = credit
        self.debit = debit
