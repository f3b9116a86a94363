"""
Opcodes the trace replayer dispatches on, grouped by family.
"""

from enum import IntEnum
from typing import Optional


class Opcode(IntEnum):
    """EVM opcodes with state effects visible to the replayer"""

    BALANCE = 0x31
    EXTCODESIZE = 0x3B
    EXTCODECOPY = 0x3C
    EXTCODEHASH = 0x3F

    BLOCKHASH = 0x40
    SELFBALANCE = 0x47

    SLOAD = 0x54
    SSTORE = 0x55

    CREATE = 0xF0
    CALL = 0xF1
    CALLCODE = 0xF2
    DELEGATECALL = 0xF4
    CREATE2 = 0xF5
    STATICCALL = 0xFA
    REVERT = 0xFD
    INVALID = 0xFE
    SELFDESTRUCT = 0xFF


# call-like and creation opcodes each open a new call frame
CALL_OPS = frozenset({Opcode.CALL, Opcode.CALLCODE, Opcode.DELEGATECALL, Opcode.STATICCALL})
CREATE_OPS = frozenset({Opcode.CREATE, Opcode.CREATE2})

# calls that keep the caller's storage context
CONTEXT_PRESERVING_OPS = frozenset({Opcode.DELEGATECALL, Opcode.CALLCODE})

# opcodes whose top-of-stack operand is an address whose code is inspected
CODE_INSPECTION_OPS = frozenset({Opcode.EXTCODESIZE, Opcode.EXTCODECOPY, Opcode.EXTCODEHASH})

ABORT_OPS = frozenset({Opcode.REVERT, Opcode.INVALID})

_ALIASES = {"SUICIDE": Opcode.SELFDESTRUCT}


def parse_opcode(name: str) -> Optional[Opcode]:
    """
    Map a struct-log ``op`` name to an Opcode, or None if it has no state effect.

    geth renders undefined bytes as ``opcode 0xef not defined``; those trap
    like INVALID.
    """
    opcode = Opcode.__members__.get(name) or _ALIASES.get(name)
    if opcode is not None:
        return opcode
    if name.startswith("opcode ") and name.endswith("not defined"):
        return Opcode.INVALID
    return None
