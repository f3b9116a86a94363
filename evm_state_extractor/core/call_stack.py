# core/call_stack.py
from dataclasses import dataclass
from typing import List, Optional

from .opcodes import CONTEXT_PRESERVING_OPS, Opcode


@dataclass(frozen=True)
class CallFrame:
    """
    One execution context: the account whose storage and balance are current.

    ``placeholder`` marks a frame running on behalf of a creation that the
    trace shows failed; it has no real address and its effects never stick.
    """

    address: str
    opcode: Optional[Opcode] = None  # None for the transaction's root frame
    placeholder: bool = False


class CallContextStack:
    """
    Tracks which account is executing at each call depth.

    The root frame sits at depth 1, matching struct-log depths. DELEGATECALL
    and CALLCODE run foreign code in the caller's context, so they push the
    current address again.
    """

    def __init__(self, root_address: str):
        self._frames: List[CallFrame] = [CallFrame(root_address)]

    @property
    def depth(self) -> int:
        return len(self._frames)

    @property
    def top(self) -> CallFrame:
        return self._frames[-1]

    @property
    def current(self) -> str:
        return self._frames[-1].address

    @property
    def root(self) -> str:
        return self._frames[0].address

    def enter(self, opcode: Opcode, target: str, placeholder: bool = False) -> CallFrame:
        """Push the frame opened by a call-like or creation opcode."""
        if opcode in CONTEXT_PRESERVING_OPS:
            frame = CallFrame(self.top.address, opcode, self.top.placeholder)
        else:
            frame = CallFrame(target, opcode, placeholder)
        self._frames.append(frame)
        return frame

    def leave(self) -> CallFrame:
        if len(self._frames) == 1:
            raise IndexError("cannot leave the root frame")
        return self._frames.pop()

    def unwind_to(self, depth: int) -> List[CallFrame]:
        """Pop frames until ``depth`` remain; returns the popped frames, innermost first."""
        popped = []
        while len(self._frames) > max(depth, 1):
            popped.append(self._frames.pop())
        return popped

    def __len__(self) -> int:
        return len(self._frames)
