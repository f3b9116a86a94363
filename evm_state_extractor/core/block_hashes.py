# core/block_hashes.py
from typing import Dict


class BlockHashResolver:
    """Block number -> hash pairs observed through BLOCKHASH."""

    def __init__(self):
        self.hashes: Dict[int, bytes] = {}

    def record(self, number: int, hash_word: int) -> None:
        self.hashes[number] = hash_word.to_bytes(32, "big")

    def __len__(self) -> int:
        return len(self.hashes)
