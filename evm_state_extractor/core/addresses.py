# core/addresses.py
import rlp
from eth_utils import keccak, to_bytes, to_normalized_address


def compute_create_address(sender: str, nonce: int) -> str:
    """Address of a contract deployed by ``sender`` at ``nonce`` (CREATE rules)."""
    encoded = rlp.encode([to_bytes(hexstr=sender), nonce])
    return to_normalized_address(keccak(encoded)[-20:])
