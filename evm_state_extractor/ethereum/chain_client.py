# ethereum/chain_client.py
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional, Union

import structlog
from eth_utils import to_checksum_address, to_hex
from web3 import Web3
from web3.exceptions import BlockNotFound, TransactionNotFound

from ..errors import ChainDataError, ChainDataNotFoundError
from .types import BlockInfo, TransactionInfo, TransactionTrace, as_plain_dict, to_data

logger = structlog.get_logger()

BlockIdentifier = Union[int, str, bytes]

# struct logger settings: stack is required, storage and memory are not
STRUCT_LOG_OPTIONS = {
    "disableStorage": True,
    "enableMemory": False,
    "disableStack": False,
    "enableReturnData": True,
}


def _hash_hex(tx_hash: Union[str, bytes]) -> str:
    return tx_hash if isinstance(tx_hash, str) else to_hex(tx_hash)


class ChainDataClient:
    """
    Read-only access to a full node for the extractor.

    Wraps a web3 HTTP provider and returns the typed views from
    ``ethereum.types``. Retries and timeouts are left to the provider.
    """

    def __init__(self, web3_provider_url: str, request_timeout: int = 30):
        self.web3 = Web3(
            Web3.HTTPProvider(web3_provider_url, request_kwargs={"timeout": request_timeout})
        )
        if not self.web3.is_connected():
            logger.error("Failed to connect to Web3 provider", url=web3_provider_url)
            raise ConnectionError(
                f"Could not connect to Web3 provider at {web3_provider_url}"
            )
        logger.info("Connected to Web3 provider", url=web3_provider_url)

    @classmethod
    def from_web3(cls, web3: Web3) -> "ChainDataClient":
        """Build a client around an existing (or mocked) Web3 instance."""
        client = cls.__new__(cls)
        client.web3 = web3
        return client

    def get_transaction(self, tx_hash: Union[str, bytes]) -> TransactionInfo:
        tx_hash = _hash_hex(tx_hash)
        logger.debug("Fetching transaction", tx_hash=tx_hash)
        try:
            tx = self.web3.eth.get_transaction(tx_hash)
        except TransactionNotFound as e:
            raise ChainDataNotFoundError(f"Transaction not found: {tx_hash}") from e
        except Exception as e:
            logger.exception("Error fetching transaction", tx_hash=tx_hash, error=str(e))
            raise ChainDataError(f"Failed to fetch transaction {tx_hash}: {e}") from e
        if tx is None:
            raise ChainDataNotFoundError(f"Transaction not found: {tx_hash}")
        return TransactionInfo.from_rpc(as_plain_dict(tx))

    def get_block(self, block_identifier: BlockIdentifier, full_transactions: bool = False) -> BlockInfo:
        if isinstance(block_identifier, bytes):
            block_identifier = to_hex(block_identifier)
        logger.debug("Fetching block", block=block_identifier, full=full_transactions)
        try:
            block = self.web3.eth.get_block(block_identifier, full_transactions=full_transactions)
        except BlockNotFound as e:
            raise ChainDataNotFoundError(f"Block not found: {block_identifier}") from e
        except Exception as e:
            logger.exception("Error fetching block", block=block_identifier, error=str(e))
            raise ChainDataError(f"Failed to fetch block {block_identifier}: {e}") from e
        if block is None:
            raise ChainDataNotFoundError(f"Block not found: {block_identifier}")
        return BlockInfo.from_rpc(as_plain_dict(block))

    def get_code(self, address: str, block_identifier: Optional[BlockIdentifier] = None) -> bytes:
        logger.debug("Fetching contract code", address=address, block=block_identifier)
        try:
            code = self.web3.eth.get_code(
                to_checksum_address(address),
                block_identifier=block_identifier if block_identifier is not None else "latest",
            )
        except Exception as e:
            logger.exception("Error fetching contract code", address=address, error=str(e))
            raise ChainDataError(f"Failed to fetch code of {address}: {e}") from e
        return to_data(code)

    def get_balance(self, address: str, block_identifier: BlockIdentifier) -> int:
        logger.debug("Fetching ETH balance", address=address, block=block_identifier)
        try:
            return int(
                self.web3.eth.get_balance(
                    to_checksum_address(address), block_identifier=block_identifier
                )
            )
        except Exception as e:
            logger.exception(
                "Error fetching ETH balance", address=address, block=block_identifier, error=str(e)
            )
            raise ChainDataError(f"Failed to fetch balance of {address}: {e}") from e

    def get_balances(
        self, addresses: Iterable[str], block_identifier: BlockIdentifier, max_workers: int = 8
    ) -> Dict[str, int]:
        """Fetch balances of distinct addresses at one block concurrently."""
        addresses = sorted(set(addresses))
        if not addresses:
            return {}
        balances: Dict[str, int] = {}
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(addresses)))) as executor:
            futures = {
                executor.submit(self.get_balance, address, block_identifier): address
                for address in addresses
            }
            for future in as_completed(futures):
                balances[futures[future]] = future.result()
        return balances

    def trace_transaction(self, tx_hash: Union[str, bytes]) -> TransactionTrace:
        """
        Collect the opcode-level trace of a transaction via debug_traceTransaction.

        Args:
            tx_hash: The hash of the transaction to trace.

        Returns:
            The parsed struct-logger trace.
        """
        tx_hash = _hash_hex(tx_hash)
        logger.info("Collecting trace", tx_hash=tx_hash)
        try:
            response = self.web3.provider.make_request(
                "debug_traceTransaction", [tx_hash, STRUCT_LOG_OPTIONS]
            )
        except Exception as e:
            logger.exception("Error during trace collection", tx_hash=tx_hash, error=str(e))
            raise ChainDataError(f"Failed to trace {tx_hash}: {e}") from e

        if "error" in response:
            error = response["error"]
            logger.error(
                "Error received from debug_traceTransaction", tx_hash=tx_hash, error=error
            )
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            if "not found" in message.lower():
                raise ChainDataNotFoundError(f"Trace not available for {tx_hash}: {message}")
            raise ChainDataError(f"Trace error for {tx_hash}: {message}")

        if "result" not in response:
            logger.error(
                "Unexpected trace format: 'result' key missing",
                tx_hash=tx_hash,
                trace_response=response,
            )
            raise ChainDataError(f"Unexpected trace format received for {tx_hash}")

        trace = TransactionTrace.from_rpc(response["result"])
        logger.debug(
            "Successfully collected trace", tx_hash=tx_hash, records=len(trace.struct_logs)
        )
        return trace

    def trace_transactions(
        self, tx_hashes: List[Union[str, bytes]], max_workers: int = 8
    ) -> List[TransactionTrace]:
        """Trace several transactions concurrently; results keep input order."""
        if not tx_hashes:
            return []
        traces: List[Optional[TransactionTrace]] = [None] * len(tx_hashes)
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(tx_hashes)))) as executor:
            futures = {
                executor.submit(self.trace_transaction, tx_hash): index
                for index, tx_hash in enumerate(tx_hashes)
            }
            for future in as_completed(futures):
                traces[futures[future]] = future.result()
        return traces
