# extractor.py
"""
Reconstruct the state diff of one transaction from its trace.
"""

from typing import Optional, Union

import structlog

from .config import ExtractorConfig
from .core.addresses import compute_create_address
from .core.assembler import ExtractionResult, TransactionContext, assemble, touched_accounts
from .core.backfill import BlockPrefix
from .core.balances import BaselineBalances
from .core.replay import ReplayState, TraceReplayer
from .errors import ChainDataNotFoundError

logger = structlog.get_logger()


def extract_transaction(
    client, tx_hash: Union[str, bytes], config: Optional[ExtractorConfig] = None
) -> ExtractionResult:
    """
    Build the pre/post state of every account a transaction touched.

    Args:
        client: A ``ChainDataClient`` (or anything with the same methods).
        tx_hash: Hash of the transaction to reconstruct.
        config: Extraction settings; defaults are used when omitted.

    Returns:
        The per-account state diff, observed block hashes and the
        transaction context.

    Raises:
        ChainDataError: The node could not supply the transaction, its block
            or its trace.
        MalformedTraceError: The trace is missing operands replay needs.
        BalanceUnderflowError: The resolved balances are inconsistent.
    """
    config = config or ExtractorConfig()
    tx = client.get_transaction(tx_hash)
    if tx.block_hash is None:
        raise ChainDataNotFoundError(f"Transaction {tx_hash!r} is still pending")
    block = client.get_block(tx.block_hash, full_transactions=config.exact_pre_balances)
    trace = client.trace_transaction(tx_hash)
    parent = block.number - 1

    target = tx.to or compute_create_address(tx.sender, tx.nonce)
    logger.info(
        "Extracting transaction state",
        tx_hash=tx_hash,
        block=block.number,
        target=target,
        creation=tx.is_contract_creation,
        records=len(trace.struct_logs),
    )

    # SELFDESTRUCT valuation and the final resolution must read the same baselines
    if config.exact_pre_balances:
        baseline = BlockPrefix(client, tx, block, max_workers=config.max_workers).baseline()
    else:
        baseline = BaselineBalances(
            lambda address: client.get_balance(address, parent),
            lambda addresses: client.get_balances(addresses, parent, max_workers=config.max_workers),
        )
    state = ReplayState(
        target,
        fetch_pre_code=lambda address: client.get_code(address, parent),
        fetch_post_code=lambda address: client.get_code(address, block.number),
        baseline=baseline,
    )
    replayer = TraceReplayer(state)
    replayer.seed_transaction(tx, trace.gas_used)
    replayer.replay(trace.struct_logs, failed=trace.failed)

    pre_balances = baseline.resolve(touched_accounts(state))

    result = assemble(state, pre_balances, TransactionContext.from_chain(tx, block, trace))
    logger.info(
        "Extracted transaction state",
        tx_hash=tx_hash,
        accounts=len(result.accounts),
        block_hashes=len(result.block_hashes),
        status=result.context.status,
    )
    return result
