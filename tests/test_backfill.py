import pytest

from evm_state_extractor.core.backfill import (
    BlockPrefix,
    backfill_pre_balances,
    balance_effects,
    preceding_transactions,
)
from evm_state_extractor.core.balances import BaselineBalances
from evm_state_extractor.errors import BalanceUnderflowError, ChainDataError
from evm_state_extractor.ethereum.types import TransactionTrace
from tests.helpers import (
    CONTRACT,
    OTHER,
    PARENT_BLOCK,
    RECEIVER,
    SENDER,
    FakeChainClient,
    call,
    make_block,
    make_tx,
    step,
)

FEE = 21000 * 10


def plain_trace(failed=False, struct_logs=None):
    return TransactionTrace(failed=failed, gas_used=21000, struct_logs=struct_logs or [])


def test_preceding_transactions_in_index_order():
    txs = [make_tx(n=i, index=i) for i in range(1, 4)]
    block = make_block(txs)
    assert preceding_transactions(block, txs[2]) == txs[:2]
    assert preceding_transactions(block, txs[0]) == []


def test_preceding_transactions_requires_membership():
    with pytest.raises(ChainDataError):
        preceding_transactions(make_block([make_tx(n=1)]), make_tx(n=2))


def test_balance_effects_of_plain_transfer():
    effects = balance_effects(make_tx(value=50), plain_trace(), BaselineBalances(lambda a: 0))
    assert effects == {SENDER: -50 - FEE, RECEIVER: 50}


def test_balance_effects_of_failed_transaction_keep_fee_only():
    effects = balance_effects(
        make_tx(value=50),
        plain_trace(failed=True, struct_logs=[step("REVERT", 1, [0, 0])]),
        BaselineBalances(lambda a: 0),
    )
    assert effects == {SENDER: -FEE, RECEIVER: 0}


def test_backfill_applies_prior_transactions():
    prior = make_tx(n=1, value=50, index=0)
    internal = make_tx(n=2, sender=OTHER, to=CONTRACT, index=1)
    target = make_tx(n=3, to=CONTRACT, index=2)
    client = FakeChainClient(
        traces={
            prior.hash: plain_trace(),
            internal.hash: plain_trace(
                struct_logs=[call(RECEIVER, value=7), step("STOP", 2), step("POP", 1, [1])]
            ),
        },
        balances={SENDER: 1_000_000, RECEIVER: 5, CONTRACT: 10},
    )
    block = make_block([prior, internal, target])

    balances = backfill_pre_balances(client, target, block, [SENDER, RECEIVER, CONTRACT])

    assert balances == {SENDER: 1_000_000 - 50 - FEE, RECEIVER: 5 + 50 + 7, CONTRACT: 3}
    assert client.trace_requests == [prior.hash, internal.hash]
    # untracked senders are never fetched
    assert all(a != OTHER for a, _ in client.balance_requests)
    assert {b for _, b in client.balance_requests} == {PARENT_BLOCK}


def test_backfill_uses_known_parent_balances():
    prior = make_tx(n=1, value=50, index=0)
    target = make_tx(n=2, index=1)
    client = FakeChainClient(traces={prior.hash: plain_trace(failed=True)})

    balances = backfill_pre_balances(
        client,
        target,
        make_block([prior, target]),
        [SENDER, RECEIVER],
        parent_balances={SENDER: 500_000, RECEIVER: 1},
    )

    assert balances == {SENDER: 500_000 - FEE, RECEIVER: 1}
    assert client.balance_requests == []


def test_backfill_underflow_raises():
    prior = make_tx(n=1, value=50, index=0)
    target = make_tx(n=2, index=1)
    client = FakeChainClient(traces={prior.hash: plain_trace()}, balances={SENDER: 100})

    with pytest.raises(BalanceUnderflowError) as exc_info:
        backfill_pre_balances(client, target, make_block([prior, target]), [SENDER])
    assert exc_info.value.address == SENDER


def test_block_prefix_baseline_traces_prefix_once():
    prior = make_tx(n=1, value=50, index=0)
    target = make_tx(n=2, index=1)
    client = FakeChainClient(
        traces={prior.hash: plain_trace()},
        balances={SENDER: 1_000_000, RECEIVER: 5},
    )
    baseline = BlockPrefix(client, target, make_block([prior, target])).baseline()

    assert baseline.get(RECEIVER) == 55
    assert baseline.resolve([SENDER, RECEIVER]) == {SENDER: 1_000_000 - 50 - FEE, RECEIVER: 55}
    assert client.trace_requests == [prior.hash]
