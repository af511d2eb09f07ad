from __future__ import annotations

import json
from pathlib import Path

import pytest

from integnet.crypto.address import module_address
from integnet.crypto.sig import canonical_json
from integnet.ledger.constants import FEE_COLLECTOR_NAME, PREFUNDED_ACCOUNT_INITIAL_BALANCE
from integnet.ledger.types import Coin
from integnet.network import new_network
from integnet.runtime import metrics
from integnet.runtime.abci import (
    CODE_INSUFFICIENT_FUNDS,
    CODE_INVALID_CHAIN_ID,
    CODE_INVALID_REQUEST,
    CODE_OUT_OF_GAS,
    CODE_TX_DECODE,
    CODE_UNAUTHORIZED,
    CODE_WRONG_SEQUENCE,
)
from integnet.runtime.app import LedgerApp
from integnet.runtime.errors import BootstrapError, TxDecodeError
from integnet.runtime.network_config import with_db_path
from integnet.runtime.sqlite_db import SqliteAppStore, SqliteDB
from integnet.testing.keyring import new_keyring
from integnet.tx.factory import build_delegate_tx, build_send_tx

ONE = 10**18


@pytest.fixture
def net():
    return new_network()


@pytest.fixture
def keys():
    return new_keyring(3)


def _send(net, key, to, amount, *, sequence, **kw) -> bytes:
    return build_send_tx(
        key, to, [Coin(denom=net.get_denom(), amount=amount)], chain_id=net.get_chain_id(), sequence=sequence, **kw
    )


def test_eip155_chain_id(net) -> None:
    assert net.get_eip155_chain_id() == 9000


def test_transfer_succeeds_with_gas_and_events(net, keys) -> None:
    res = net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, ONE, sequence=0))

    assert res.ok, res.log
    assert res.gas_used > 0
    assert res.gas_used <= res.gas_wanted
    assert res.events

    transfers = [e for e in res.events if e.type == "transfer"]
    assert len(transfers) == 1
    assert transfers[0].get("sender") == keys[0].address
    assert transfers[0].get("recipient") == keys[1].address
    assert transfers[0].get("amount") == f"{ONE}aint"

    assert net.get_balance(keys[0].address) == PREFUNDED_ACCOUNT_INITIAL_BALANCE - ONE
    assert net.get_balance(keys[1].address) == PREFUNDED_ACCOUNT_INITIAL_BALANCE + ONE


def test_fee_goes_to_fee_collector(net, keys) -> None:
    fee = [Coin(denom="aint", amount=1234)]
    res = net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, 1, sequence=0, fee=fee))

    assert res.ok, res.log
    assert net.get_balance(keys[0].address) == PREFUNDED_ACCOUNT_INITIAL_BALANCE - 1 - 1234
    assert net.get_balance(module_address(FEE_COLLECTOR_NAME)) == 1234


def test_transfer_to_new_account(net, keys) -> None:
    (stranger,) = new_keyring(1, label_prefix="stranger")
    res = net.broadcast_tx_sync(_send(net, keys[0], stranger.address, 5, sequence=0))

    assert res.ok, res.log
    assert net.get_balance(stranger.address) == 5
    assert net.app.query_account(stranger.address) is not None


def test_sequence_is_enforced(net, keys) -> None:
    tx0 = _send(net, keys[0], keys[1].address, 1, sequence=0)
    assert net.broadcast_tx_sync(tx0).ok

    replay = net.broadcast_tx_sync(tx0)
    assert replay.code == CODE_WRONG_SEQUENCE
    assert "expected 1, got 0" in replay.log

    assert net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, 1, sequence=1)).ok


def test_tampered_signature_is_unauthorized(net, keys) -> None:
    tx = json.loads(_send(net, keys[0], keys[1].address, 1, sequence=0))
    tx["memo"] = "tampered"
    res = net.broadcast_tx_sync(canonical_json(tx).encode("utf-8"))

    assert res.code == CODE_UNAUTHORIZED
    # Rejected in the ante handler: the sequence is not consumed.
    assert net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, 1, sequence=0)).ok


def test_wrong_chain_id(net, keys) -> None:
    tx = build_send_tx(keys[0], keys[1].address, [Coin(denom="aint", amount=1)], chain_id="other_1-1", sequence=0)
    assert net.broadcast_tx_sync(tx).code == CODE_INVALID_CHAIN_ID


def test_failed_message_keeps_ante_effects(net, keys) -> None:
    fee = [Coin(denom="aint", amount=10)]
    res = net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, 10 * ONE, sequence=0, fee=fee))

    assert res.code == CODE_INSUFFICIENT_FUNDS
    assert "insufficient funds" in res.log
    assert res.gas_used > 0

    # Fee charged and sequence bumped, transfer rolled back.
    assert net.get_balance(keys[0].address) == PREFUNDED_ACCOUNT_INITIAL_BALANCE - 10
    assert net.get_balance(keys[1].address) == PREFUNDED_ACCOUNT_INITIAL_BALANCE
    assert net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, 1, sequence=1)).ok


def test_out_of_gas(net, keys) -> None:
    res = net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, 1, sequence=0, gas_limit=1000))

    assert res.code == CODE_OUT_OF_GAS
    assert res.gas_wanted == 1000
    assert res.gas_used == 1000
    assert net.get_balance(keys[1].address) == PREFUNDED_ACCOUNT_INITIAL_BALANCE


def test_sending_to_module_account_is_blocked(net, keys) -> None:
    res = net.broadcast_tx_sync(_send(net, keys[0], module_address(FEE_COLLECTOR_NAME), 1, sequence=0))
    assert res.code == CODE_UNAUTHORIZED


def test_malformed_bytes_broadcast_returns_decode_code(net) -> None:
    res = net.broadcast_tx_sync(b"definitely not a tx")
    assert res.code == CODE_TX_DECODE
    assert not res.ok


@pytest.mark.parametrize("payload", ["a string", None, 42])
def test_broadcast_non_bytes_raises(net, payload) -> None:
    with pytest.raises(TxDecodeError) as e:
        net.broadcast_tx_sync(payload)
    assert e.value.code == "tx_decode"


def test_simulate_success_does_not_change_state(net, keys) -> None:
    tx = _send(net, keys[0], keys[1].address, ONE, sequence=0)
    sim = net.simulate(tx)

    assert sim.result.ok, sim.result.log
    assert sim.gas_info.gas_used > 0
    assert sim.gas_info.gas_wanted == 200_000
    assert any(e.type == "transfer" for e in sim.result.events)

    assert net.get_balance(keys[0].address) == PREFUNDED_ACCOUNT_INITIAL_BALANCE
    assert net.app.query_account(keys[0].address)["sequence"] == 0

    # The same bytes still deliver afterwards.
    assert net.broadcast_tx_sync(tx).ok


def test_simulate_failing_tx_returns_result_not_error(net, keys) -> None:
    sim = net.simulate(_send(net, keys[0], keys[1].address, 10 * ONE, sequence=0))

    assert not sim.result.ok
    assert sim.result.code == CODE_INSUFFICIENT_FUNDS
    assert sim.gas_info.gas_used > 0
    assert net.get_balance(keys[0].address) == PREFUNDED_ACCOUNT_INITIAL_BALANCE


def test_simulate_skips_signature_check(net, keys) -> None:
    tx = json.loads(_send(net, keys[0], keys[1].address, 1, sequence=0))
    tx["memo"] = "unsigned change"
    sim = net.simulate(canonical_json(tx).encode("utf-8"))
    assert sim.result.ok, sim.result.log


@pytest.mark.parametrize("payload", [b"", b"not json", b"\xff\xfe", b'{"chain_id": "x"}', "a string"])
def test_simulate_malformed_raises(net, payload) -> None:
    with pytest.raises(TxDecodeError) as e:
        net.simulate(payload)
    assert e.value.code == "tx_decode"


def test_next_block_advances_height(net, keys) -> None:
    assert net.get_context().block_height == 2
    app_hash_before = net.app.last_commit_id().hash

    net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, 1, sequence=0))
    ctx = net.next_block()

    assert ctx.block_height == 3
    assert net.app.last_block_height() == 2
    assert ctx.header.app_hash == net.app.last_commit_id().hash
    assert ctx.header.app_hash != app_hash_before
    assert metrics.snapshot()["gauges"]["block_height"] == 3


def test_delegate_changes_voting_power(net, keys) -> None:
    valoper = net.get_validators()[0].operator_address
    res = net.broadcast_tx_sync(
        build_delegate_tx(keys[1], valoper, Coin(denom="aint", amount=ONE), chain_id=net.get_chain_id(), sequence=0)
    )

    assert res.ok, res.log
    delegate = [e for e in res.events if e.type == "delegate"]
    assert delegate and delegate[0].get("validator") == valoper
    assert net.app.query_delegation(keys[1].address, valoper) == ONE

    val = net.app.query_validator(valoper)
    assert val["tokens"] == 2 * ONE
    assert val["delegator_shares"] == 2 * ONE
    assert val["status"] == "BOND_STATUS_BONDED"

    old_hash = net.get_validator_set().hash()
    net.next_block()
    vs = net.get_validator_set()

    assert vs.total_voting_power() == 4
    assert vs.validators[0].voting_power == 2
    assert vs.hash() != old_hash
    assert net.get_context().header.validators_hash == vs.hash()


def test_delegate_wrong_denom_fails(net, keys) -> None:
    valoper = net.get_validators()[0].operator_address
    res = net.broadcast_tx_sync(
        build_delegate_tx(keys[1], valoper, Coin(denom="other", amount=1), chain_id=net.get_chain_id(), sequence=0)
    )
    assert res.code == CODE_INVALID_REQUEST


def test_metrics_count_outcomes(net, keys) -> None:
    net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, 1, sequence=0))
    net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, 1, sequence=0))
    net.simulate(_send(net, keys[0], keys[1].address, 1, sequence=1))

    counters = metrics.snapshot()["counters"]
    assert counters["txs_delivered"] == 1
    assert counters["txs_failed"] == 1
    assert counters["txs_simulated"] == 1


def test_sqlite_persists_commits(tmp_path: Path, keys) -> None:
    db_path = str(tmp_path / "chain.db")
    net = new_network(with_db_path(db_path))

    assert net.broadcast_tx_sync(_send(net, keys[0], keys[1].address, 7, sequence=0)).ok
    net.next_block()

    restarted = LedgerApp(chain_id=net.get_chain_id(), db_path=db_path)
    assert restarted.last_block_height() == 2
    assert restarted.last_commit_id() == net.app.last_commit_id()
    assert restarted.query_balance(keys[1].address, "aint") == PREFUNDED_ACCOUNT_INITIAL_BALANCE + 7

    store = SqliteAppStore(db=SqliteDB(path=db_path))
    assert store.exists()
    assert store.max_height() == 2

    blk = restarted.get_block(2)
    assert blk is not None
    assert blk["num_txs"] == 1
    assert blk["header"]["height"] == 2

    with pytest.raises(RuntimeError):
        LedgerApp(chain_id="other_1-1", db_path=db_path)

    with pytest.raises(BootstrapError) as e:
        new_network(with_db_path(db_path))
    assert e.value.code == "init_chain_failed"
