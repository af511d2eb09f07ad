from __future__ import annotations

import json

import pytest

from integnet.genesis.validators import create_validator_set
from integnet.runtime.abci import (
    Header,
    RequestBeginBlock,
    RequestDeliverTx,
    RequestInitChain,
    ValidatorUpdate,
    default_consensus_params,
)
from integnet.runtime.app import LedgerApp, compute_app_hash
from integnet.runtime.bootstrap import ChainBootstrapper, configure_and_init_chain
from integnet.runtime.network_config import default_config

CHAIN_ID = "integnet_9000-1"


def _genesis_bytes() -> bytes:
    _, b = ChainBootstrapper(LedgerApp(chain_id=CHAIN_ID), default_config()).build_genesis()
    return b


def _init_req(app_state: bytes, *, chain_id: str = CHAIN_ID, validators=None) -> RequestInitChain:
    return RequestInitChain(
        chain_id=chain_id,
        validators=list(validators or []),
        consensus_params=default_consensus_params(),
        app_state_bytes=app_state,
    )


def test_init_chain_returns_genesis_validators() -> None:
    app = LedgerApp(chain_id=CHAIN_ID)
    res = app.init_chain(_init_req(_genesis_bytes()))

    vs = create_validator_set(3)
    assert res.validators == [ValidatorUpdate(pub_key=v.pub_key, power=1) for v in vs.validators]
    assert app.last_block_height() == 0


def test_init_chain_accepts_matching_validators_and_rejects_others() -> None:
    vs = create_validator_set(3)
    matching = [ValidatorUpdate(pub_key=v.pub_key, power=1) for v in reversed(vs.validators)]
    LedgerApp(chain_id=CHAIN_ID).init_chain(_init_req(_genesis_bytes(), validators=matching))

    wrong = [ValidatorUpdate(pub_key=vs.validators[0].pub_key, power=5)]
    with pytest.raises(ValueError):
        LedgerApp(chain_id=CHAIN_ID).init_chain(_init_req(_genesis_bytes(), validators=wrong))


def test_init_chain_rejects_chain_id_mismatch_and_reinit() -> None:
    app = LedgerApp(chain_id=CHAIN_ID)
    with pytest.raises(ValueError):
        app.init_chain(_init_req(_genesis_bytes(), chain_id="other_1-1"))

    app.init_chain(_init_req(_genesis_bytes()))
    with pytest.raises(RuntimeError):
        app.init_chain(_init_req(_genesis_bytes()))


def test_init_chain_rejects_wrong_supply() -> None:
    gs = json.loads(_genesis_bytes())
    gs["bank"]["supply"][0]["amount"] = str(int(gs["bank"]["supply"][0]["amount"]) + 1)

    with pytest.raises(ValueError, match="supply"):
        LedgerApp(chain_id=CHAIN_ID).init_chain(_init_req(json.dumps(gs).encode("utf-8")))


def test_init_chain_rejects_bonded_pool_mismatch() -> None:
    gs = json.loads(_genesis_bytes())
    gs["staking"]["validators"][0]["tokens"] = "1"

    with pytest.raises(ValueError, match="bonded pool"):
        LedgerApp(chain_id=CHAIN_ID).init_chain(_init_req(json.dumps(gs).encode("utf-8")))


def test_init_chain_rejects_non_json() -> None:
    with pytest.raises(ValueError):
        LedgerApp(chain_id=CHAIN_ID).init_chain(_init_req(b"not json"))


def test_lifecycle_order_is_enforced() -> None:
    app = LedgerApp(chain_id=CHAIN_ID)
    with pytest.raises(RuntimeError):
        app.commit()

    app.init_chain(_init_req(_genesis_bytes()))
    with pytest.raises(RuntimeError):
        app.deliver_tx(RequestDeliverTx(tx=b"{}"))
    with pytest.raises(RuntimeError):
        app.end_block()

    cid = app.commit()
    assert cid.version == 1

    bad = Header(
        chain_id=CHAIN_ID,
        height=5,
        app_hash=cid.hash,
        validators_hash="",
        next_validators_hash="",
        proposer_address="",
    )
    with pytest.raises(ValueError):
        app.begin_block(RequestBeginBlock(header=bad))


def test_app_hash_is_deterministic_across_instances() -> None:
    vs = create_validator_set(3)
    genesis = _genesis_bytes()

    a, b = LedgerApp(chain_id=CHAIN_ID), LedgerApp(chain_id=CHAIN_ID)
    _, ha = configure_and_init_chain(a, chain_id=CHAIN_ID, genesis_bytes=genesis, validator_set=vs)
    _, hb = configure_and_init_chain(b, chain_id=CHAIN_ID, genesis_bytes=genesis, validator_set=vs)

    assert ha.app_hash == hb.app_hash
    assert len(ha.app_hash) == 64


def test_compute_app_hash_ignores_previous_hash() -> None:
    st = {"height": 1, "balances": {"a": {"x": 1}}}
    assert compute_app_hash(st) == compute_app_hash(dict(st, app_hash="ABC"))
    assert compute_app_hash(st) != compute_app_hash(dict(st, height=2))


def test_end_block_reports_no_changes_without_txs() -> None:
    app = LedgerApp(chain_id=CHAIN_ID)
    configure_and_init_chain(
        app, chain_id=CHAIN_ID, genesis_bytes=_genesis_bytes(), validator_set=create_validator_set(3)
    )
    assert app.end_block() == []
