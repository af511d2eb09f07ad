from __future__ import annotations

import dataclasses
import json
import logging

import pytest

from integnet.genesis.assembler import assemble_genesis, check_fragments_consistency, serialize_genesis
from integnet.genesis.builder import build_genesis_fragments
from integnet.ledger.types import Coin, Delegation
from integnet.runtime.errors import ConstructionError, SerializationError
from integnet.runtime.network_config import apply_options, default_config, with_amount_of_validators, with_denom


def _fragments(validators: int = 3, denom: str = "aint"):
    return build_genesis_fragments(
        apply_options(default_config(), with_amount_of_validators(validators), with_denom(denom))
    )


def test_assembled_document_carries_every_module() -> None:
    frag = _fragments(denom="utest")
    gs = assemble_genesis(frag)

    assert {"auth", "bank", "staking", "inflation", "distribution", "slashing"} <= set(gs)

    assert [a["address"] for a in gs["auth"]["accounts"]] == [a.address for a in frag.accounts]
    assert gs["staking"]["params"]["bond_denom"] == "utest"
    assert len(gs["staking"]["validators"]) == 3
    assert len(gs["staking"]["delegations"]) == 3

    assert gs["inflation"]["params"]["mint_denom"] == "utest"
    assert gs["inflation"]["params"]["enable_inflation"] is False

    assert gs["bank"]["supply"] == [c.to_json() for c in frag.total_supply]
    assert len(gs["bank"]["balances"]) == len(frag.balances)


def test_bank_supply_matches_balances_in_document() -> None:
    gs = assemble_genesis(_fragments(4))

    total = 0
    for b in gs["bank"]["balances"]:
        for c in b["coins"]:
            total += int(c["amount"])
    assert gs["bank"]["supply"] == [{"denom": "aint", "amount": str(total)}]


def test_serialization_is_indented_sorted_and_stable() -> None:
    a = serialize_genesis(assemble_genesis(_fragments()))
    b = serialize_genesis(assemble_genesis(_fragments()))

    assert a == b
    assert b'\n "auth": {' in a

    decoded = json.loads(a)
    assert list(decoded) == sorted(decoded)
    assert decoded == assemble_genesis(_fragments())


@pytest.mark.parametrize("bad", [{"x": {1, 2}}, {"x": float("nan")}])
def test_unencodable_state_raises_serialization_error(bad) -> None:
    with pytest.raises(SerializationError) as e:
        serialize_genesis(bad)
    assert e.value.code == "genesis_encode_failed"


def test_cyclic_state_raises_serialization_error() -> None:
    state: dict = {}
    state["self"] = state
    with pytest.raises(SerializationError):
        serialize_genesis(state)


def test_delegation_to_unknown_validator_is_rejected() -> None:
    frag = _fragments(2)
    stray = Delegation(
        delegator_address=frag.accounts[0].address,
        validator_address="intvaloper1" + "00" * 20,
        shares=1,
    )
    bad = dataclasses.replace(frag, delegations=[frag.delegations[0], stray])

    with pytest.raises(ConstructionError) as e:
        assemble_genesis(bad)
    assert e.value.code == "unknown_validator"


def test_delegation_from_unknown_account_is_rejected() -> None:
    frag = _fragments(1)
    d = frag.delegations[0]
    stray = Delegation(delegator_address="int1" + "ab" * 20, validator_address=d.validator_address, shares=d.shares)

    with pytest.raises(ConstructionError) as e:
        check_fragments_consistency(dataclasses.replace(frag, delegations=[stray]))
    assert e.value.code == "unknown_delegator"


def test_supply_drift_is_rejected() -> None:
    frag = _fragments(2)
    drifted = [Coin(denom=c.denom, amount=c.amount + 1) for c in frag.total_supply]

    with pytest.raises(ConstructionError) as e:
        check_fragments_consistency(dataclasses.replace(frag, total_supply=drifted))
    assert e.value.code == "supply_mismatch"


def test_missing_bonded_pool_is_rejected() -> None:
    frag = _fragments(2)

    with pytest.raises(ConstructionError) as e:
        check_fragments_consistency(dataclasses.replace(frag, balances=frag.balances[:-1]))
    assert e.value.code == "missing_bonded_pool"


def test_validator_count_mismatch_is_rejected() -> None:
    frag = _fragments(3)

    with pytest.raises(ConstructionError) as e:
        check_fragments_consistency(
            dataclasses.replace(frag, validators=frag.validators[:2], delegations=frag.delegations[:2])
        )
    assert e.value.code == "validator_count_mismatch"


def test_assembly_logs_event(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="integnet.genesis"):
        assemble_genesis(_fragments(1))

    msgs = [r.getMessage() for r in caplog.records if r.name == "integnet.genesis"]
    assert any('"event":"genesis_assembled"' in m for m in msgs)
