from __future__ import annotations

import pytest

from integnet.crypto.address import module_address
from integnet.genesis.builder import (
    add_bonded_module_account_to_funded_balances,
    build_genesis_fragments,
    calculate_total_supply,
    create_balances,
)
from integnet.ledger.constants import BONDED_AMOUNT, BONDED_POOL_NAME, PREFUNDED_ACCOUNT_INITIAL_BALANCE
from integnet.ledger.types import Balance, Coin
from integnet.runtime.errors import ConfigurationError
from integnet.runtime.network_config import (
    apply_options,
    default_config,
    with_amount_of_validators,
    with_denom,
    with_pre_funded_accounts,
)
from integnet.testing.keyring import addresses, new_keyring


def _cfg(validators: int, accounts: int, denom: str = "aint"):
    return apply_options(
        default_config(),
        with_amount_of_validators(validators),
        with_pre_funded_accounts(*addresses(new_keyring(accounts))),
        with_denom(denom),
    )


def test_single_validator_single_account_supply() -> None:
    addr1 = addresses(new_keyring(1))[0]
    cfg = apply_options(
        default_config(),
        with_amount_of_validators(1),
        with_pre_funded_accounts(addr1),
        with_denom("test"),
    )

    frag = build_genesis_fragments(cfg)

    assert frag.total_supply == [Coin(denom="test", amount=4 * 10**18 + BONDED_AMOUNT)]


@pytest.mark.parametrize("validators", [1, 2, 5])
@pytest.mark.parametrize("accounts", [1, 3])
def test_supply_equals_sum_of_balances(validators: int, accounts: int) -> None:
    frag = build_genesis_fragments(_cfg(validators, accounts))

    total = sum(b.amount_of("aint") for b in frag.balances)
    assert frag.total_supply == [Coin(denom="aint", amount=total)]
    assert total == accounts * PREFUNDED_ACCOUNT_INITIAL_BALANCE + validators * BONDED_AMOUNT


@pytest.mark.parametrize("validators", [1, 4])
def test_one_delegation_per_validator_from_first_account(validators: int) -> None:
    cfg = _cfg(validators, 2)
    frag = build_genesis_fragments(cfg)

    assert len(frag.delegations) == validators
    assert {d.delegator_address for d in frag.delegations} == {cfg.pre_funded_accounts[0]}
    assert [d.validator_address for d in frag.delegations] == [v.operator_address for v in frag.validators]
    assert {d.shares for d in frag.delegations} == {BONDED_AMOUNT}


def test_accounts_and_balances_follow_config_order() -> None:
    cfg = _cfg(2, 3)
    frag = build_genesis_fragments(cfg)

    assert [a.address for a in frag.accounts] == cfg.pre_funded_accounts
    assert [a.account_number for a in frag.accounts] == [0, 1, 2]

    # Pre-funded accounts first, then the bonded pool.
    assert [b.address for b in frag.balances[:3]] == cfg.pre_funded_accounts
    assert all(b.amount_of("aint") == PREFUNDED_ACCOUNT_INITIAL_BALANCE for b in frag.balances[:3])

    pool = frag.balances[-1]
    assert pool.address == module_address(BONDED_POOL_NAME)
    assert pool.amount_of("aint") == 2 * BONDED_AMOUNT


def test_validators_are_bonded_with_equal_tokens() -> None:
    frag = build_genesis_fragments(_cfg(3, 1))

    assert len(frag.validators) == 3
    assert [v.consensus_pubkey for v in frag.validators] == [v.pub_key for v in frag.validator_set.validators]
    assert {v.tokens for v in frag.validators} == {BONDED_AMOUNT}
    assert {v.status for v in frag.validators} == {"BOND_STATUS_BONDED"}
    assert all(v.operator_address.startswith("intvaloper1") for v in frag.validators)


def test_fragments_are_deterministic() -> None:
    assert build_genesis_fragments(_cfg(3, 2)) == build_genesis_fragments(_cfg(3, 2))


def test_explicit_amounts_override_constants() -> None:
    frag = build_genesis_fragments(_cfg(2, 1), prefunded_balance=7, bonded_amount=3 * 10**18)

    assert frag.balances[0].amount_of("aint") == 7
    assert frag.balances[-1].amount_of("aint") == 6 * 10**18
    assert [v.voting_power for v in frag.validator_set.validators] == [3, 3]


def test_zero_validators_fails_before_anything_is_built() -> None:
    with pytest.raises(ConfigurationError) as e:
        build_genesis_fragments(_cfg(0, 1))
    assert e.value.code == "invalid_validator_count"


def test_pool_must_be_added_before_supply() -> None:
    accts = addresses(new_keyring(2))
    balances = create_balances(accts, Coin(denom="aint", amount=5))

    before = calculate_total_supply(balances)
    after = calculate_total_supply(
        add_bonded_module_account_to_funded_balances(balances, Coin(denom="aint", amount=3))
    )

    assert before == [Coin(denom="aint", amount=10)]
    assert after == [Coin(denom="aint", amount=13)]


def test_total_supply_is_per_denom_and_sorted() -> None:
    balances = [
        Balance(address="a", coins=(Coin(denom="zeta", amount=1), Coin(denom="alpha", amount=2))),
        Balance(address="b", coins=(Coin(denom="alpha", amount=3),)),
    ]
    assert calculate_total_supply(balances) == [Coin(denom="alpha", amount=5), Coin(denom="zeta", amount=1)]


def test_balance_rejects_duplicate_denoms() -> None:
    with pytest.raises(ValueError):
        Balance(address="a", coins=(Coin(denom="aint", amount=1), Coin(denom="aint", amount=2)))
