# src/integnet/genesis/builder.py
from __future__ import annotations

"""Pure construction of per-module genesis fragments.

Nothing here touches the runtime: every function is a deterministic function
of its arguments, so identical configuration yields identical fragments.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence

from integnet.crypto.address import module_address, valoper_address
from integnet.genesis.validators import ValidatorSet, create_validator_set
from integnet.ledger.constants import (
    BONDED_AMOUNT,
    BONDED_POOL_NAME,
    POWER_REDUCTION,
    PREFUNDED_ACCOUNT_INITIAL_BALANCE,
)
from integnet.ledger.types import (
    Balance,
    Coin,
    ConsensusValidator,
    Delegation,
    GenesisAccount,
    StakingValidator,
)
from integnet.runtime.errors import ConfigurationError, ConstructionError
from integnet.runtime.network_config import NetworkConfig, validate_network_config


@dataclass(frozen=True)
class GenesisFragments:
    """Everything the assembler needs, already mutually consistent."""

    denom: str
    accounts: List[GenesisAccount]
    balances: List[Balance]  # includes the bonded pool entry
    validator_set: ValidatorSet
    validators: List[StakingValidator]
    delegations: List[Delegation]
    total_supply: List[Coin]
    bonded_amount: int


def create_genesis_accounts(addresses: Sequence[str]) -> List[GenesisAccount]:
    return [GenesisAccount(address=addr, account_number=i) for i, addr in enumerate(addresses)]


def create_balances(addresses: Sequence[str], coin: Coin) -> List[Balance]:
    return [Balance(address=addr, coins=(coin,)) for addr in addresses]


def create_staking_validators(
    validators: Sequence[ConsensusValidator],
    bonded_amount: int,
) -> List[StakingValidator]:
    out: List[StakingValidator] = []
    for i, v in enumerate(validators):
        if not v.pub_key or not v.address:
            raise ConstructionError("invalid_validator", "validator without consensus key", {"index": i})
        out.append(
            StakingValidator(
                operator_address=valoper_address(v.address),
                consensus_pubkey=v.pub_key,
                tokens=int(bonded_amount),
                delegator_shares=int(bonded_amount),
                moniker=f"validator-{i}",
            )
        )
    return out


def create_delegations(
    validators: Sequence[StakingValidator],
    from_address: str,
    bonded_amount: int,
) -> List[Delegation]:
    """One delegation per validator, all from the same delegator."""
    return [
        Delegation(delegator_address=from_address, validator_address=v.operator_address, shares=int(bonded_amount))
        for v in validators
    ]


def add_bonded_module_account_to_funded_balances(balances: Sequence[Balance], total_bonded: Coin) -> List[Balance]:
    """Return balances with the bonded pool entry appended.

    Must run before the total supply is computed.
    """
    out = list(balances)
    out.append(Balance(address=module_address(BONDED_POOL_NAME), coins=(total_bonded,)))
    return out


def calculate_total_supply(balances: Sequence[Balance]) -> List[Coin]:
    """Exact per-denomination sum over all balances, sorted by denomination."""
    totals: Dict[str, int] = {}
    for bal in balances:
        for c in bal.coins:
            totals[c.denom] = totals.get(c.denom, 0) + int(c.amount)
    return [Coin(denom=d, amount=totals[d]) for d in sorted(totals)]


def build_genesis_fragments(
    cfg: NetworkConfig,
    *,
    prefunded_balance: int = PREFUNDED_ACCOUNT_INITIAL_BALANCE,
    bonded_amount: int = BONDED_AMOUNT,
    power_reduction: int = POWER_REDUCTION,
) -> GenesisFragments:
    validate_network_config(cfg)
    if not cfg.pre_funded_accounts:
        raise ConfigurationError("no_pre_funded_accounts", "the first pre-funded account is the genesis delegator")

    coin = Coin(denom=cfg.denom, amount=int(prefunded_balance))
    accounts = create_genesis_accounts(cfg.pre_funded_accounts)
    balances = create_balances(cfg.pre_funded_accounts, coin)

    val_set = create_validator_set(
        cfg.amount_of_validators,
        bonded_amount=bonded_amount,
        power_reduction=power_reduction,
    )
    total_bonded = int(bonded_amount) * len(val_set)

    validators = create_staking_validators(val_set.validators, bonded_amount)
    balances = add_bonded_module_account_to_funded_balances(balances, Coin(denom=cfg.denom, amount=total_bonded))
    delegations = create_delegations(validators, accounts[0].address, bonded_amount)

    return GenesisFragments(
        denom=cfg.denom,
        accounts=accounts,
        balances=balances,
        validator_set=val_set,
        validators=validators,
        delegations=delegations,
        total_supply=calculate_total_supply(balances),
        bonded_amount=int(bonded_amount),
    )
