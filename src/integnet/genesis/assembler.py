# src/integnet/genesis/assembler.py
from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from integnet.crypto.address import module_address
from integnet.genesis.builder import GenesisFragments, calculate_total_supply
from integnet.ledger.constants import (
    BONDED_POOL_NAME,
    INFLATION_EPOCH_IDENTIFIER,
    INFLATION_EPOCHS_PER_PERIOD,
)
from integnet.ledger.types import Balance, Coin, Delegation, GenesisAccount, StakingValidator, coins_to_json
from integnet.runtime.errors import ConstructionError, SerializationError
from integnet.runtime.structured_logging import log_event

Json = Dict[str, Any]

log = logging.getLogger("integnet.genesis")


@dataclass(frozen=True)
class StakingCustomGenesisState:
    denom: str
    validators: List[StakingValidator]
    delegations: List[Delegation]


@dataclass(frozen=True)
class BankCustomGenesisState:
    total_supply: List[Coin]
    balances: List[Balance]


def new_default_genesis_state() -> Json:
    """Module-keyed default genesis; the setters below overwrite the parts the network controls."""
    return {
        "auth": {
            "params": {
                "max_memo_characters": "256",
                "tx_sig_limit": "7",
                "tx_size_cost_per_byte": "10",
                "sig_verify_cost_ed25519": "590",
            },
            "accounts": [],
        },
        "bank": {
            "params": {"send_enabled": [], "default_send_enabled": True},
            "balances": [],
            "supply": [],
            "denom_metadata": [],
        },
        "staking": {
            "params": {
                "unbonding_time": "1814400s",
                "max_validators": 100,
                "max_entries": 7,
                "historical_entries": 10000,
                "bond_denom": "stake",
                "min_commission_rate": "0",
            },
            "last_total_power": "0",
            "last_validator_powers": [],
            "validators": [],
            "delegations": [],
            "unbonding_delegations": [],
            "redelegations": [],
            "exported": False,
        },
        "inflation": {
            "params": default_inflation_params("stake"),
            "period": "0",
            "epoch_identifier": INFLATION_EPOCH_IDENTIFIER,
            "epochs_per_period": str(INFLATION_EPOCHS_PER_PERIOD),
            "skipped_epochs": "0",
        },
        "distribution": {
            "params": {"community_tax": "0.02", "withdraw_addr_enabled": True},
            "fee_pool": {"community_pool": []},
        },
        "slashing": {
            "params": {
                "signed_blocks_window": "100",
                "min_signed_per_window": "0.5",
                "downtime_jail_duration": "600s",
                "slash_fraction_double_sign": "0.05",
                "slash_fraction_downtime": "0.01",
            },
            "signing_infos": [],
            "missed_blocks": [],
        },
    }


def default_inflation_params(mint_denom: str) -> Json:
    return {
        "mint_denom": mint_denom,
        "exponential_calculation": {
            "a": "300000000",
            "r": "0.5",
            "c": "9375000",
            "bonding_target": "0.66",
            "max_variance": "0",
        },
        "inflation_distribution": {
            "staking_rewards": "0.533333334",
            "usage_incentives": "0.333333333",
            "community_pool": "0.133333333",
        },
        "enable_inflation": True,
    }


def set_auth_genesis_state(genesis_state: Json, accounts: Sequence[GenesisAccount]) -> Json:
    auth = genesis_state.setdefault("auth", {})
    auth["accounts"] = [a.to_json() for a in accounts]
    return genesis_state


def set_staking_genesis_state(genesis_state: Json, overwrite: StakingCustomGenesisState) -> Json:
    staking = genesis_state.setdefault("staking", {})
    params = staking.setdefault("params", {})
    params["bond_denom"] = overwrite.denom

    staking["validators"] = [v.to_json() for v in overwrite.validators]
    staking["delegations"] = [d.to_json() for d in overwrite.delegations]
    return genesis_state


def set_inflation_genesis_state(genesis_state: Json, denom: str) -> Json:
    # Inflation stays off so the supply equals the genesis sum for the whole test.
    params = default_inflation_params(denom)
    params["enable_inflation"] = False
    inflation = genesis_state.setdefault("inflation", {})
    inflation["params"] = params
    inflation["period"] = "0"
    inflation["epoch_identifier"] = INFLATION_EPOCH_IDENTIFIER
    inflation["epochs_per_period"] = str(INFLATION_EPOCHS_PER_PERIOD)
    inflation["skipped_epochs"] = "0"
    return genesis_state


def set_bank_genesis_state(genesis_state: Json, overwrite: BankCustomGenesisState) -> Json:
    bank = genesis_state.setdefault("bank", {})
    bank["balances"] = [b.to_json() for b in overwrite.balances]
    bank["supply"] = coins_to_json(overwrite.total_supply)
    return genesis_state


def check_fragments_consistency(fragments: GenesisFragments) -> None:
    """Cross-module referential and numeric checks; fail closed."""
    account_addrs = {a.address for a in fragments.accounts}
    validator_addrs = [v.operator_address for v in fragments.validators]

    if len(set(validator_addrs)) != len(validator_addrs):
        raise ConstructionError("duplicate_validator", "validator operator addresses are not unique")
    if len(fragments.validators) != len(fragments.validator_set):
        raise ConstructionError(
            "validator_count_mismatch",
            "staking validators and consensus validator set differ in size",
            {"staking": len(fragments.validators), "consensus": len(fragments.validator_set)},
        )

    known = set(validator_addrs)
    for d in fragments.delegations:
        if d.validator_address not in known:
            raise ConstructionError("unknown_validator", "delegation references unknown validator", d.to_json())
        if d.delegator_address not in account_addrs:
            raise ConstructionError("unknown_delegator", "delegation references unknown account", d.to_json())

    per_validator = Counter(d.validator_address for d in fragments.delegations)
    dup = [addr for addr, n in per_validator.items() if n > 1]
    if dup:
        raise ConstructionError("duplicate_delegation", "more than one genesis delegation per validator", dup)

    pool_addr = module_address(BONDED_POOL_NAME)
    pool = [b for b in fragments.balances if b.address == pool_addr]
    if len(pool) != 1:
        raise ConstructionError("missing_bonded_pool", "bonded pool balance must be present exactly once")
    total_tokens = sum(int(v.tokens) for v in fragments.validators)
    if pool[0].amount_of(fragments.denom) != total_tokens:
        raise ConstructionError(
            "bonded_pool_mismatch",
            "bonded pool balance does not equal bonded validator tokens",
            {"pool": str(pool[0].amount_of(fragments.denom)), "tokens": str(total_tokens)},
        )

    if calculate_total_supply(fragments.balances) != list(fragments.total_supply):
        raise ConstructionError("supply_mismatch", "total supply does not equal the sum of balances")


def assemble_genesis(fragments: GenesisFragments) -> Json:
    """Merge fragments into one module-keyed document.

    Order: auth -> staking -> inflation -> bank. Bank goes last because its
    balances carry the bonded pool entry derived from the staking set.
    """
    check_fragments_consistency(fragments)

    genesis_state = new_default_genesis_state()
    genesis_state = set_auth_genesis_state(genesis_state, fragments.accounts)
    genesis_state = set_staking_genesis_state(
        genesis_state,
        StakingCustomGenesisState(
            denom=fragments.denom,
            validators=fragments.validators,
            delegations=fragments.delegations,
        ),
    )
    genesis_state = set_inflation_genesis_state(genesis_state, fragments.denom)
    genesis_state = set_bank_genesis_state(
        genesis_state,
        BankCustomGenesisState(total_supply=fragments.total_supply, balances=fragments.balances),
    )

    log_event(
        log,
        "genesis_assembled",
        accounts=len(fragments.accounts),
        validators=len(fragments.validators),
        supply=coins_to_json(fragments.total_supply),
    )
    return genesis_state


def serialize_genesis(genesis_state: Json) -> bytes:
    """Indented JSON with sorted keys; byte-identical for identical input."""
    try:
        text = json.dumps(genesis_state, indent=1, sort_keys=True, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationError("genesis_encode_failed", str(e)) from e
    return text.encode("utf-8")
