"""integnet.ledger.types

Genesis data model: coins, balances, accounts, consensus validators, staking
validators and delegations.

Every type renders to the JSON shape the runtime consumes via `to_json()`.
Integer amounts are encoded as decimal strings so they survive JSON
round-trips without precision loss.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from integnet.ledger.constants import BOND_STATUS_BONDED

Json = Dict[str, Any]


def _coerce_amount(v: Any, *, field: str) -> int:
    # bool is an int subclass; disallow it explicitly
    if isinstance(v, bool):
        raise ValueError(f"field '{field}' must be an integer amount (got bool)")
    try:
        n = int(v)
    except (TypeError, ValueError) as e:
        raise ValueError(f"field '{field}' must be an integer amount (got {type(v).__name__})") from e
    if n < 0:
        raise ValueError(f"field '{field}' must be non-negative (got {n})")
    return n


@dataclass(frozen=True, slots=True)
class Coin:
    denom: str
    amount: int

    def to_json(self) -> Json:
        return {"denom": self.denom, "amount": str(int(self.amount))}

    @classmethod
    def from_json(cls, j: Any) -> "Coin":
        if not isinstance(j, dict):
            raise ValueError("coin must be an object")
        denom = str(j.get("denom") or "").strip()
        if not denom:
            raise ValueError("coin denom must be non-empty")
        return cls(denom=denom, amount=_coerce_amount(j.get("amount"), field="amount"))


def coins_to_json(coins: Iterable[Coin]) -> List[Json]:
    return [c.to_json() for c in coins]


def coins_from_json(raw: Any) -> List[Coin]:
    if not isinstance(raw, list):
        raise ValueError("coins must be a list")
    return [Coin.from_json(c) for c in raw]


def merge_coins(coins: Iterable[Coin]) -> List[Coin]:
    """Combine amounts per denomination, keeping first-seen denomination order."""
    totals: Dict[str, int] = {}
    for c in coins:
        totals[c.denom] = totals.get(c.denom, 0) + int(c.amount)
    return [Coin(denom=d, amount=a) for d, a in totals.items()]


@dataclass(frozen=True, slots=True)
class Balance:
    """Coins held by one address; at most one entry per denomination."""

    address: str
    coins: tuple[Coin, ...]

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for c in self.coins:
            if c.denom in seen:
                raise ValueError(f"duplicate denom {c.denom!r} in balance of {self.address}")
            seen.add(c.denom)

    def amount_of(self, denom: str) -> int:
        for c in self.coins:
            if c.denom == denom:
                return int(c.amount)
        return 0

    def to_json(self) -> Json:
        return {"address": self.address, "coins": coins_to_json(self.coins)}


@dataclass(frozen=True, slots=True)
class GenesisAccount:
    address: str
    account_number: int
    sequence: int = 0
    pub_key: Optional[str] = None

    def to_json(self) -> Json:
        return {
            "address": self.address,
            "pub_key": self.pub_key,
            "account_number": str(int(self.account_number)),
            "sequence": str(int(self.sequence)),
        }


@dataclass(frozen=True, slots=True)
class ConsensusValidator:
    """A validator as the consensus engine sees it: key + voting power."""

    address: str
    pub_key: str
    voting_power: int
    proposer_priority: int = 0

    def to_json(self) -> Json:
        return {
            "address": self.address,
            "pub_key": {"type": "ed25519", "value": self.pub_key},
            "voting_power": str(int(self.voting_power)),
            "proposer_priority": str(int(self.proposer_priority)),
        }


@dataclass(frozen=True, slots=True)
class Commission:
    rate: str = "0"
    max_rate: str = "0"
    max_change_rate: str = "0"

    def to_json(self) -> Json:
        return {
            "commission_rates": {
                "rate": self.rate,
                "max_rate": self.max_rate,
                "max_change_rate": self.max_change_rate,
            },
            "update_time": "1970-01-01T00:00:00Z",
        }


@dataclass(frozen=True, slots=True)
class StakingValidator:
    """A validator as the staking module records it."""

    operator_address: str
    consensus_pubkey: str
    tokens: int
    delegator_shares: int
    status: str = BOND_STATUS_BONDED
    jailed: bool = False
    moniker: str = ""
    commission: Commission = field(default_factory=Commission)
    min_self_delegation: int = 0

    def to_json(self) -> Json:
        return {
            "operator_address": self.operator_address,
            "consensus_pubkey": {"type": "ed25519", "value": self.consensus_pubkey},
            "jailed": bool(self.jailed),
            "status": self.status,
            "tokens": str(int(self.tokens)),
            "delegator_shares": str(int(self.delegator_shares)),
            "description": {"moniker": self.moniker},
            "unbonding_height": "0",
            "unbonding_time": "1970-01-01T00:00:00Z",
            "commission": self.commission.to_json(),
            "min_self_delegation": str(int(self.min_self_delegation)),
        }


@dataclass(frozen=True, slots=True)
class Delegation:
    delegator_address: str
    validator_address: str
    shares: int

    def to_json(self) -> Json:
        return {
            "delegator_address": self.delegator_address,
            "validator_address": self.validator_address,
            "shares": str(int(self.shares)),
        }


__all__ = [
    "Json",
    "Coin",
    "coins_to_json",
    "coins_from_json",
    "merge_coins",
    "Balance",
    "GenesisAccount",
    "ConsensusValidator",
    "Commission",
    "StakingValidator",
    "Delegation",
]
