# src/integnet/genesis/validators.py
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import List, Sequence

from integnet.crypto.address import consensus_address
from integnet.crypto.sig import canonical_json, deterministic_ed25519_keypair
from integnet.ledger.constants import BONDED_AMOUNT, POWER_REDUCTION, consensus_power_from_tokens
from integnet.ledger.types import ConsensusValidator
from integnet.runtime.errors import ConfigurationError


def _leaf_hash(leaf: bytes) -> bytes:
    return hashlib.sha256(b"\x00" + leaf).digest()


def _inner_hash(left: bytes, right: bytes) -> bytes:
    return hashlib.sha256(b"\x01" + left + right).digest()


def merkle_root(items: Sequence[bytes]) -> bytes:
    """RFC 6962 style Merkle root; the split point is the largest power of two < n."""
    n = len(items)
    if n == 0:
        return hashlib.sha256(b"").digest()
    if n == 1:
        return _leaf_hash(items[0])
    k = 1
    while k * 2 < n:
        k *= 2
    return _inner_hash(merkle_root(items[:k]), merkle_root(items[k:]))


@dataclass(frozen=True, slots=True)
class ValidatorSet:
    validators: tuple[ConsensusValidator, ...]
    proposer: ConsensusValidator

    def __len__(self) -> int:
        return len(self.validators)

    def total_voting_power(self) -> int:
        return sum(int(v.voting_power) for v in self.validators)

    def hash(self) -> str:
        """Merkle root over each validator's (pub_key, voting_power) encoding, hex."""
        leaves = [
            canonical_json({"pub_key": v.pub_key, "voting_power": int(v.voting_power)}).encode("utf-8")
            for v in self.validators
        ]
        return merkle_root(leaves).hex().upper()


def create_validator_set(
    amount_of_validators: int,
    *,
    bonded_amount: int = BONDED_AMOUNT,
    power_reduction: int = POWER_REDUCTION,
    label_prefix: str = "validator",
) -> ValidatorSet:
    """Create N validators with deterministic keys and equal voting power.

    The proposer is the first validator in creation order.
    """
    if isinstance(amount_of_validators, bool) or not isinstance(amount_of_validators, int):
        raise ConfigurationError("invalid_validator_count", "amount_of_validators must be an int")
    if amount_of_validators < 1:
        raise ConfigurationError(
            "invalid_validator_count",
            f"amount_of_validators must be >= 1; got: {amount_of_validators}",
        )

    power = consensus_power_from_tokens(bonded_amount, power_reduction)
    if power < 1:
        raise ConfigurationError(
            "invalid_bonded_amount",
            f"bonded amount {bonded_amount} is below one unit of consensus power",
        )

    vals: List[ConsensusValidator] = []
    for i in range(amount_of_validators):
        pubkey, _ = deterministic_ed25519_keypair(label=f"{label_prefix}-{i}")
        vals.append(ConsensusValidator(address=consensus_address(pubkey), pub_key=pubkey, voting_power=power))

    return ValidatorSet(validators=tuple(vals), proposer=vals[0])
