# src/integnet/ledger/constants.py
from __future__ import annotations

"""Genesis fixture constants for the integration network.

Builders take these as explicit keyword arguments; the values below are only
the defaults.
"""

# Tokens per unit of consensus power (18 decimals, EVM-style denominations).
POWER_REDUCTION: int = 10**18


def tokens_from_consensus_power(power: int, power_reduction: int = POWER_REDUCTION) -> int:
    return int(power) * int(power_reduction)


def consensus_power_from_tokens(tokens: int, power_reduction: int = POWER_REDUCTION) -> int:
    return int(tokens) // int(power_reduction)


# Amount every validator has bonded at genesis: one unit of consensus power.
BONDED_AMOUNT: int = tokens_from_consensus_power(1, POWER_REDUCTION)

# Amount every pre-funded account holds at genesis.
PREFUNDED_ACCOUNT_INITIAL_BALANCE: int = 4 * 10**18

# Module accounts
BONDED_POOL_NAME: str = "bonded_tokens_pool"
NOT_BONDED_POOL_NAME: str = "not_bonded_tokens_pool"
FEE_COLLECTOR_NAME: str = "fee_collector"
MODULE_ACCOUNT_NAMES = (FEE_COLLECTOR_NAME, BONDED_POOL_NAME, NOT_BONDED_POOL_NAME)

BOND_STATUS_BONDED: str = "BOND_STATUS_BONDED"

# Address prefixes
ACCOUNT_ADDRESS_PREFIX: str = "int1"
VALOPER_ADDRESS_PREFIX: str = "intvaloper1"
ADDRESS_LENGTH_BYTES: int = 20

# Gas schedule
DEFAULT_GAS_LIMIT: int = 200_000
TX_SIZE_COST_PER_BYTE: int = 10
SIG_VERIFY_COST_ED25519: int = 590
READ_COST_FLAT: int = 1_000
READ_COST_PER_BYTE: int = 3
WRITE_COST_FLAT: int = 2_000
WRITE_COST_PER_BYTE: int = 30

# Inflation defaults (module installed but disabled in the harness)
INFLATION_EPOCH_IDENTIFIER: str = "day"
INFLATION_EPOCHS_PER_PERIOD: int = 365
