# src/integnet/runtime/network_config.py
from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional

from integnet.crypto.address import is_account_address, module_address
from integnet.ledger.constants import MODULE_ACCOUNT_NAMES
from integnet.runtime.errors import ConfigurationError
from integnet.testing.keyring import addresses, new_keyring

DEFAULT_CHAIN_ID = "integnet_9000-1"
DEFAULT_EIP155_CHAIN_ID = 9000
DEFAULT_DENOM = "aint"
DEFAULT_AMOUNT_OF_VALIDATORS = 3
DEFAULT_PRE_FUNDED_ACCOUNTS = 3

_DENOM_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9/:._-]{2,127}$")


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass
class NetworkConfig:
    chain_id: str
    eip155_chain_id: int
    denom: str
    amount_of_validators: int
    pre_funded_accounts: List[str] = field(default_factory=list)

    # Optional SQLite file for the reference runtime; None keeps state in memory.
    db_path: Optional[str] = None


ConfigOption = Callable[[NetworkConfig], None]


def default_config() -> NetworkConfig:
    return NetworkConfig(
        chain_id=DEFAULT_CHAIN_ID,
        eip155_chain_id=DEFAULT_EIP155_CHAIN_ID,
        denom=DEFAULT_DENOM,
        amount_of_validators=DEFAULT_AMOUNT_OF_VALIDATORS,
        pre_funded_accounts=addresses(new_keyring(DEFAULT_PRE_FUNDED_ACCOUNTS)),
        db_path=None,
    )


def with_chain_id(chain_id: str) -> ConfigOption:
    def _opt(cfg: NetworkConfig) -> None:
        cfg.chain_id = chain_id

    return _opt


def with_eip155_chain_id(eip155_chain_id: int) -> ConfigOption:
    def _opt(cfg: NetworkConfig) -> None:
        cfg.eip155_chain_id = eip155_chain_id

    return _opt


def with_denom(denom: str) -> ConfigOption:
    def _opt(cfg: NetworkConfig) -> None:
        cfg.denom = denom

    return _opt


def with_amount_of_validators(amount: int) -> ConfigOption:
    def _opt(cfg: NetworkConfig) -> None:
        cfg.amount_of_validators = amount

    return _opt


def with_pre_funded_accounts(*accounts: str) -> ConfigOption:
    def _opt(cfg: NetworkConfig) -> None:
        cfg.pre_funded_accounts = list(accounts)

    return _opt


def with_db_path(db_path: Optional[str]) -> ConfigOption:
    def _opt(cfg: NetworkConfig) -> None:
        cfg.db_path = db_path

    return _opt


def apply_options(cfg: NetworkConfig, *opts: ConfigOption) -> NetworkConfig:
    for opt in opts:
        opt(cfg)
    return cfg


def validate_network_config(cfg: NetworkConfig) -> None:
    """Fail-fast validation, run before any genesis bytes are produced."""

    if not isinstance(cfg.chain_id, str) or not cfg.chain_id.strip():
        raise ConfigurationError("invalid_chain_id", "chain_id must be a non-empty string")

    if isinstance(cfg.eip155_chain_id, bool) or not isinstance(cfg.eip155_chain_id, int) or cfg.eip155_chain_id <= 0:
        raise ConfigurationError(
            "invalid_eip155_chain_id",
            f"eip155_chain_id must be a positive integer; got: {cfg.eip155_chain_id!r}",
        )

    if not isinstance(cfg.denom, str) or not _DENOM_RE.match(cfg.denom):
        raise ConfigurationError("invalid_denom", f"invalid denomination: {cfg.denom!r}")

    if isinstance(cfg.amount_of_validators, bool) or not isinstance(cfg.amount_of_validators, int):
        raise ConfigurationError("invalid_validator_count", "amount_of_validators must be an int")
    if cfg.amount_of_validators < 1:
        raise ConfigurationError(
            "invalid_validator_count",
            f"amount_of_validators must be >= 1; got: {cfg.amount_of_validators}",
        )

    # The first pre-funded account is the genesis delegator.
    if not cfg.pre_funded_accounts:
        raise ConfigurationError("no_pre_funded_accounts", "at least one pre-funded account is required")

    # Module accounts get their genesis balances from the builders, never from config.
    reserved = {module_address(name): name for name in MODULE_ACCOUNT_NAMES}

    seen: set[str] = set()
    for addr in cfg.pre_funded_accounts:
        if not is_account_address(addr):
            raise ConfigurationError("invalid_account", f"pre-funded account is not an account address: {addr!r}")
        if addr in reserved:
            raise ConfigurationError(
                "invalid_account",
                f"pre-funded account is the {reserved[addr]} module account: {addr}",
            )
        if addr in seen:
            raise ConfigurationError("duplicate_account", f"pre-funded account listed twice: {addr}")
        seen.add(addr)


def read_network_config_file(path: str) -> NetworkConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ConfigurationError("invalid_config_file", "network config must be a JSON object")

    d = default_config()

    accounts = raw.get("pre_funded_accounts")
    if isinstance(accounts, list):
        accounts = [str(a) for a in accounts]
    else:
        accounts = d.pre_funded_accounts

    db_path = raw.get("db_path")

    cfg = NetworkConfig(
        chain_id=_as_str(raw.get("chain_id"), d.chain_id),
        eip155_chain_id=_as_int(raw.get("eip155_chain_id"), d.eip155_chain_id),
        denom=_as_str(raw.get("denom"), d.denom),
        amount_of_validators=_as_int(raw.get("amount_of_validators"), d.amount_of_validators),
        pre_funded_accounts=accounts,
        db_path=str(db_path) if db_path else None,
    )

    validate_network_config(cfg)
    return cfg


def config_from_env() -> NetworkConfig:
    """Default config overridden by INTEGNET_* environment variables."""
    d = default_config()
    return NetworkConfig(
        chain_id=_as_str(os.environ.get("INTEGNET_CHAIN_ID"), d.chain_id),
        eip155_chain_id=_as_int(os.environ.get("INTEGNET_EIP155_CHAIN_ID"), d.eip155_chain_id),
        denom=_as_str(os.environ.get("INTEGNET_DENOM"), d.denom),
        amount_of_validators=_as_int(os.environ.get("INTEGNET_VALIDATORS"), d.amount_of_validators),
        pre_funded_accounts=d.pre_funded_accounts,
        db_path=(os.environ.get("INTEGNET_DB_PATH") or "").strip() or None,
    )
