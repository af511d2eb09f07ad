from __future__ import annotations

import hashlib

from integnet.crypto.sig import _decode_bytes
from integnet.ledger.constants import (
    ACCOUNT_ADDRESS_PREFIX,
    ADDRESS_LENGTH_BYTES,
    VALOPER_ADDRESS_PREFIX,
)


def address_hash(data: bytes) -> bytes:
    """Truncated SHA-256, the address derivation used for keys and module names."""
    return hashlib.sha256(data).digest()[:ADDRESS_LENGTH_BYTES]


def consensus_address(pubkey: str) -> str:
    """Consensus (validator) address: upper-case hex of the truncated pubkey hash."""
    return address_hash(_decode_bytes(pubkey)).hex().upper()


def account_address_from_bytes(raw: bytes, *, prefix: str = ACCOUNT_ADDRESS_PREFIX) -> str:
    if len(raw) != ADDRESS_LENGTH_BYTES:
        raise ValueError(f"address must be {ADDRESS_LENGTH_BYTES} bytes, got {len(raw)}")
    return prefix + raw.hex()


def account_address(pubkey: str, *, prefix: str = ACCOUNT_ADDRESS_PREFIX) -> str:
    return account_address_from_bytes(address_hash(_decode_bytes(pubkey)), prefix=prefix)


def valoper_address(consensus_addr: str) -> str:
    """Operator address sharing the validator's consensus address bytes."""
    return account_address_from_bytes(bytes.fromhex(consensus_addr), prefix=VALOPER_ADDRESS_PREFIX)


def module_address(name: str) -> str:
    return account_address_from_bytes(address_hash(name.encode("utf-8")))


def is_account_address(addr: str, *, prefix: str = ACCOUNT_ADDRESS_PREFIX) -> bool:
    if not isinstance(addr, str) or not addr.startswith(prefix):
        return False
    body = addr[len(prefix):]
    if len(body) != ADDRESS_LENGTH_BYTES * 2:
        return False
    try:
        bytes.fromhex(body)
    except ValueError:
        return False
    return True
