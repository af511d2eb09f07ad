from __future__ import annotations

"""Build signed tx bytes for the integration network.

Test helpers: they sign with deterministic keyring keys and return the exact
bytes `IntegrationNetwork.broadcast_tx_sync` / `simulate` expect.
"""

from typing import Any, Dict, List, Optional, Sequence

from integnet.crypto.sig import canonical_json, sign_tx_envelope_dict
from integnet.ledger.constants import DEFAULT_GAS_LIMIT
from integnet.ledger.types import Coin, coins_to_json
from integnet.runtime.tx_schema import MSG_DELEGATE, MSG_SEND
from integnet.testing.keyring import Key

Json = Dict[str, Any]


def send_msg(*, from_address: str, to_address: str, amount: Sequence[Coin]) -> Json:
    return {
        "type": MSG_SEND,
        "from_address": from_address,
        "to_address": to_address,
        "amount": coins_to_json(amount),
    }


def delegate_msg(*, delegator_address: str, validator_address: str, amount: Coin) -> Json:
    return {
        "type": MSG_DELEGATE,
        "delegator_address": delegator_address,
        "validator_address": validator_address,
        "amount": amount.to_json(),
    }


def build_tx(
    key: Key,
    msgs: List[Json],
    *,
    chain_id: str,
    sequence: int,
    fee: Optional[Sequence[Coin]] = None,
    gas_limit: int = DEFAULT_GAS_LIMIT,
    memo: str = "",
) -> bytes:
    """Sign an envelope carrying `msgs` and encode it as wire bytes."""
    tx: Json = {
        "chain_id": chain_id,
        "signer": key.address,
        "pubkey": key.pubkey,
        "sequence": int(sequence),
        "fee": {"amount": coins_to_json(fee or []), "gas_limit": int(gas_limit)},
        "memo": memo,
        "msgs": list(msgs),
    }
    signed = sign_tx_envelope_dict(tx=tx, privkey=key.privkey)
    return canonical_json(signed).encode("utf-8")


def build_send_tx(
    key: Key,
    to_address: str,
    amount: Sequence[Coin],
    *,
    chain_id: str,
    sequence: int,
    fee: Optional[Sequence[Coin]] = None,
    gas_limit: int = DEFAULT_GAS_LIMIT,
    memo: str = "",
) -> bytes:
    msg = send_msg(from_address=key.address, to_address=to_address, amount=amount)
    return build_tx(key, [msg], chain_id=chain_id, sequence=sequence, fee=fee, gas_limit=gas_limit, memo=memo)


def build_delegate_tx(
    key: Key,
    validator_address: str,
    amount: Coin,
    *,
    chain_id: str,
    sequence: int,
    fee: Optional[Sequence[Coin]] = None,
    gas_limit: int = DEFAULT_GAS_LIMIT,
) -> bytes:
    msg = delegate_msg(delegator_address=key.address, validator_address=validator_address, amount=amount)
    return build_tx(key, [msg], chain_id=chain_id, sequence=sequence, fee=fee, gas_limit=gas_limit)
