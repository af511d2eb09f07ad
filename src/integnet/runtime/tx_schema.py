from __future__ import annotations

"""Transaction wire schema.

A transaction on the wire is the UTF-8 canonical JSON of a signed envelope:

    {
      "chain_id": str,
      "signer": str,          # account address
      "pubkey": str,          # hex Ed25519 public key of the signer
      "sequence": int,        # account sequence the tx is valid for
      "fee": {"amount": [coin], "gas_limit": int},
      "memo": str,
      "msgs": [msg, ...],
      "sig": str              # hex Ed25519 signature over everything but "sig"
    }

These models are shape checks only: types, required keys, unknown keys
rejected. Execution semantics live in `integnet.runtime.app`.
"""

from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from integnet.ledger.types import Coin
from integnet.runtime.errors import TxDecodeError

Json = Dict[str, Any]

MSG_SEND = "bank/MsgSend"
MSG_DELEGATE = "staking/MsgDelegate"


class _StrictModel(BaseModel):
    """Strict model: reject unknown keys."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class CoinModel(_StrictModel):
    denom: str = Field(..., min_length=1, max_length=128)
    amount: str = Field(..., pattern=r"^[0-9]+$")

    def to_coin(self) -> Coin:
        return Coin(denom=self.denom, amount=int(self.amount))


class MsgSendModel(_StrictModel):
    type: Literal["bank/MsgSend"]
    from_address: str = Field(..., min_length=1)
    to_address: str = Field(..., min_length=1)
    amount: List[CoinModel] = Field(..., min_length=1)

    def signers(self) -> List[str]:
        return [self.from_address]


class MsgDelegateModel(_StrictModel):
    type: Literal["staking/MsgDelegate"]
    delegator_address: str = Field(..., min_length=1)
    validator_address: str = Field(..., min_length=1)
    amount: CoinModel

    def signers(self) -> List[str]:
        return [self.delegator_address]


Msg = Annotated[Union[MsgSendModel, MsgDelegateModel], Field(discriminator="type")]


class FeeModel(_StrictModel):
    amount: List[CoinModel] = Field(default_factory=list)
    gas_limit: int = Field(..., gt=0)


class TxModel(_StrictModel):
    chain_id: str = Field(..., min_length=1)
    signer: str = Field(..., min_length=1)
    pubkey: str = Field(..., min_length=1)
    sequence: int = Field(..., ge=0)
    fee: FeeModel
    memo: str = Field(default="", max_length=256)
    msgs: List[Msg] = Field(..., min_length=1)
    sig: str = Field(..., min_length=1)

    @field_validator("pubkey", "sig")
    @classmethod
    def _hex(cls, v: str) -> str:
        try:
            bytes.fromhex(v)
        except ValueError as e:
            raise ValueError("must be hex") from e
        return v


def decode_tx(tx_bytes: bytes) -> TxModel:
    """Decode raw tx bytes; TxDecodeError on anything that is not a well-formed envelope."""
    if not isinstance(tx_bytes, (bytes, bytearray)):
        raise TxDecodeError("tx_decode", "tx must be bytes", {"type": type(tx_bytes).__name__})
    if not tx_bytes:
        raise TxDecodeError("tx_decode", "empty tx")
    try:
        text = bytes(tx_bytes).decode("utf-8")
    except UnicodeDecodeError as e:
        raise TxDecodeError("tx_decode", "tx is not utf-8") from e
    try:
        return TxModel.model_validate_json(text)
    except ValidationError as e:
        raise TxDecodeError("tx_decode", "invalid tx envelope", e.errors(include_url=False)) from e


__all__ = [
    "MSG_SEND",
    "MSG_DELEGATE",
    "CoinModel",
    "MsgSendModel",
    "MsgDelegateModel",
    "FeeModel",
    "TxModel",
    "decode_tx",
]
