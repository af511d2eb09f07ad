# src/integnet/runtime/abci.py
from __future__ import annotations

"""Narrow boundary between the harness and the embedded application.

The harness only ever calls the methods on `Application`; any runtime that
implements them (the in-process `LedgerApp`, or an adapter around a real
node) can be driven by the bootstrapper and the network handle.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

Json = Dict[str, Any]

# Result codes (0 is success).
CODE_OK = 0
CODE_TX_DECODE = 2
CODE_UNAUTHORIZED = 4
CODE_INSUFFICIENT_FUNDS = 5
CODE_UNKNOWN_REQUEST = 6
CODE_INVALID_ADDRESS = 7
CODE_UNKNOWN_ADDRESS = 9
CODE_INVALID_COINS = 10
CODE_OUT_OF_GAS = 11
CODE_INSUFFICIENT_FEE = 13
CODE_INVALID_REQUEST = 18
CODE_INVALID_CHAIN_ID = 28
CODE_WRONG_SEQUENCE = 32


@dataclass(frozen=True)
class BlockParams:
    max_bytes: int = 200_000
    max_gas: int = -1


@dataclass(frozen=True)
class EvidenceParams:
    max_age_num_blocks: int = 302_400
    max_age_duration_s: int = 504 * 3600
    max_bytes: int = 10_000


@dataclass(frozen=True)
class ValidatorParams:
    pub_key_types: Tuple[str, ...] = ("ed25519",)


@dataclass(frozen=True)
class ConsensusParams:
    block: BlockParams = field(default_factory=BlockParams)
    evidence: EvidenceParams = field(default_factory=EvidenceParams)
    validator: ValidatorParams = field(default_factory=ValidatorParams)


def default_consensus_params() -> ConsensusParams:
    return ConsensusParams()


@dataclass(frozen=True)
class ValidatorUpdate:
    pub_key: str
    power: int


@dataclass(frozen=True)
class RequestInitChain:
    chain_id: str
    validators: List[ValidatorUpdate]
    consensus_params: ConsensusParams
    app_state_bytes: bytes
    initial_height: int = 1


@dataclass(frozen=True)
class ResponseInitChain:
    validators: List[ValidatorUpdate]
    app_hash: str = ""


@dataclass(frozen=True)
class CommitID:
    version: int
    hash: str


@dataclass(frozen=True)
class Header:
    chain_id: str
    height: int
    app_hash: str
    validators_hash: str
    next_validators_hash: str
    proposer_address: str
    time_ms: int = 0

    def to_json(self) -> Json:
        return {
            "chain_id": self.chain_id,
            "height": int(self.height),
            "app_hash": self.app_hash,
            "validators_hash": self.validators_hash,
            "next_validators_hash": self.next_validators_hash,
            "proposer_address": self.proposer_address,
            "time_ms": int(self.time_ms),
        }


@dataclass(frozen=True)
class RequestBeginBlock:
    header: Header


@dataclass(frozen=True)
class Context:
    """Execution context for the block currently being built."""

    chain_id: str
    header: Header
    check_tx: bool = False

    @property
    def block_height(self) -> int:
        return int(self.header.height)


@dataclass(frozen=True)
class EventAttribute:
    key: str
    value: str


@dataclass(frozen=True)
class Event:
    type: str
    attributes: Tuple[EventAttribute, ...] = ()

    def get(self, key: str) -> Optional[str]:
        for a in self.attributes:
            if a.key == key:
                return a.value
        return None


def new_event(type_: str, **attrs: Any) -> Event:
    return Event(type=type_, attributes=tuple(EventAttribute(key=k, value=str(v)) for k, v in attrs.items()))


@dataclass(frozen=True)
class RequestDeliverTx:
    tx: bytes


@dataclass(frozen=True)
class ResponseDeliverTx:
    code: int
    log: str = ""
    gas_wanted: int = 0
    gas_used: int = 0
    events: List[Event] = field(default_factory=list)
    codespace: str = ""

    @property
    def ok(self) -> bool:
        return self.code == CODE_OK


@dataclass(frozen=True)
class GasInfo:
    gas_wanted: int
    gas_used: int


@dataclass(frozen=True)
class Result:
    """Outcome of executing a tx's messages (simulated or not)."""

    code: int
    log: str = ""
    data: bytes = b""
    events: List[Event] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.code == CODE_OK


@dataclass(frozen=True)
class SimulateResponse:
    gas_info: GasInfo
    result: Result


class Application(Protocol):
    """What the harness needs from the embedded application."""

    def init_chain(self, req: RequestInitChain) -> ResponseInitChain: ...

    def commit(self) -> CommitID: ...

    def last_block_height(self) -> int: ...

    def last_commit_id(self) -> CommitID: ...

    def begin_block(self, req: RequestBeginBlock) -> Context: ...

    def end_block(self) -> List[ValidatorUpdate]: ...

    def deliver_tx(self, req: RequestDeliverTx) -> ResponseDeliverTx: ...

    def simulate(self, tx_bytes: bytes) -> Tuple[GasInfo, Result]:
        """Dry-run tx_bytes; raises TxDecodeError if the bytes are not a tx."""
        ...

    def query_balance(self, address: str, denom: str) -> int: ...
