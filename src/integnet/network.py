# src/integnet/network.py
from __future__ import annotations

"""In-process integration network.

    net = new_network(with_amount_of_validators(4), with_denom("test"))
    res = net.broadcast_tx_sync(tx_bytes)
    sim = net.simulate(tx_bytes)

Construction runs the whole bootstrap; a handle only exists once the chain
has committed genesis and opened its first block. Broadcast and simulate
share one runtime and must not be called concurrently.
"""

import copy
import logging
from typing import Callable, List, Optional

from integnet.crypto.address import consensus_address
from integnet.genesis.validators import ValidatorSet
from integnet.ledger.types import ConsensusValidator, StakingValidator
from integnet.runtime import metrics
from integnet.runtime.abci import (
    Application,
    Context,
    Header,
    RequestBeginBlock,
    RequestDeliverTx,
    ResponseDeliverTx,
    SimulateResponse,
    ValidatorUpdate,
)
from integnet.runtime.app import LedgerApp
from integnet.runtime.bootstrap import ChainBootstrapper
from integnet.runtime.errors import BootstrapError, NetworkError, TxDecodeError
from integnet.runtime.network_config import (
    ConfigOption,
    NetworkConfig,
    apply_options,
    default_config,
    validate_network_config,
)
from integnet.runtime.structured_logging import configure_structured_logging, log_event

log = logging.getLogger("integnet.network")

AppFactory = Callable[[str, Optional[str]], Application]


def _default_app_factory(chain_id: str, db_path: Optional[str]) -> Application:
    return LedgerApp(chain_id=chain_id, db_path=db_path)


def _require_bytes(tx_bytes: bytes) -> bytes:
    if not isinstance(tx_bytes, (bytes, bytearray)):
        raise TxDecodeError("tx_decode", "tx must be bytes", {"type": type(tx_bytes).__name__})
    return bytes(tx_bytes)


def _apply_validator_updates(valset: ValidatorSet, updates: List[ValidatorUpdate]) -> ValidatorSet:
    if not updates:
        return valset
    by_key = {u.pub_key: int(u.power) for u in updates}
    vals: List[ConsensusValidator] = []
    for v in valset.validators:
        power = by_key.pop(v.pub_key, int(v.voting_power))
        if power > 0:
            vals.append(ConsensusValidator(address=v.address, pub_key=v.pub_key, voting_power=power))
    for pk in sorted(by_key):
        if by_key[pk] > 0:
            vals.append(ConsensusValidator(address=consensus_address(pk), pub_key=pk, voting_power=by_key[pk]))
    if not vals:
        raise BootstrapError("empty_validator_set", "validator updates removed every validator")
    proposer = next((v for v in vals if v.pub_key == valset.proposer.pub_key), vals[0])
    return ValidatorSet(validators=tuple(vals), proposer=proposer)


class IntegrationNetwork:
    """A bootstrapped single-process chain plus the calls tests drive it with."""

    def __init__(self, cfg: NetworkConfig, *, app_factory: Optional[AppFactory] = None) -> None:
        self.cfg = copy.deepcopy(cfg)
        validate_network_config(self.cfg)

        factory = app_factory or _default_app_factory
        try:
            app = factory(self.cfg.chain_id, self.cfg.db_path)
        except NetworkError:
            raise
        except Exception as e:
            raise BootstrapError("app_factory_failed", str(e), {"cause": type(e).__name__}) from e

        result = ChainBootstrapper(app, self.cfg).run()

        self.app: Application = result.app
        self.ctx: Context = result.ctx
        self.genesis_bytes: bytes = result.genesis_bytes
        self._header: Header = result.header
        self._validator_set: ValidatorSet = result.validator_set
        self._validators: List[StakingValidator] = list(result.validators)

        metrics.set_gauge("block_height", self.ctx.block_height)

    # ----------------------------
    # Chain identity
    # ----------------------------

    def get_eip155_chain_id(self) -> int:
        return int(self.cfg.eip155_chain_id)

    def get_chain_id(self) -> str:
        return self.cfg.chain_id

    def get_denom(self) -> str:
        return self.cfg.denom

    def get_validators(self) -> List[StakingValidator]:
        """Staking validators as installed at genesis."""
        return list(self._validators)

    def get_validator_set(self) -> ValidatorSet:
        return self._validator_set

    def get_context(self) -> Context:
        return self.ctx

    def get_balance(self, address: str, denom: Optional[str] = None) -> int:
        return int(self.app.query_balance(address, denom or self.cfg.denom))

    # ----------------------------
    # Transactions
    # ----------------------------

    def broadcast_tx_sync(self, tx_bytes: bytes) -> ResponseDeliverTx:
        """Deliver a tx in the current block.

        Execution failures (bad sequence, insufficient funds, undecodable
        payload) come back as a response with a non-zero code.
        """
        raw = _require_bytes(tx_bytes)
        res = self.app.deliver_tx(RequestDeliverTx(tx=raw))

        metrics.inc_counter("txs_delivered" if res.ok else "txs_failed")
        log_event(
            log,
            "tx_delivered",
            height=self.ctx.block_height,
            code=int(res.code),
            gas_wanted=int(res.gas_wanted),
            gas_used=int(res.gas_used),
        )
        return res

    def simulate(self, tx_bytes: bytes) -> SimulateResponse:
        """Dry-run a tx; raises TxDecodeError when the bytes are not a tx at all."""
        raw = _require_bytes(tx_bytes)
        gas_info, result = self.app.simulate(raw)

        metrics.inc_counter("txs_simulated")
        log_event(log, "tx_simulated", code=int(result.code), gas_used=int(gas_info.gas_used))
        return SimulateResponse(gas_info=gas_info, result=result)

    # ----------------------------
    # Blocks
    # ----------------------------

    def next_block(self) -> Context:
        """End the current block, commit it and begin the next one."""
        updates = self.app.end_block()
        commit_id = self.app.commit()
        self._validator_set = _apply_validator_updates(self._validator_set, updates)

        valset_hash = self._validator_set.hash()
        header = Header(
            chain_id=self.cfg.chain_id,
            height=int(self.app.last_block_height()) + 1,
            app_hash=commit_id.hash,
            validators_hash=valset_hash,
            next_validators_hash=valset_hash,
            proposer_address=self._validator_set.proposer.address,
        )
        self.ctx = self.app.begin_block(RequestBeginBlock(header=header))
        self._header = header

        metrics.set_gauge("block_height", self.ctx.block_height)
        return self.ctx


def new_network(*opts: ConfigOption, app_factory: Optional[AppFactory] = None) -> IntegrationNetwork:
    """Default config + options -> bootstrapped network.

    Raises ConfigurationError for a bad config and BootstrapError when the
    chain cannot be brought up; no partially initialized network is returned.
    """
    configure_structured_logging()
    cfg = apply_options(default_config(), *opts)
    return IntegrationNetwork(cfg, app_factory=app_factory)
