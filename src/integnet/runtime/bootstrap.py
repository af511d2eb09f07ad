# src/integnet/runtime/bootstrap.py
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import List, Tuple

from integnet.genesis.assembler import assemble_genesis, serialize_genesis
from integnet.genesis.builder import GenesisFragments, build_genesis_fragments
from integnet.genesis.validators import ValidatorSet
from integnet.ledger.constants import BONDED_AMOUNT, POWER_REDUCTION, PREFUNDED_ACCOUNT_INITIAL_BALANCE
from integnet.ledger.types import StakingValidator
from integnet.runtime.abci import (
    Application,
    Context,
    Header,
    RequestBeginBlock,
    RequestInitChain,
    default_consensus_params,
)
from integnet.runtime.errors import BootstrapError, ConfigurationError, NetworkError
from integnet.runtime.network_config import NetworkConfig, validate_network_config
from integnet.runtime.structured_logging import log_event

log = logging.getLogger("integnet.bootstrap")


@dataclass(frozen=True)
class BootstrapResult:
    app: Application
    ctx: Context
    header: Header
    validator_set: ValidatorSet
    validators: List[StakingValidator]
    genesis_bytes: bytes


def _fail(step: str, exc: Exception) -> BootstrapError:
    log_event(log, "bootstrap_failed", step=step, error=f"{type(exc).__name__}: {exc}")
    return BootstrapError(f"{step}_failed", str(exc), {"step": step, "cause": type(exc).__name__})


def configure_and_init_chain(
    app: Application,
    *,
    chain_id: str,
    genesis_bytes: bytes,
    validator_set: ValidatorSet,
) -> Tuple[Context, Header]:
    """Initialize the runtime from genesis, commit, and open the first block.

    The init call carries no validator updates: validators are already part of
    the staking genesis. The first header uses the post-commit height and app
    hash, the validator set hash for both current and next set, and the
    designated proposer.

    Any failure is raised as BootstrapError with the underlying cause chained.
    """
    try:
        app.init_chain(
            RequestInitChain(
                chain_id=chain_id,
                validators=[],
                consensus_params=default_consensus_params(),
                app_state_bytes=genesis_bytes,
            )
        )
    except Exception as e:
        raise _fail("init_chain", e) from e

    try:
        commit_id = app.commit()
        height = int(app.last_block_height()) + 1
    except Exception as e:
        raise _fail("commit", e) from e

    valset_hash = validator_set.hash()
    header = Header(
        chain_id=chain_id,
        height=height,
        app_hash=commit_id.hash,
        validators_hash=valset_hash,
        next_validators_hash=valset_hash,
        proposer_address=validator_set.proposer.address,
    )

    try:
        ctx = app.begin_block(RequestBeginBlock(header=header))
    except Exception as e:
        raise _fail("begin_block", e) from e

    return ctx, header


class ChainBootstrapper:
    """One-shot driver: config -> genesis fragments -> genesis bytes -> running chain.

    The config is snapshotted at construction. `run()` may be called once;
    a second call raises BootstrapError("already_bootstrapped").
    """

    def __init__(
        self,
        app: Application,
        cfg: NetworkConfig,
        *,
        prefunded_balance: int = PREFUNDED_ACCOUNT_INITIAL_BALANCE,
        bonded_amount: int = BONDED_AMOUNT,
        power_reduction: int = POWER_REDUCTION,
    ) -> None:
        self._app = app
        self._cfg = copy.deepcopy(cfg)
        self._prefunded_balance = int(prefunded_balance)
        self._bonded_amount = int(bonded_amount)
        self._power_reduction = int(power_reduction)
        self._ran = False

    def build_genesis(self) -> Tuple[GenesisFragments, bytes]:
        fragments = build_genesis_fragments(
            self._cfg,
            prefunded_balance=self._prefunded_balance,
            bonded_amount=self._bonded_amount,
            power_reduction=self._power_reduction,
        )
        return fragments, serialize_genesis(assemble_genesis(fragments))

    def run(self) -> BootstrapResult:
        if self._ran:
            raise BootstrapError("already_bootstrapped", "bootstrap may only run once per network")
        self._ran = True

        # Configuration problems surface as themselves, before any genesis bytes exist.
        validate_network_config(self._cfg)

        try:
            fragments, genesis_bytes = self.build_genesis()
        except ConfigurationError:
            raise
        except NetworkError as e:
            raise _fail("genesis", e) from e

        ctx, header = configure_and_init_chain(
            self._app,
            chain_id=self._cfg.chain_id,
            genesis_bytes=genesis_bytes,
            validator_set=fragments.validator_set,
        )

        return BootstrapResult(
            app=self._app,
            ctx=ctx,
            header=header,
            validator_set=fragments.validator_set,
            validators=list(fragments.validators),
            genesis_bytes=genesis_bytes,
        )
