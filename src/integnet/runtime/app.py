from __future__ import annotations

import copy
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from integnet.crypto.address import account_address, is_account_address, module_address
from integnet.crypto.sig import canonical_json, verify_tx_envelope_dict
from integnet.ledger.constants import (
    BOND_STATUS_BONDED,
    BONDED_POOL_NAME,
    FEE_COLLECTOR_NAME,
    MODULE_ACCOUNT_NAMES,
    NOT_BONDED_POOL_NAME,
    POWER_REDUCTION,
    READ_COST_FLAT,
    READ_COST_PER_BYTE,
    SIG_VERIFY_COST_ED25519,
    TX_SIZE_COST_PER_BYTE,
    WRITE_COST_FLAT,
    WRITE_COST_PER_BYTE,
)
from integnet.ledger.types import Coin, coins_from_json, merge_coins
from integnet.runtime.abci import (
    CODE_INSUFFICIENT_FUNDS,
    CODE_INVALID_ADDRESS,
    CODE_INVALID_CHAIN_ID,
    CODE_INVALID_COINS,
    CODE_INVALID_REQUEST,
    CODE_OK,
    CODE_OUT_OF_GAS,
    CODE_TX_DECODE,
    CODE_UNAUTHORIZED,
    CODE_UNKNOWN_ADDRESS,
    CODE_WRONG_SEQUENCE,
    CommitID,
    Context,
    Event,
    GasInfo,
    Header,
    RequestBeginBlock,
    RequestDeliverTx,
    RequestInitChain,
    ResponseDeliverTx,
    ResponseInitChain,
    Result,
    ValidatorUpdate,
    new_event,
)
from integnet.runtime.errors import TxDecodeError
from integnet.runtime.gas import GasMeter, OutOfGasError
from integnet.runtime.sqlite_db import SqliteAppStore, SqliteDB
from integnet.runtime.structured_logging import log_event
from integnet.runtime.tx_schema import MsgDelegateModel, MsgSendModel, TxModel, decode_tx

Json = Dict[str, Any]

log = logging.getLogger("integnet.app")

_CORE_MODULES = ("auth", "bank", "staking")


class _TxFailure(Exception):
    def __init__(self, code: int, log: str, codespace: str = "sdk") -> None:
        super().__init__(log)
        self.code = int(code)
        self.log = str(log)
        self.codespace = str(codespace)


@dataclass
class _Outcome:
    code: int
    log: str = ""
    codespace: str = ""
    events: List[Event] = field(default_factory=list)


def compute_app_hash(state: Json) -> str:
    body = {k: v for k, v in state.items() if k != "app_hash"}
    return hashlib.sha256(canonical_json(body).encode("utf-8")).hexdigest().upper()


def _fmt_coins(coins: Iterable[Coin]) -> str:
    return ",".join(f"{int(c.amount)}{c.denom}" for c in coins)


def _replace(dst: Json, src: Json) -> None:
    # Replace contents in place so holders of `dst` see the new view.
    dst.clear()
    dst.update(src)


class _KVStore:
    """Gas-metered accessors over the application state dict."""

    def __init__(self, state: Json, meter: GasMeter) -> None:
        self.state = state
        self.meter = meter

    def _read(self, key: str, value: Any) -> None:
        size = len(key) + (len(canonical_json(value)) if value is not None else 0)
        self.meter.consume(READ_COST_FLAT + READ_COST_PER_BYTE * size, "ReadFlat")

    def _write(self, key: str, value: Any) -> None:
        size = len(key) + len(canonical_json(value))
        self.meter.consume(WRITE_COST_FLAT + WRITE_COST_PER_BYTE * size, "WriteFlat")

    def balance(self, address: str, denom: str) -> int:
        amount = int(self.state["balances"].get(address, {}).get(denom, 0))
        self._read(f"balances/{address}/{denom}", amount)
        return amount

    def set_balance(self, address: str, denom: str, amount: int) -> None:
        self._write(f"balances/{address}/{denom}", int(amount))
        per_addr = self.state["balances"].setdefault(address, {})
        if int(amount) == 0:
            per_addr.pop(denom, None)
        else:
            per_addr[denom] = int(amount)

    def account(self, address: str) -> Optional[Json]:
        acct = self.state["accounts"].get(address)
        self._read(f"accounts/{address}", acct)
        return copy.deepcopy(acct) if isinstance(acct, dict) else None

    def set_account(self, acct: Json) -> None:
        self._write(f"accounts/{acct['address']}", acct)
        self.state["accounts"][str(acct["address"])] = acct

    def new_account(self, address: str) -> Json:
        num = int(self.state.get("next_account_number", 0))
        self.state["next_account_number"] = num + 1
        acct = {"address": address, "account_number": num, "sequence": 0, "pub_key": None}
        self.set_account(acct)
        return acct

    def validator(self, operator_address: str) -> Optional[Json]:
        val = self.state["staking"]["validators"].get(operator_address)
        self._read(f"staking/validators/{operator_address}", val)
        return copy.deepcopy(val) if isinstance(val, dict) else None

    def set_validator(self, val: Json) -> None:
        self._write(f"staking/validators/{val['operator_address']}", val)
        self.state["staking"]["validators"][str(val["operator_address"])] = val

    def delegation(self, delegator: str, validator: str) -> int:
        key = f"{delegator}|{validator}"
        shares = int(self.state["staking"]["delegations"].get(key, 0))
        self._read(f"staking/delegations/{key}", shares)
        return shares

    def set_delegation(self, delegator: str, validator: str, shares: int) -> None:
        key = f"{delegator}|{validator}"
        self._write(f"staking/delegations/{key}", int(shares))
        self.state["staking"]["delegations"][key] = int(shares)


class LedgerApp:
    """Deterministic in-process application implementing the harness boundary.

    Modules: auth (accounts, sequences, signatures), bank (balances, supply,
    sends) and staking (validators, delegations, validator power updates).
    Other genesis modules are carried as opaque state.

    With `db_path` set, every commit is persisted to SQLite and a later
    instance on the same file resumes from the committed snapshot.
    """

    def __init__(self, *, chain_id: str, db_path: Optional[str] = None, power_reduction: int = POWER_REDUCTION) -> None:
        self.chain_id = str(chain_id)
        self.power_reduction = int(power_reduction)

        self._state: Json = {}
        self._committed: Json = {}
        self._header: Optional[Header] = None
        self._block_txs = 0
        self._initialized = False

        self._store: Optional[SqliteAppStore] = None
        if db_path:
            self._store = SqliteAppStore(db=SqliteDB(path=str(db_path)))
            st = self._store.read()
            if st is not None:
                st_chain_id = str(st.get("chain_id") or "")
                if st_chain_id != self.chain_id:
                    raise RuntimeError(
                        f"chain_id mismatch: db={st_chain_id!r} app={self.chain_id!r}. Refuse to start."
                    )
                self._state = st
                self._committed = copy.deepcopy(st)
                self._initialized = True

    # ----------------------------
    # Genesis
    # ----------------------------

    def init_chain(self, req: RequestInitChain) -> ResponseInitChain:
        if self._initialized:
            raise RuntimeError("chain already initialized")
        if req.chain_id != self.chain_id:
            raise ValueError(f"init_chain chain_id {req.chain_id!r} does not match app chain_id {self.chain_id!r}")

        genesis = json.loads(bytes(req.app_state_bytes).decode("utf-8"))
        if not isinstance(genesis, dict):
            raise ValueError("genesis app state must be a JSON object")

        state = self._state_from_genesis(genesis, initial_height=int(req.initial_height))
        powers = self._bonded_powers(state)
        updates = [ValidatorUpdate(pub_key=pk, power=p) for pk, p in powers.items()]

        # Validators supplied by consensus must agree with staking genesis.
        if req.validators and sorted(req.validators, key=lambda u: u.pub_key) != sorted(
            updates, key=lambda u: u.pub_key
        ):
            raise ValueError("init_chain validators do not match staking genesis")

        state["staking"]["last_validator_powers"] = powers
        self._state = state
        self._initialized = True

        log_event(log, "chain_initialized", chain_id=self.chain_id, validators=len(updates))
        return ResponseInitChain(validators=updates)

    def _state_from_genesis(self, genesis: Json, *, initial_height: int) -> Json:
        auth = genesis.get("auth")
        bank = genesis.get("bank")
        staking = genesis.get("staking")
        for name, mod in (("auth", auth), ("bank", bank), ("staking", staking)):
            if not isinstance(mod, dict):
                raise ValueError(f"genesis is missing module {name!r}")

        accounts: Json = {}
        next_num = 0
        for i, rec in enumerate(auth.get("accounts") or []):
            addr = str(rec.get("address") or "")
            if not is_account_address(addr):
                raise ValueError(f"invalid genesis account address: {addr!r}")
            if addr in accounts:
                raise ValueError(f"duplicate genesis account: {addr}")
            num = int(rec.get("account_number", i))
            accounts[addr] = {
                "address": addr,
                "account_number": num,
                "sequence": int(rec.get("sequence", 0)),
                "pub_key": rec.get("pub_key"),
            }
            next_num = max(next_num, num + 1)

        module_accounts: Dict[str, str] = {}
        for name in MODULE_ACCOUNT_NAMES:
            addr = module_address(name)
            module_accounts[name] = addr
            if addr not in accounts:
                accounts[addr] = {"address": addr, "account_number": next_num, "sequence": 0, "pub_key": None}
                next_num += 1

        balances: Json = {}
        for rec in bank.get("balances") or []:
            addr = str(rec.get("address") or "")
            if not is_account_address(addr):
                raise ValueError(f"invalid genesis balance address: {addr!r}")
            if addr in balances:
                raise ValueError(f"duplicate genesis balance for {addr}")
            per_denom: Dict[str, int] = {}
            for c in coins_from_json(rec.get("coins")):
                if c.denom in per_denom:
                    raise ValueError(f"duplicate denom {c.denom!r} in genesis balance of {addr}")
                per_denom[c.denom] = int(c.amount)
            balances[addr] = per_denom
            if addr not in accounts:
                accounts[addr] = {"address": addr, "account_number": next_num, "sequence": 0, "pub_key": None}
                next_num += 1

        computed: Dict[str, int] = {}
        for per_denom in balances.values():
            for denom, amount in per_denom.items():
                computed[denom] = computed.get(denom, 0) + int(amount)
        declared = {c.denom: int(c.amount) for c in coins_from_json(bank.get("supply") or [])}
        if declared and declared != computed:
            raise ValueError(f"genesis supply is incorrect, expected {computed}, got {declared}")

        params = staking.get("params") if isinstance(staking.get("params"), dict) else {}
        bond_denom = str(params.get("bond_denom") or "").strip()
        if not bond_denom:
            raise ValueError("staking genesis has no bond_denom")

        validators: Json = {}
        for rec in staking.get("validators") or []:
            op = str(rec.get("operator_address") or "")
            pk = rec.get("consensus_pubkey")
            pk_value = str(pk.get("value") if isinstance(pk, dict) else pk or "")
            if not op or not pk_value:
                raise ValueError("staking genesis validator needs operator_address and consensus_pubkey")
            if op in validators:
                raise ValueError(f"duplicate staking validator: {op}")
            validators[op] = {
                "operator_address": op,
                "consensus_pubkey": pk_value,
                "tokens": int(rec.get("tokens") or 0),
                "delegator_shares": int(rec.get("delegator_shares") or 0),
                "status": str(rec.get("status") or BOND_STATUS_BONDED),
                "jailed": bool(rec.get("jailed", False)),
            }

        bonded_tokens = sum(v["tokens"] for v in validators.values() if v["status"] == BOND_STATUS_BONDED)
        pool_balance = int(balances.get(module_accounts[BONDED_POOL_NAME], {}).get(bond_denom, 0))
        if pool_balance != bonded_tokens:
            raise ValueError(
                f"bonded pool balance is different from bonded coins: {pool_balance} <-> {bonded_tokens}"
            )

        delegations: Dict[str, int] = {}
        for rec in staking.get("delegations") or []:
            delegator = str(rec.get("delegator_address") or "")
            valoper = str(rec.get("validator_address") or "")
            if valoper not in validators:
                raise ValueError(f"delegation references unknown validator {valoper!r}")
            if delegator not in accounts:
                raise ValueError(f"delegation references unknown account {delegator!r}")
            key = f"{delegator}|{valoper}"
            delegations[key] = delegations.get(key, 0) + int(rec.get("shares") or 0)

        return {
            "chain_id": self.chain_id,
            "height": int(initial_height) - 1,
            "app_hash": "",
            "accounts": accounts,
            "next_account_number": next_num,
            "module_accounts": module_accounts,
            "balances": balances,
            "supply": computed,
            "params": {
                "auth": copy.deepcopy(auth.get("params") or {}),
                "bank": copy.deepcopy(bank.get("params") or {}),
            },
            "staking": {
                "params": copy.deepcopy(params),
                "validators": validators,
                "delegations": delegations,
                "last_validator_powers": {},
            },
            "modules": {k: copy.deepcopy(v) for k, v in genesis.items() if k not in _CORE_MODULES},
        }

    def _bonded_powers(self, state: Json) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for v in state["staking"]["validators"].values():
            if v["status"] != BOND_STATUS_BONDED or v["jailed"]:
                continue
            power = int(v["tokens"]) // self.power_reduction
            if power > 0:
                out[str(v["consensus_pubkey"])] = power
        return out

    # ----------------------------
    # Block lifecycle
    # ----------------------------

    def commit(self) -> CommitID:
        if not self._initialized:
            raise RuntimeError("commit before init_chain")

        height = int(self._state.get("height", 0)) + 1
        self._state["height"] = height
        app_hash = compute_app_hash(self._state)
        self._state["app_hash"] = app_hash

        if self._store is not None:
            block = {
                "height": height,
                "app_hash": app_hash,
                "header": self._header.to_json() if self._header is not None else None,
                "num_txs": int(self._block_txs),
            }
            self._store.write_commit(height=height, app_hash=app_hash, block=block, state=self._state)

        self._committed = copy.deepcopy(self._state)
        num_txs = self._block_txs
        self._header = None
        self._block_txs = 0

        log_event(log, "block_committed", height=height, app_hash=app_hash, num_txs=num_txs)
        return CommitID(version=height, hash=app_hash)

    def last_block_height(self) -> int:
        return int(self._committed.get("height", 0) or 0)

    def last_commit_id(self) -> CommitID:
        return CommitID(version=self.last_block_height(), hash=str(self._committed.get("app_hash") or ""))

    def begin_block(self, req: RequestBeginBlock) -> Context:
        if not self._initialized:
            raise RuntimeError("begin_block before init_chain")
        if self._header is not None:
            raise RuntimeError("begin_block called twice without commit")

        h = req.header
        if h.chain_id != self.chain_id:
            raise ValueError(f"header chain_id {h.chain_id!r} does not match {self.chain_id!r}")
        expected = self.last_block_height() + 1
        if int(h.height) != expected:
            raise ValueError(f"invalid header height: expected {expected}, got {h.height}")

        self._header = h
        log_event(log, "block_begun", height=int(h.height), proposer=h.proposer_address)
        return Context(chain_id=self.chain_id, header=h)

    def end_block(self) -> List[ValidatorUpdate]:
        if self._header is None:
            raise RuntimeError("end_block outside of a block")

        powers = self._bonded_powers(self._state)
        last = self._state["staking"].get("last_validator_powers") or {}

        updates = [ValidatorUpdate(pub_key=pk, power=p) for pk, p in sorted(powers.items()) if last.get(pk) != p]
        updates.extend(ValidatorUpdate(pub_key=pk, power=0) for pk in sorted(last) if pk not in powers)

        self._state["staking"]["last_validator_powers"] = powers
        return updates

    # ----------------------------
    # Transactions
    # ----------------------------

    def _decode(self, tx_bytes: bytes) -> Tuple[TxModel, Json]:
        tx = decode_tx(tx_bytes)
        raw = json.loads(bytes(tx_bytes).decode("utf-8"))
        return tx, raw

    def deliver_tx(self, req: RequestDeliverTx) -> ResponseDeliverTx:
        if self._header is None:
            raise RuntimeError("deliver_tx outside of a block")

        try:
            tx, raw = self._decode(req.tx)
        except TxDecodeError as e:
            return ResponseDeliverTx(code=CODE_TX_DECODE, log=e.reason, codespace="sdk")

        meter = GasMeter(limit=int(tx.fee.gas_limit))
        out = self._run_tx(self._state, tx, raw, len(req.tx), meter, simulate=False)
        self._block_txs += 1

        return ResponseDeliverTx(
            code=out.code,
            log=out.log,
            gas_wanted=int(tx.fee.gas_limit),
            gas_used=meter.used(),
            events=out.events,
            codespace=out.codespace,
        )

    def simulate(self, tx_bytes: bytes) -> Tuple[GasInfo, Result]:
        if not self._initialized:
            raise RuntimeError("simulate before init_chain")

        tx, raw = self._decode(tx_bytes)

        # Dry run: a throwaway copy of the state and an unbounded meter.
        scratch = copy.deepcopy(self._state)
        meter = GasMeter(limit=None)
        out = self._run_tx(scratch, tx, raw, len(tx_bytes), meter, simulate=True)

        return (
            GasInfo(gas_wanted=int(tx.fee.gas_limit), gas_used=meter.used()),
            Result(code=out.code, log=out.log, events=out.events),
        )

    def _run_tx(self, state: Json, tx: TxModel, raw: Json, size: int, meter: GasMeter, *, simulate: bool) -> _Outcome:
        """Ante handler then messages.

        Ante effects (fee, sequence, pubkey) persist once the ante handler
        passes; message effects are all-or-nothing.
        """
        ante_state = copy.deepcopy(state)
        try:
            events = self._ante(_KVStore(ante_state, meter), tx, raw, size, simulate=simulate)
        except _TxFailure as f:
            return _Outcome(code=f.code, log=f.log, codespace=f.codespace)
        except OutOfGasError as e:
            return _Outcome(code=CODE_OUT_OF_GAS, log=str(e), codespace="sdk")
        _replace(state, ante_state)

        msg_state = copy.deepcopy(state)
        kv = _KVStore(msg_state, meter)
        idx = 0
        try:
            for idx, msg in enumerate(tx.msgs):
                if isinstance(msg, MsgSendModel):
                    events.extend(self._handle_send(kv, msg))
                elif isinstance(msg, MsgDelegateModel):
                    events.extend(self._handle_delegate(kv, msg))
                else:  # pragma: no cover
                    raise _TxFailure(CODE_INVALID_REQUEST, f"unrecognized message type: {type(msg).__name__}")
        except _TxFailure as f:
            return _Outcome(
                code=f.code,
                log=f"failed to execute message; message index: {idx}: {f.log}",
                codespace=f.codespace,
            )
        except OutOfGasError as e:
            return _Outcome(code=CODE_OUT_OF_GAS, log=str(e), codespace="sdk")

        _replace(state, msg_state)
        return _Outcome(code=CODE_OK, events=events)

    def _ante(self, kv: _KVStore, tx: TxModel, raw: Json, size: int, *, simulate: bool) -> List[Event]:
        kv.meter.consume(size * TX_SIZE_COST_PER_BYTE, "txSize")

        if tx.chain_id != self.chain_id:
            raise _TxFailure(
                CODE_INVALID_CHAIN_ID, f"invalid chain-id on tx; expected {self.chain_id}, got {tx.chain_id}"
            )

        for msg in tx.msgs:
            if any(s != tx.signer for s in msg.signers()):
                raise _TxFailure(CODE_UNAUTHORIZED, "message signer does not match tx signer")

        try:
            derived = account_address(tx.pubkey)
        except ValueError as e:
            raise _TxFailure(CODE_UNAUTHORIZED, f"invalid pubkey: {e}") from e
        if derived != tx.signer:
            raise _TxFailure(CODE_UNAUTHORIZED, "pubkey does not match signer address")

        acct = kv.account(tx.signer)
        if acct is None:
            raise _TxFailure(CODE_UNKNOWN_ADDRESS, f"account {tx.signer} not found")
        if acct.get("pub_key") and acct["pub_key"] != tx.pubkey:
            raise _TxFailure(CODE_UNAUTHORIZED, "pubkey does not match account pubkey")

        expected_seq = int(acct.get("sequence", 0))
        if int(tx.sequence) != expected_seq:
            raise _TxFailure(
                CODE_WRONG_SEQUENCE, f"account sequence mismatch, expected {expected_seq}, got {tx.sequence}"
            )

        kv.meter.consume(SIG_VERIFY_COST_ED25519, "ante verify: ed25519")
        if not simulate and not verify_tx_envelope_dict(raw):
            raise _TxFailure(
                CODE_UNAUTHORIZED,
                "signature verification failed; please verify account sequence and chain-id",
            )

        fees = merge_coins(c.to_coin() for c in tx.fee.amount)
        fee_collector = kv.state["module_accounts"][FEE_COLLECTOR_NAME]
        for c in fees:
            if c.amount <= 0:
                continue
            bal = kv.balance(tx.signer, c.denom)
            if bal < c.amount:
                raise _TxFailure(
                    CODE_INSUFFICIENT_FUNDS,
                    f"{bal}{c.denom} is smaller than {c.amount}{c.denom}: insufficient funds to pay fees",
                )
            kv.set_balance(tx.signer, c.denom, bal - c.amount)
            kv.set_balance(fee_collector, c.denom, kv.balance(fee_collector, c.denom) + c.amount)

        acct["pub_key"] = tx.pubkey
        acct["sequence"] = expected_seq + 1
        kv.set_account(acct)

        return [
            new_event("tx", fee=_fmt_coins(fees), fee_payer=tx.signer),
            new_event("tx", acc_seq=f"{tx.signer}/{expected_seq}"),
            new_event("tx", signature=tx.sig),
        ]

    def _send_coins(self, kv: _KVStore, sender: str, recipient: str, coins: List[Coin]) -> List[Event]:
        for c in coins:
            bal = kv.balance(sender, c.denom)
            if bal < c.amount:
                raise _TxFailure(
                    CODE_INSUFFICIENT_FUNDS,
                    f"spendable balance {bal}{c.denom} is smaller than {c.amount}{c.denom}: insufficient funds",
                )
            kv.set_balance(sender, c.denom, bal - c.amount)
            kv.set_balance(recipient, c.denom, kv.balance(recipient, c.denom) + c.amount)

        if kv.account(recipient) is None:
            kv.new_account(recipient)

        amount = _fmt_coins(coins)
        return [
            new_event("coin_spent", spender=sender, amount=amount),
            new_event("coin_received", receiver=recipient, amount=amount),
            new_event("transfer", recipient=recipient, sender=sender, amount=amount),
        ]

    def _handle_send(self, kv: _KVStore, msg: MsgSendModel) -> List[Event]:
        coins = merge_coins(c.to_coin() for c in msg.amount)
        if any(c.amount <= 0 for c in coins):
            raise _TxFailure(CODE_INVALID_COINS, f"invalid coins: {_fmt_coins(coins)}")
        if not is_account_address(msg.to_address):
            raise _TxFailure(CODE_INVALID_ADDRESS, f"invalid recipient address: {msg.to_address}")
        if msg.to_address in kv.state["module_accounts"].values():
            raise _TxFailure(CODE_UNAUTHORIZED, f"{msg.to_address} is not allowed to receive funds")
        if not bool(kv.state["params"]["bank"].get("default_send_enabled", True)):
            raise _TxFailure(CODE_INVALID_REQUEST, "send transactions are disabled", codespace="bank")

        events = self._send_coins(kv, msg.from_address, msg.to_address, coins)
        events.append(new_event("message", action="/bank.MsgSend", sender=msg.from_address, module="bank"))
        return events

    def _handle_delegate(self, kv: _KVStore, msg: MsgDelegateModel) -> List[Event]:
        coin = msg.amount.to_coin()
        bond_denom = str(kv.state["staking"]["params"].get("bond_denom") or "")
        if coin.denom != bond_denom:
            raise _TxFailure(
                CODE_INVALID_REQUEST,
                f"invalid coin denomination: got {coin.denom}, expected {bond_denom}",
                codespace="staking",
            )
        if coin.amount <= 0:
            raise _TxFailure(CODE_INVALID_COINS, f"invalid delegation amount: {coin.amount}")

        val = kv.validator(msg.validator_address)
        if val is None:
            raise _TxFailure(CODE_INVALID_REQUEST, "validator does not exist", codespace="staking")

        pool_name = BONDED_POOL_NAME if val["status"] == BOND_STATUS_BONDED else NOT_BONDED_POOL_NAME
        pool = kv.state["module_accounts"][pool_name]
        events = self._send_coins(kv, msg.delegator_address, pool, [coin])

        tokens = int(val["tokens"])
        shares_total = int(val["delegator_shares"])
        new_shares = coin.amount if tokens == 0 else (coin.amount * shares_total) // tokens
        val["tokens"] = tokens + coin.amount
        val["delegator_shares"] = shares_total + new_shares
        kv.set_validator(val)

        current = kv.delegation(msg.delegator_address, msg.validator_address)
        kv.set_delegation(msg.delegator_address, msg.validator_address, current + new_shares)

        events.append(
            new_event(
                "delegate",
                validator=msg.validator_address,
                amount=_fmt_coins([coin]),
                new_shares=new_shares,
            )
        )
        events.append(
            new_event("message", action="/staking.MsgDelegate", sender=msg.delegator_address, module="staking")
        )
        return events

    # ----------------------------
    # Queries
    # ----------------------------

    def query_balance(self, address: str, denom: str) -> int:
        if not self._state:
            return 0
        return int(self._state["balances"].get(address, {}).get(denom, 0))

    def query_account(self, address: str) -> Optional[Json]:
        if not self._state:
            return None
        acct = self._state["accounts"].get(address)
        return copy.deepcopy(acct) if isinstance(acct, dict) else None

    def query_supply(self, denom: str) -> int:
        if not self._state:
            return 0
        return int(self._state["supply"].get(denom, 0))

    def query_delegation(self, delegator: str, validator: str) -> int:
        if not self._state:
            return 0
        return int(self._state["staking"]["delegations"].get(f"{delegator}|{validator}", 0))

    def query_validator(self, operator_address: str) -> Optional[Json]:
        if not self._state:
            return None
        val = self._state["staking"]["validators"].get(operator_address)
        return copy.deepcopy(val) if isinstance(val, dict) else None

    def get_block(self, height: int) -> Optional[Json]:
        if self._store is None:
            return None
        return self._store.get_block(height)
