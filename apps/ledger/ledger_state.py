from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from web3 import Web3

from .cost_model import checked_uint
from .events import EventLog, LedgerEvent
from .models import FeeState, TreeRecord, normalize_address

LOGGER = logging.getLogger('contract_ledger.state')


@dataclass(frozen=True)
class Snapshot:
    code: Mapping[str, bytes]
    balances: Mapping[str, int]
    trees: Mapping[str, TreeRecord]
    registered: frozenset[str]
    fee: FeeState
    validations: Mapping[str, int]


class LedgerTransaction:
    """Working copy handed out by ``LedgerState.transaction``.

    Nothing written here is visible to readers until the transaction commits.
    """

    def __init__(self, base: Snapshot) -> None:
        self._code = dict(base.code)
        self._balances = dict(base.balances)
        self._trees = dict(base.trees)
        self._registered = set(base.registered)
        self._fee = base.fee
        self._validations = dict(base.validations)
        self.events: list[LedgerEvent] = []

    def code_of(self, address: str) -> bytes:
        return self._code.get(address, b'')

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def tree(self, root: str) -> TreeRecord | None:
        return self._trees.get(root)

    def has_registered(self, address: str) -> bool:
        return address in self._registered

    def validation_count(self, root: str) -> int:
        return self._validations.get(root, 0)

    @property
    def fee(self) -> FeeState:
        return self._fee

    def set_code(self, address: str, code: bytes) -> None:
        if code:
            self._code[address] = bytes(code)
        else:
            self._code.pop(address, None)

    def set_balance(self, address: str, amount: int) -> None:
        self._balances[address] = checked_uint(amount, f'balance[{address}]')

    def credit(self, address: str, amount: int) -> None:
        checked_uint(amount, 'credit amount')
        self.set_balance(address, self.balance_of(address) + amount)

    def put_tree(self, record: TreeRecord) -> None:
        self._trees[record.root] = record

    def mark_registered(self, address: str) -> None:
        self._registered.add(address)

    def set_fee(self, fee: FeeState) -> None:
        self._fee = fee

    def record_validation(self, root: str) -> int:
        count = checked_uint(self.validation_count(root) + 1, f'validations[{root}]')
        self._validations[root] = count
        return count

    def emit(self, event: LedgerEvent) -> None:
        self.events.append(event)

    def freeze(self) -> Snapshot:
        return Snapshot(
            code=MappingProxyType(self._code),
            balances=MappingProxyType(self._balances),
            trees=MappingProxyType(self._trees),
            registered=frozenset(self._registered),
            fee=self._fee,
            validations=MappingProxyType(self._validations)
        )


class LedgerState:
    """Single-writer store behind the analyzer and the registry.

    Readers pick up the committed snapshot reference and never take a lock.
    Writers are serialized by ``_write_lock``; a transaction either swaps in a
    complete new snapshot or leaves the committed one untouched.
    """

    def __init__(self, fee: FeeState, event_log: EventLog | None = None) -> None:
        self.event_log = event_log if event_log is not None else EventLog()
        self._write_lock = threading.Lock()
        self._committed = Snapshot(
            code=MappingProxyType({}),
            balances=MappingProxyType({}),
            trees=MappingProxyType({}),
            registered=frozenset(),
            fee=fee,
            validations=MappingProxyType({})
        )

    @property
    def snapshot(self) -> Snapshot:
        return self._committed

    def code_of(self, address: str) -> bytes:
        return self._committed.code.get(address, b'')

    def balance_of(self, address: str) -> int:
        return self._committed.balances.get(address, 0)

    def tree(self, root: str) -> TreeRecord | None:
        return self._committed.trees.get(root)

    def trees(self) -> list[TreeRecord]:
        return list(self._committed.trees.values())

    def has_registered(self, address: str) -> bool:
        return address in self._committed.registered

    def validation_count(self, root: str) -> int:
        return self._committed.validations.get(root, 0)

    @property
    def fee_state(self) -> FeeState:
        return self._committed.fee

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        with self._write_lock:
            tx = LedgerTransaction(self._committed)
            try:
                yield tx
            except Exception:
                LOGGER.debug('transaction rolled back pending_events=%s', len(tx.events))
                raise
            self._committed = tx.freeze()
            # Sequenced under the write lock so the log order matches commit order.
            entries = self.event_log.record(tx.events)
        self.event_log.notify(entries)

    def deploy_code(self, address: str, code: bytes) -> None:
        address = normalize_address(address)
        with self.transaction() as tx:
            tx.set_code(address, code)
        LOGGER.info('code installed address=%s code_size=%s', address, len(code))

    def set_balance(self, address: str, amount: int) -> None:
        address = normalize_address(address)
        with self.transaction() as tx:
            tx.set_balance(address, amount)

    def sync_account(self, w3: Web3, address: str, block_identifier: Any = 'latest') -> None:
        """Copy an account's runtime code and balance from a live node."""
        address = normalize_address(address)
        code = bytes(w3.eth.get_code(address, block_identifier=block_identifier))
        balance = int(w3.eth.get_balance(address, block_identifier=block_identifier))
        with self.transaction() as tx:
            tx.set_code(address, code)
            tx.set_balance(address, balance)
        LOGGER.info('account synced address=%s code_size=%s balance=%s', address, len(code), balance)
