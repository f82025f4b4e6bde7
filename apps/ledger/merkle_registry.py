from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from . import merkle
from .cost_model import checked_uint
from .errors import DuplicateRoot, InactiveTree, InvalidRoot, LedgerError, RootNotFound, Unauthorized
from .events import ProofValidated, TreeAdded, TreeRemoved, TreeUpdated
from .fee_policy import FeePolicy
from .host import HostEnvironment
from .ledger_state import LedgerState, LedgerTransaction
from .models import ZERO_ROOT, TreeRecord, ValidationStats, normalize_address, normalize_root

LOGGER = logging.getLogger('contract_ledger.registry')


class MerkleRegistry:
    """Content-addressed registry of Merkle roots.

    A root moves ``Unregistered -> Active -> Inactive`` and never comes back:
    deactivated records are kept for audit and still block re-registration.
    Only a record's creator may deactivate it or change its description.
    """

    def __init__(self, state: LedgerState, host: HostEnvironment, fees: FeePolicy | None = None) -> None:
        self.state = state
        self.host = host
        self.fees = fees or FeePolicy(state)

    def add_merkle_tree(
        self,
        caller: str,
        root: str | bytes,
        description: str,
        list_size: int,
        payment: int = 0
    ) -> TreeRecord:
        caller = normalize_address(caller)
        root = normalize_root(root)
        if root == ZERO_ROOT:
            raise InvalidRoot('merkle root must not be the zero hash')
        checked_uint(list_size, 'list_size')

        with self.state.transaction() as tx:
            if tx.tree(root) is not None:
                raise DuplicateRoot(f'merkle root {root} is already registered')
            charged = self.fees.charge_fee(tx, caller, payment)
            record = TreeRecord(
                root=root,
                description=description,
                timestamp=self.host.now(),
                list_size=list_size,
                creator=caller,
                is_active=True
            )
            tx.put_tree(record)
            tx.mark_registered(caller)
            tx.emit(TreeAdded(root=root, creator=caller))

        LOGGER.info('tree added root=%s creator=%s list_size=%s fee=%s', root, caller, list_size, charged)
        return record

    def remove_merkle_tree(self, caller: str, root: str | bytes) -> TreeRecord:
        caller = normalize_address(caller)
        root = normalize_root(root)
        with self.state.transaction() as tx:
            record = self._owned_record(tx, caller, root)
            record = replace(record, is_active=False)
            tx.put_tree(record)
            tx.emit(TreeRemoved(root=root))

        LOGGER.info('tree removed root=%s by=%s', root, caller)
        return record

    def update_merkle_tree_description(self, caller: str, root: str | bytes, new_description: str) -> TreeRecord:
        caller = normalize_address(caller)
        root = normalize_root(root)
        with self.state.transaction() as tx:
            record = self._owned_record(tx, caller, root)
            if not record.is_active:
                raise InactiveTree(f'merkle root {root} is inactive')
            record = replace(record, description=new_description)
            tx.put_tree(record)
            tx.emit(TreeUpdated(root=root))

        LOGGER.info('tree description updated root=%s by=%s', root, caller)
        return record

    def is_merkle_root_valid(self, root: str | bytes) -> bool:
        try:
            root = normalize_root(root)
        except LedgerError:
            return False
        if root == ZERO_ROOT:
            return False
        record = self.state.tree(root)
        return record is not None and record.is_active

    def get_merkle_tree_info(self, root: str | bytes) -> TreeRecord:
        root = normalize_root(root)
        record = self.state.tree(root)
        if record is None:
            raise RootNotFound(f'merkle root {root} is not registered')
        return record

    def get_platform_fee(self) -> int:
        return self.state.fee_state.platform_fee

    def is_user_newcomer(self, address: str) -> bool:
        return not self.state.has_registered(normalize_address(address))

    def verify_proof(self, root: str | bytes, proof: Iterable[str | bytes], leaf: str | bytes) -> bool:
        """Read-only membership check; never touches the validation count."""
        if not self.is_merkle_root_valid(root):
            return False
        return merkle.verify_proof(root, proof, leaf)

    def validate_proof(
        self,
        caller: str,
        root: str | bytes,
        proof: Iterable[str | bytes],
        leaf: str | bytes
    ) -> bool:
        """Check a proof against an active root and record the attempt.

        Every attempt on an active root counts, whether or not the proof holds,
        and emits ``ProofValidated`` with the outcome. Unknown or inactive
        roots are rejected without touching the count.
        """
        caller = normalize_address(caller)
        root = normalize_root(root)
        proof = [normalize_root(node) for node in proof]
        leaf = normalize_root(leaf)

        with self.state.transaction() as tx:
            record = tx.tree(root)
            if record is None:
                raise RootNotFound(f'merkle root {root} is not registered')
            if not record.is_active:
                raise InactiveTree(f'merkle root {root} is inactive')
            valid = merkle.verify_proof(root, proof, leaf)
            count = tx.record_validation(root)
            tx.emit(ProofValidated(root=root, caller=caller, valid=valid))

        LOGGER.info('proof validated root=%s caller=%s valid=%s count=%s', root, caller, valid, count)
        return valid

    def get_validation_stats(self, root: str | bytes) -> ValidationStats:
        root = normalize_root(root)
        snapshot = self.state.snapshot
        record = snapshot.trees.get(root)
        if record is None:
            raise RootNotFound(f'merkle root {root} is not registered')
        return ValidationStats(
            root=root,
            description=record.description,
            creator=record.creator,
            timestamp=record.timestamp,
            validation_count=snapshot.validations.get(root, 0),
            is_active=record.is_active
        )

    def trees_by_creator(self, address: str) -> list[TreeRecord]:
        creator = normalize_address(address)
        records = [record for record in self.state.trees() if record.creator == creator]
        records.sort(key=lambda record: (record.timestamp, record.root))
        return records

    @staticmethod
    def _owned_record(tx: LedgerTransaction, caller: str, root: str) -> TreeRecord:
        record = tx.tree(root)
        if record is None:
            raise RootNotFound(f'merkle root {root} is not registered')
        if record.creator != caller:
            raise Unauthorized(f'caller={caller} is not the creator of merkle root {root}')
        return record
