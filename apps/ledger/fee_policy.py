from __future__ import annotations

import logging
from dataclasses import replace

from .cost_model import checked_uint
from .errors import InsufficientFee, Unauthorized
from .ledger_state import LedgerState, LedgerTransaction
from .models import FeeState, normalize_address

LOGGER = logging.getLogger('contract_ledger.fees')


def _required_fee(fee: FeeState, has_registered: bool) -> int:
    if not has_registered:
        return 0
    return fee.platform_fee


class FeePolicy:
    """Newcomer waiver plus the platform fee for everyone else.

    Overpayment is accepted and forwarded to the treasury in full; there is no
    refund path.
    """

    def __init__(self, state: LedgerState) -> None:
        self.state = state

    def required_fee(self, caller: str) -> int:
        caller = normalize_address(caller)
        return _required_fee(self.state.fee_state, self.state.has_registered(caller))

    def charge_fee(self, tx: LedgerTransaction, caller: str, payment: int) -> int:
        checked_uint(payment, 'payment')
        required = _required_fee(tx.fee, tx.has_registered(caller))
        if payment < required:
            raise InsufficientFee(
                f'payment={payment} is below the required fee={required} for caller={caller}'
            )
        if payment:
            tx.credit(tx.fee.treasury, payment)
        return payment

    def set_platform_fee(self, caller: str, platform_fee: int) -> FeeState:
        caller = normalize_address(caller)
        checked_uint(platform_fee, 'platform_fee')
        with self.state.transaction() as tx:
            self._require_owner(tx, caller)
            tx.set_fee(replace(tx.fee, platform_fee=platform_fee))
        LOGGER.info('platform fee updated fee=%s by=%s', platform_fee, caller)
        return self.state.fee_state

    def set_treasury(self, caller: str, treasury: str) -> FeeState:
        caller = normalize_address(caller)
        treasury = normalize_address(treasury)
        with self.state.transaction() as tx:
            self._require_owner(tx, caller)
            tx.set_fee(replace(tx.fee, treasury=treasury))
        LOGGER.info('treasury updated treasury=%s by=%s', treasury, caller)
        return self.state.fee_state

    @staticmethod
    def _require_owner(tx: LedgerTransaction, caller: str) -> None:
        if caller != tx.fee.owner:
            raise Unauthorized(f'caller={caller} is not the fee authority')
