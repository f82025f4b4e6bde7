from __future__ import annotations

import enum
import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from prometheus_client import Counter

from .errors import LedgerError

LOGGER = logging.getLogger('contract_ledger.transactions')

DEFAULT_RECEIPT_CAPACITY = 10_000

TRANSACTIONS_TOTAL = Counter(
    'contract_ledger_transactions_total',
    'Finalized mutating submissions',
    ['operation', 'status']
)


class TxStatus(str, enum.Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    FAILED = 'failed'


@dataclass
class TxReceipt:
    tx_id: str
    operation: str
    caller: str
    status: TxStatus
    submitted_at: datetime
    finalized_at: datetime | None = None
    error_kind: str | None = None
    error_detail: str | None = None
    status_code: int = 200
    result: Any = None

    def to_payload(self) -> dict[str, Any]:
        result = self.result
        if hasattr(result, 'to_payload'):
            result = result.to_payload()
        return {
            'tx_id': self.tx_id,
            'operation': self.operation,
            'caller': self.caller,
            'status': self.status.value,
            'submitted_at': self.submitted_at.isoformat(),
            'finalized_at': self.finalized_at.isoformat() if self.finalized_at else None,
            'error_kind': self.error_kind,
            'error_detail': self.error_detail,
            'result': result
        }


class TransactionTracker:
    """Pending / confirmed / failed bookkeeping for mutating submissions.

    A receipt is recorded as PENDING before the mutation is applied, so a
    client polling by ``tx_id`` can observe the interval between submission
    and confirmation. Retry and backoff are left to the client.

    At most ``capacity`` receipts are retained; the oldest finalized ones are
    dropped first and pending receipts are never evicted.
    """

    def __init__(self, capacity: int = DEFAULT_RECEIPT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError('receipt capacity must be positive')
        self.capacity = capacity
        self._lock = threading.Lock()
        self._receipts: OrderedDict[str, TxReceipt] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._receipts)

    def get(self, tx_id: str) -> TxReceipt:
        with self._lock:
            return self._receipts[tx_id]

    def submit(self, operation: str, caller: str, fn: Callable[[], Any]) -> TxReceipt:
        receipt = TxReceipt(
            tx_id=str(uuid.uuid4()),
            operation=operation,
            caller=caller,
            status=TxStatus.PENDING,
            submitted_at=datetime.now(timezone.utc)
        )
        with self._lock:
            self._receipts[receipt.tx_id] = receipt
            self._evict()

        try:
            receipt.result = fn()
        except LedgerError as exc:
            self._finalize(receipt, TxStatus.FAILED, error=exc)
            LOGGER.info(
                'submission failed tx_id=%s operation=%s kind=%s detail=%s',
                receipt.tx_id,
                operation,
                exc.kind,
                exc.detail
            )
            return receipt
        except Exception as exc:
            self._finalize(receipt, TxStatus.FAILED, error=exc)
            raise

        self._finalize(receipt, TxStatus.CONFIRMED)
        return receipt

    def _finalize(self, receipt: TxReceipt, status: TxStatus, error: Exception | None = None) -> None:
        with self._lock:
            receipt.status = status
            receipt.finalized_at = datetime.now(timezone.utc)
            if isinstance(error, LedgerError):
                receipt.error_kind = error.kind
                receipt.error_detail = error.detail
                receipt.status_code = error.status_code
            elif error is not None:
                receipt.error_kind = type(error).__name__
                receipt.error_detail = str(error)
                receipt.status_code = 500
            self._evict()
        TRANSACTIONS_TOTAL.labels(operation=receipt.operation, status=status.value).inc()

    def _evict(self) -> None:
        # Caller holds _lock.
        excess = len(self._receipts) - self.capacity
        if excess <= 0:
            return
        stale: list[str] = []
        for tx_id, receipt in self._receipts.items():
            if len(stale) == excess:
                break
            if receipt.status is not TxStatus.PENDING:
                stale.append(tx_id)
        for tx_id in stale:
            del self._receipts[tx_id]
