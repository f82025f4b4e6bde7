from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar

from confluent_kafka import Producer
from prometheus_client import Counter

from .models import Analysis, GasEstimate

LOGGER = logging.getLogger('contract_ledger.events')

EVENTS_EMITTED_TOTAL = Counter(
    'contract_ledger_events_emitted_total',
    'Events appended to the ledger event log',
    ['event']
)


class LedgerEvent:
    name: ClassVar[str] = 'LedgerEvent'

    def to_payload(self) -> dict[str, Any]:
        return {'event': self.name, **asdict(self)}  # type: ignore[call-overload]


@dataclass(frozen=True)
class ContractAnalyzed(LedgerEvent):
    name: ClassVar[str] = 'ContractAnalyzed'
    address: str
    analysis: Analysis


@dataclass(frozen=True)
class GasEstimated(LedgerEvent):
    name: ClassVar[str] = 'GasEstimated'
    address: str
    selector: str
    estimate: GasEstimate


@dataclass(frozen=True)
class TreeAdded(LedgerEvent):
    name: ClassVar[str] = 'TreeAdded'
    root: str
    creator: str


@dataclass(frozen=True)
class TreeRemoved(LedgerEvent):
    name: ClassVar[str] = 'TreeRemoved'
    root: str


@dataclass(frozen=True)
class TreeUpdated(LedgerEvent):
    name: ClassVar[str] = 'TreeUpdated'
    root: str


@dataclass(frozen=True)
class ProofValidated(LedgerEvent):
    name: ClassVar[str] = 'ProofValidated'
    root: str
    caller: str
    valid: bool


@dataclass(frozen=True)
class LoggedEvent:
    sequence: int
    event: LedgerEvent
    emitted_at: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            'sequence': self.sequence,
            'emitted_at': self.emitted_at.isoformat(),
            **self.event.to_payload()
        }


Subscriber = Callable[[LoggedEvent], None]


class EventLog:
    """Append-only, sequence-numbered notification log.

    ``record`` sequences a batch under the log's lock, so a transaction's
    events stay contiguous. ``notify`` runs subscribers and must be called
    without holding any ledger lock; a slow consumer then delays only the
    thread that committed, never other writers.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[LoggedEvent] = []
        self._subscribers: list[Subscriber] = []

    def __len__(self) -> int:
        return len(self._entries)

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def record(self, events: list[LedgerEvent]) -> list[LoggedEvent]:
        entries: list[LoggedEvent] = []
        with self._lock:
            emitted_at = datetime.now(timezone.utc)
            for event in events:
                entry = LoggedEvent(sequence=len(self._entries) + 1, event=event, emitted_at=emitted_at)
                self._entries.append(entry)
                entries.append(entry)

        for entry in entries:
            EVENTS_EMITTED_TOTAL.labels(event=entry.event.name).inc()
            LOGGER.debug('event recorded sequence=%s event=%s', entry.sequence, entry.event.name)
        return entries

    def notify(self, entries: list[LoggedEvent]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for entry in entries:
            for callback in subscribers:
                try:
                    callback(entry)
                except Exception:
                    LOGGER.exception(
                        'event subscriber failed sequence=%s event=%s',
                        entry.sequence,
                        entry.event.name
                    )

    def extend(self, events: list[LedgerEvent]) -> list[LoggedEvent]:
        entries = self.record(events)
        self.notify(entries)
        return entries

    def append(self, event: LedgerEvent) -> LoggedEvent:
        return self.extend([event])[0]

    def since(self, sequence: int = 0, limit: int | None = None) -> list[LoggedEvent]:
        with self._lock:
            entries = self._entries[max(0, sequence):]
        if limit is not None:
            entries = entries[:limit]
        return entries

    def of_type(self, event_type: type[LedgerEvent]) -> list[LedgerEvent]:
        return [entry.event for entry in self.since() if isinstance(entry.event, event_type)]


class KafkaEventPublisher:
    def __init__(self, bootstrap_servers: str, topic: str, client_id: str = 'contract-ledger-events') -> None:
        self.topic = topic
        self.producer = Producer(
            {
                'bootstrap.servers': bootstrap_servers,
                'client.id': client_id
            }
        )

    def __call__(self, entry: LoggedEvent) -> None:
        self.producer.produce(
            topic=self.topic,
            key=entry.event.name,
            value=json.dumps(entry.to_payload()).encode('utf-8'),
            headers=[('sequence', str(entry.sequence).encode('utf-8'))]
        )
        self.producer.poll(0)

    def close(self) -> None:
        self.producer.flush(5)
