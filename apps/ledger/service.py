from __future__ import annotations

import logging
from dataclasses import dataclass

from web3 import Web3

from .config import Settings
from .contract_analyzer import ContractAnalyzer
from .events import EventLog
from .fee_policy import FeePolicy
from .host import HostEnvironment, StaticHost, Web3Host
from .ledger_state import LedgerState
from .merkle_registry import MerkleRegistry
from .models import FeeState, normalize_address
from .simulation import CallSimulator, Web3CallSimulator
from .transactions import TransactionTracker

LOGGER = logging.getLogger('contract_ledger.service')


@dataclass
class LedgerServices:
    state: LedgerState
    host: HostEnvironment
    analyzer: ContractAnalyzer
    fees: FeePolicy
    registry: MerkleRegistry
    tracker: TransactionTracker
    w3: Web3 | None = None

    @property
    def event_log(self) -> EventLog:
        return self.state.event_log


def build_services(
    settings: Settings,
    w3: Web3 | None = None,
    host: HostEnvironment | None = None,
    event_log: EventLog | None = None
) -> LedgerServices:
    fee = FeeState(
        platform_fee=settings.platform_fee_wei,
        treasury=normalize_address(settings.treasury_address),
        owner=normalize_address(settings.owner_address)
    )
    state = LedgerState(fee=fee, event_log=event_log)

    static_host = StaticHost(gas_price=settings.default_gas_price_wei)
    simulator: CallSimulator | None = None
    if host is None:
        host = Web3Host(w3, static_host) if w3 is not None else static_host
    if w3 is not None:
        simulator = Web3CallSimulator(w3)

    fees = FeePolicy(state)
    services = LedgerServices(
        state=state,
        host=host,
        analyzer=ContractAnalyzer(state, host, simulator=simulator),
        fees=fees,
        registry=MerkleRegistry(state, host, fees=fees),
        tracker=TransactionTracker(capacity=settings.tx_receipt_capacity),
        w3=w3
    )
    LOGGER.info(
        'ledger services ready owner=%s treasury=%s platform_fee=%s rpc=%s',
        fee.owner,
        fee.treasury,
        fee.platform_fee,
        'connected' if w3 is not None else 'none'
    )
    return services
