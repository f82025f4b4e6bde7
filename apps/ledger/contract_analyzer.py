from __future__ import annotations

import logging

from . import cost_model
from .events import ContractAnalyzed, GasEstimated
from .errors import InvalidAddress
from .host import HostEnvironment
from .introspection import CodeIntrospector
from .ledger_state import LedgerState
from .models import Analysis, BasicInfo, GasEstimate, is_zero_address, normalize_address, normalize_selector
from .simulation import CallSimulator, LedgerCallSimulator

LOGGER = logging.getLogger('contract_ledger.analyzer')


class ContractAnalyzer:
    """Answers "what is this address" and "what would this call cost".

    Analysis and gas estimates are observational: they append events to the
    ledger's event log but never open a state transaction.
    """

    def __init__(
        self,
        state: LedgerState,
        host: HostEnvironment,
        simulator: CallSimulator | None = None
    ) -> None:
        self.state = state
        self.host = host
        self.introspector = CodeIntrospector(state)
        self.simulator = simulator or LedgerCallSimulator(self.introspector)

    def analyze_contract(self, address: str) -> Analysis:
        address = normalize_address(address)
        if is_zero_address(address):
            raise InvalidAddress(f'Invalid contract address: {address}')

        code_size = self.introspector.code_size_of(address)
        is_contract = code_size > 0
        estimated_gas = 0
        if is_contract:
            estimated_gas = cost_model.deployment_cost(code_size, self.host.gas_price())

        analysis = Analysis(
            address=address,
            is_contract=is_contract,
            code_size=code_size,
            # Same as code_size until raw code length and logical size diverge.
            contract_size=code_size,
            estimated_deployment_gas=estimated_gas
        )
        self.state.event_log.append(ContractAnalyzed(address=address, analysis=analysis))
        LOGGER.info(
            'contract analyzed address=%s is_contract=%s code_size=%s',
            address,
            is_contract,
            code_size
        )
        return analysis

    def get_basic_info(self, address: str) -> BasicInfo:
        # The zero address is accepted here, unlike analyze_contract.
        address = normalize_address(address)
        code_size = self.introspector.code_size_of(address)
        return BasicInfo(
            code_size=code_size,
            balance=self.state.balance_of(address),
            is_contract=code_size > 0
        )

    def calculate_deployment_cost(self, code_size: int, gas_price: int) -> int:
        return cost_model.deployment_cost(code_size, gas_price)

    def has_function(self, address: str, selector: str | bytes) -> bool:
        # Coarse check: any code counts. The selector is validated but not looked up.
        normalize_selector(selector)
        return self.introspector.has_any_code(address)

    def estimate_gas(self, address: str, selector: str | bytes, call_data: bytes) -> GasEstimate:
        address = normalize_address(address)
        selector = normalize_selector(selector)
        estimate = self.simulator.simulate(address, selector, bytes(call_data), self.host.gas_price())
        self.state.event_log.append(GasEstimated(address=address, selector=selector, estimate=estimate))
        LOGGER.info(
            'gas estimated address=%s selector=%s success=%s gas_used=%s',
            address,
            selector,
            estimate.success,
            estimate.gas_used
        )
        return estimate
