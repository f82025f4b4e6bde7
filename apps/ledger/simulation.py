from __future__ import annotations

import logging
from typing import Protocol

from web3 import Web3
from web3.exceptions import ContractLogicError, Web3RPCError

from .cost_model import CALL_EXECUTION_GAS, intrinsic_call_gas, package_estimate
from .introspection import CodeIntrospector
from .models import GasEstimate

LOGGER = logging.getLogger('contract_ledger.simulation')


class CallSimulator(Protocol):
    def simulate(self, address: str, selector: str, call_data: bytes, gas_price: int) -> GasEstimate: ...


def _effective_selector(selector: str, call_data: bytes) -> str:
    if len(call_data) >= 4:
        return '0x' + call_data[:4].hex()
    return selector


class LedgerCallSimulator:
    """In-process stand-in for a node's eth_call.

    A target without code behaves like a plain transfer and always succeeds.
    A target with code succeeds only when the called selector appears in its
    dispatch table; a miss is reported as a revert that consumed the
    intrinsic gas.
    """

    def __init__(self, introspector: CodeIntrospector) -> None:
        self.introspector = introspector

    def simulate(self, address: str, selector: str, call_data: bytes, gas_price: int) -> GasEstimate:
        intrinsic = intrinsic_call_gas(call_data)
        if not self.introspector.has_any_code(address):
            return package_estimate(True, intrinsic, gas_price)

        called = _effective_selector(selector, call_data)
        if called not in self.introspector.dispatch_selectors(address):
            LOGGER.debug('simulated call reverted address=%s selector=%s', address, called)
            return package_estimate(False, intrinsic, gas_price)
        return package_estimate(True, intrinsic + CALL_EXECUTION_GAS, gas_price)


class Web3CallSimulator:
    """Asks a node for ``eth_estimateGas``.

    Reverts and JSON-RPC error replies (out of gas, insufficient funds) mean
    the call cannot complete and are reported as a failed estimate. Transport
    failures are not an answer about the call and propagate.
    """

    def __init__(self, w3: Web3) -> None:
        self.w3 = w3

    def simulate(self, address: str, selector: str, call_data: bytes, gas_price: int) -> GasEstimate:
        data = call_data or bytes.fromhex(selector[2:])
        try:
            gas_used = self.w3.eth.estimate_gas(
                {
                    'to': Web3.to_checksum_address(address),
                    'data': '0x' + data.hex()
                }
            )
        except ContractLogicError as exc:
            LOGGER.info('estimate_gas reverted address=%s selector=%s reason=%s', address, selector, exc)
            return package_estimate(False, 0, gas_price)
        except (Web3RPCError, ValueError) as exc:
            # Some providers still raise node error replies as a plain ValueError.
            LOGGER.info('estimate_gas rejected by node address=%s selector=%s error=%s', address, selector, exc)
            return package_estimate(False, 0, gas_price)
        return package_estimate(True, int(gas_used), gas_price)
