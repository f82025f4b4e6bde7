"""Deterministic gas and cost formulas.

``deployment_cost`` is a deliberate approximation of what deploying a
contract of a given runtime size costs: a flat transaction base plus a flat
per-byte charge for storing the code. It does not replay opcode-level
accounting (constructor execution, memory expansion, calldata pricing of
init code), so it will not match a node's own estimate to the unit.

All arithmetic runs on Python ints and is bounded to the unsigned 256-bit
range used on-chain; anything outside it raises ``ArithmeticOverflow``
instead of wrapping.
"""
from __future__ import annotations

from .errors import ArithmeticOverflow
from .models import GasEstimate

BASE_GAS = 21_000
PER_BYTE_GAS = 200

TX_DATA_ZERO_GAS = 4
TX_DATA_NONZERO_GAS = 16
CALL_EXECUTION_GAS = 2_600

UINT256_MAX = 2**256 - 1


def checked_uint(value: int, label: str) -> int:
    if value < 0:
        raise ArithmeticOverflow(f'{label}={value} is negative')
    if value > UINT256_MAX:
        raise ArithmeticOverflow(f'{label} exceeds uint256 range')
    return value


def deployment_gas(code_size: int) -> int:
    checked_uint(code_size, 'code_size')
    return checked_uint(BASE_GAS + code_size * PER_BYTE_GAS, 'deployment_gas')


def deployment_cost(code_size: int, gas_price: int) -> int:
    gas = deployment_gas(code_size)
    checked_uint(gas_price, 'gas_price')
    return checked_uint(gas * gas_price, 'deployment_cost')


def intrinsic_call_gas(call_data: bytes) -> int:
    zero_bytes = call_data.count(0)
    nonzero_bytes = len(call_data) - zero_bytes
    return BASE_GAS + zero_bytes * TX_DATA_ZERO_GAS + nonzero_bytes * TX_DATA_NONZERO_GAS


def package_estimate(success: bool, gas_used: int, gas_price: int) -> GasEstimate:
    return GasEstimate(
        success=bool(success),
        gas_used=checked_uint(int(gas_used), 'gas_used'),
        gas_price=checked_uint(int(gas_price), 'gas_price')
    )
