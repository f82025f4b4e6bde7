from __future__ import annotations

from apps.ledger.contract_analyzer import ContractAnalyzer
from apps.ledger.fee_policy import FeePolicy
from apps.ledger.host import StaticHost
from apps.ledger.ledger_state import LedgerState
from apps.ledger.merkle_registry import MerkleRegistry
from apps.ledger.models import FeeState, normalize_address

OWNER = normalize_address('0x0000000000000000000000000000000000000a11')
TREASURY = normalize_address('0x000000000000000000000000000000000000fee1')
USER1 = normalize_address('0x70997970c51812dc3a010c7d01b50e0d17dc79c8')
USER2 = normalize_address('0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc')
USER3 = normalize_address('0x90f79bf6eb2c4f870365e785982e1f101e93b906')

PLATFORM_FEE = 10**15
GAS_PRICE = 10**9
NOW = 1_700_000_000

ROOT_A = '0x' + '11' * 32
ROOT_B = '0x' + '22' * 32

# Minimal runtime dispatcher exposing transfer(address,uint256) = 0xa9059cbb.
DISPATCHER_CODE = bytes.fromhex(
    '6080' '6040' '52' '34' '80' '15' '600f' '57' '6000' '80' 'fd' '5b' '50'
    '6004' '36' '10' '6028' '57' '6000' '35' '60e0' '1c' '80' '63a9059cbb'
    '14' '602d' '57' '5b' '6000' '80' 'fd' '5b' '00'
)
CONTRACT = normalize_address('0x5fbdb2315678afecb367f032d93f642f64180aa3')


def build_state(platform_fee: int = PLATFORM_FEE) -> LedgerState:
    return LedgerState(fee=FeeState(platform_fee=platform_fee, treasury=TREASURY, owner=OWNER))


def build_host(gas_price: int = GAS_PRICE) -> StaticHost:
    return StaticHost(gas_price=gas_price, clock=lambda: float(NOW))


def build_registry(platform_fee: int = PLATFORM_FEE) -> MerkleRegistry:
    state = build_state(platform_fee)
    return MerkleRegistry(state, build_host(), fees=FeePolicy(state))


def build_analyzer() -> ContractAnalyzer:
    state = build_state()
    state.deploy_code(CONTRACT, DISPATCHER_CODE)
    return ContractAnalyzer(state, build_host())
