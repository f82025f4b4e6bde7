from __future__ import annotations

from .ledger_state import LedgerState
from .models import normalize_address

PUSH1 = 0x60
PUSH4 = 0x63
PUSH32 = 0x7f


def parse_push4_selectors(bytecode: bytes) -> frozenset[str]:
    """
    Heuristically extract 4-byte selectors from runtime bytecode: every PUSH4
    operand is treated as a dispatcher candidate. PUSH data of other widths is
    skipped so operand bytes are never read as opcodes.
    """
    selectors: set[str] = set()
    i = 0
    n = len(bytecode)
    while i < n:
        op = bytecode[i]
        if PUSH1 <= op <= PUSH32:
            push_len = op - PUSH1 + 1
            if op == PUSH4 and i + 1 + 4 <= n:
                selectors.add('0x' + bytecode[i + 1:i + 5].hex())
            i += 1 + push_len
        else:
            i += 1
    return frozenset(selectors)


class CodeIntrospector:
    def __init__(self, state: LedgerState) -> None:
        self.state = state

    def code_size_of(self, address: str) -> int:
        return len(self.state.code_of(normalize_address(address)))

    def has_any_code(self, address: str) -> bool:
        return self.code_size_of(address) > 0

    def dispatch_selectors(self, address: str) -> frozenset[str]:
        return parse_push4_selectors(self.state.code_of(normalize_address(address)))
