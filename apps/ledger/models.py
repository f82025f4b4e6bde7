from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, NamedTuple

from web3 import Web3

from .errors import InvalidAddress, InvalidRoot, InvalidSelector

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
ZERO_ROOT = '0x' + '00' * 32

_ADDRESS_RE = re.compile(r'0x[a-fA-F0-9]{40}')
_ROOT_RE = re.compile(r'0x[a-fA-F0-9]{64}')
_SELECTOR_RE = re.compile(r'0x[a-fA-F0-9]{8}')


def _hex_prefixed(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    raw = str(value or '').strip()
    if raw[:2].lower() == '0x':
        return '0x' + raw[2:]
    return '0x' + raw


def normalize_address(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)) and len(value) != 20:
        raise InvalidAddress(f'address must be 20 bytes, got {len(value)}')
    candidate = _hex_prefixed(value)
    if not _ADDRESS_RE.fullmatch(candidate):
        raise InvalidAddress(f'malformed address: {value!r}')
    return Web3.to_checksum_address(candidate.lower())


def normalize_root(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)) and len(value) != 32:
        raise InvalidRoot(f'merkle root must be 32 bytes, got {len(value)}')
    candidate = _hex_prefixed(value)
    if not _ROOT_RE.fullmatch(candidate):
        raise InvalidRoot(f'malformed merkle root: {value!r}')
    return candidate.lower()


def normalize_selector(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)) and len(value) != 4:
        raise InvalidSelector(f'selector must be 4 bytes, got {len(value)}')
    candidate = _hex_prefixed(value)
    if not _SELECTOR_RE.fullmatch(candidate):
        raise InvalidSelector(f'malformed selector: {value!r}')
    return candidate.lower()


def is_zero_address(address: str) -> bool:
    return address.lower() == ZERO_ADDRESS


@dataclass(frozen=True)
class Analysis:
    address: str
    is_contract: bool
    code_size: int
    contract_size: int
    estimated_deployment_gas: int

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GasEstimate:
    success: bool
    gas_used: int
    gas_price: int

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TreeRecord:
    root: str
    description: str
    timestamp: int
    list_size: int
    creator: str
    is_active: bool

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ValidationStats:
    root: str
    description: str
    creator: str
    timestamp: int
    validation_count: int
    is_active: bool

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FeeState:
    platform_fee: int
    treasury: str
    owner: str

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


class BasicInfo(NamedTuple):
    code_size: int
    balance: int
    is_contract: bool

    def to_payload(self) -> dict[str, Any]:
        return self._asdict()
