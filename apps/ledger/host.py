from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from web3 import Web3

LOGGER = logging.getLogger('contract_ledger.host')


class HostEnvironment(Protocol):
    def gas_price(self) -> int: ...

    def now(self) -> int: ...


class StaticHost:
    """Fixed gas price and wall-clock seconds."""

    def __init__(self, gas_price: int, clock: Callable[[], float] = time.time) -> None:
        self._gas_price = gas_price
        self._clock = clock

    def gas_price(self) -> int:
        return self._gas_price

    def now(self) -> int:
        return int(self._clock())


class Web3Host:
    """Gas price read from a node, falling back to a static price when the
    node cannot answer."""

    def __init__(self, w3: Web3, fallback: StaticHost) -> None:
        self.w3 = w3
        self.fallback = fallback

    def gas_price(self) -> int:
        try:
            return int(self.w3.eth.gas_price)
        except Exception as exc:
            LOGGER.warning('gas price unavailable from rpc; using static price: %s', exc)
            return self.fallback.gas_price()

    def now(self) -> int:
        return self.fallback.now()


def connect_web3(rpc_url: str, timeout_seconds: int) -> Web3 | None:
    if not rpc_url:
        LOGGER.info('RPC_URL not set; running fully in-process')
        return None
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': timeout_seconds}))
    if not w3.is_connected():
        LOGGER.warning('rpc is not reachable at %s; running fully in-process', rpc_url)
        return None
    return w3
