from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

ONE_GWEI = 10**9


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'y', 'on'}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, '').strip()
    if not raw:
        return default
    try:
        return int(raw, 0)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    app_name: str
    environment: Literal['dev', 'prod', 'test']
    cors_origins: str
    log_level: str
    default_gas_price_wei: int
    platform_fee_wei: int
    treasury_address: str
    owner_address: str
    rpc_url: str
    rpc_timeout_seconds: int
    events_kafka_enabled: bool
    kafka_bootstrap_servers: str
    ledger_events_topic: str
    tx_receipt_capacity: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    environment = os.getenv('ENVIRONMENT', 'dev').strip().lower()
    if environment not in {'dev', 'prod', 'test'}:
        environment = 'dev'

    return Settings(
        app_name=os.getenv('APP_NAME', 'contract-ledger-api'),
        environment=environment,  # type: ignore[arg-type]
        cors_origins=os.getenv('CORS_ORIGINS', 'http://localhost:3000'),
        log_level=os.getenv('LOG_LEVEL', 'INFO').strip().upper() or 'INFO',
        default_gas_price_wei=max(0, _env_int('DEFAULT_GAS_PRICE_WEI', ONE_GWEI)),
        platform_fee_wei=max(0, _env_int('PLATFORM_FEE_WEI', 10**15)),
        treasury_address=os.getenv('TREASURY_ADDRESS', '0x000000000000000000000000000000000000fee1'),
        owner_address=os.getenv('OWNER_ADDRESS', '0x0000000000000000000000000000000000000a11'),
        rpc_url=os.getenv('RPC_URL', '').strip(),
        rpc_timeout_seconds=_env_int('RPC_TIMEOUT_SECONDS', 10),
        events_kafka_enabled=_env_bool('EVENTS_KAFKA_ENABLED', False),
        kafka_bootstrap_servers=os.getenv('KAFKA_BOOTSTRAP_SERVERS', 'redpanda:9092'),
        ledger_events_topic=os.getenv('LEDGER_EVENTS_TOPIC', 'contract_ledger_events'),
        tx_receipt_capacity=max(1, _env_int('TX_RECEIPT_CAPACITY', 10_000))
    )
