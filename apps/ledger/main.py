from __future__ import annotations

import logging
from typing import Any, Callable

from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_client import make_asgi_app
from pydantic import BaseModel, Field

from .config import get_settings
from .errors import LedgerError
from .events import KafkaEventPublisher
from .host import connect_web3
from .merkle import leaf_for_address
from .service import LedgerServices, build_services

settings = get_settings()
logger = logging.getLogger(__name__)

# Wei-denominated amounts can exceed 64 bits; they travel as decimal strings.
AMOUNT_FIELDS = {
    'estimated_deployment_gas',
    'balance',
    'gas_price',
    'platform_fee',
    'deployment_cost',
    'required_fee'
}

app = FastAPI(title=settings.app_name, default_response_class=ORJSONResponse)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[x.strip() for x in settings.cors_origins.split(',') if x.strip()],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*']
)
app.mount('/metrics', make_asgi_app())

_services: LedgerServices | None = None
_publisher: KafkaEventPublisher | None = None


class AddTreeRequest(BaseModel):
    root: str
    description: str = ''
    list_size: int = Field(default=0, ge=0, le=2**63 - 1)
    payment: int = Field(default=0, ge=0)


class UpdateDescriptionRequest(BaseModel):
    description: str


class EstimateGasRequest(BaseModel):
    selector: str
    call_data: str = '0x'


class VerifyProofRequest(BaseModel):
    proof: list[str] = Field(default_factory=list)
    leaf: str | None = None
    address: str | None = None


class PlatformFeeRequest(BaseModel):
    platform_fee: int = Field(ge=0)


class TreasuryRequest(BaseModel):
    treasury: str


def _api_payload(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: str(item) if key in AMOUNT_FIELDS and isinstance(item, int) and not isinstance(item, bool)
            else _api_payload(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_api_payload(item) for item in value]
    return value


def _require_services() -> LedgerServices:
    assert _services is not None
    return _services


def _read(fn: Callable[[], Any]) -> Any:
    try:
        return fn()
    except LedgerError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


def _submit(operation: str, caller: str, fn: Callable[[], Any]) -> ORJSONResponse:
    receipt = _require_services().tracker.submit(operation, caller, fn)
    return ORJSONResponse(status_code=receipt.status_code, content=_api_payload(receipt.to_payload()))


def _hex_bytes(value: str, field: str) -> bytes:
    raw = value.strip()
    if raw[:2].lower() == '0x':
        raw = raw[2:]
    try:
        return bytes.fromhex(raw)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f'{field} is not valid hex') from exc


def _resolve_leaf(req: VerifyProofRequest) -> str:
    if req.leaf is not None:
        return req.leaf
    if req.address is None:
        raise HTTPException(status_code=422, detail='either leaf or address is required')
    address = req.address
    return _read(lambda: leaf_for_address(address))


def _maybe_sync(address: str) -> None:
    services = _require_services()
    if services.w3 is None:
        return
    try:
        services.state.sync_account(services.w3, address)
    except LedgerError:
        raise
    except Exception as exc:
        logger.warning('account sync failed address=%s; using local ledger state: %s', address, exc)


@app.on_event('startup')
async def startup() -> None:
    global _services, _publisher
    current = get_settings()
    logging.basicConfig(
        level=current.log_level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    w3 = connect_web3(current.rpc_url, current.rpc_timeout_seconds)
    _services = build_services(current, w3=w3)
    if current.events_kafka_enabled:
        try:
            _publisher = KafkaEventPublisher(current.kafka_bootstrap_servers, current.ledger_events_topic)
            _services.event_log.subscribe(_publisher)
        except Exception as exc:
            _publisher = None
            logger.warning('Kafka unavailable during startup; events stay in-process only: %s', exc)


@app.on_event('shutdown')
async def shutdown() -> None:
    global _publisher
    if _publisher is not None:
        _publisher.close()
        _publisher = None


@app.get('/health')
async def health() -> dict[str, str]:
    return {'status': 'ok'}


@app.get('/analyzer/deployment-cost')
async def deployment_cost(code_size: int = Query(..., ge=0), gas_price: int = Query(..., ge=0)) -> dict:
    services = _require_services()
    cost = _read(lambda: services.analyzer.calculate_deployment_cost(code_size, gas_price))
    # code_size echoes unbounded client input, so it travels as a string here.
    return _api_payload({'code_size': str(code_size), 'gas_price': gas_price, 'deployment_cost': cost})


@app.get('/analyzer/contracts/{address}')
async def analyze_contract(address: str) -> dict:
    services = _require_services()
    _read(lambda: _maybe_sync(address))
    analysis = _read(lambda: services.analyzer.analyze_contract(address))
    return _api_payload(analysis.to_payload())


@app.get('/analyzer/contracts/{address}/basic')
async def basic_info(address: str) -> dict:
    services = _require_services()
    _read(lambda: _maybe_sync(address))
    info = _read(lambda: services.analyzer.get_basic_info(address))
    return _api_payload(info.to_payload())


@app.get('/analyzer/contracts/{address}/functions/{selector}')
async def has_function(address: str, selector: str) -> dict:
    services = _require_services()
    present = _read(lambda: services.analyzer.has_function(address, selector))
    return {'address': address, 'selector': selector, 'has_function': present}


@app.post('/analyzer/contracts/{address}/estimate-gas')
async def estimate_gas(address: str, req: EstimateGasRequest) -> dict:
    services = _require_services()
    call_data = _hex_bytes(req.call_data, 'call_data')
    estimate = _read(lambda: services.analyzer.estimate_gas(address, req.selector, call_data))
    return _api_payload(estimate.to_payload())


@app.post('/merkle/trees')
async def add_merkle_tree(
    req: AddTreeRequest,
    caller: str = Header(..., alias='X-Caller-Address')
) -> ORJSONResponse:
    registry = _require_services().registry
    return _submit(
        'addMerkleTree',
        caller,
        lambda: registry.add_merkle_tree(caller, req.root, req.description, req.list_size, req.payment)
    )


@app.delete('/merkle/trees/{root}')
async def remove_merkle_tree(root: str, caller: str = Header(..., alias='X-Caller-Address')) -> ORJSONResponse:
    registry = _require_services().registry
    return _submit('removeMerkleTree', caller, lambda: registry.remove_merkle_tree(caller, root))


@app.patch('/merkle/trees/{root}')
async def update_merkle_tree_description(
    root: str,
    req: UpdateDescriptionRequest,
    caller: str = Header(..., alias='X-Caller-Address')
) -> ORJSONResponse:
    registry = _require_services().registry
    return _submit(
        'updateMerkleTreeDescription',
        caller,
        lambda: registry.update_merkle_tree_description(caller, root, req.description)
    )


@app.get('/merkle/trees/{root}')
async def merkle_tree_info(root: str) -> dict:
    registry = _require_services().registry
    return _read(lambda: registry.get_merkle_tree_info(root)).to_payload()


@app.get('/merkle/trees/{root}/valid')
async def merkle_root_valid(root: str) -> dict:
    registry = _require_services().registry
    return {'root': root, 'valid': registry.is_merkle_root_valid(root)}


@app.post('/merkle/trees/{root}/verify')
async def verify_proof(root: str, req: VerifyProofRequest) -> dict:
    registry = _require_services().registry
    leaf = _resolve_leaf(req)
    valid = _read(lambda: registry.verify_proof(root, req.proof, leaf))
    return {'root': root, 'leaf': leaf, 'valid': valid}


@app.post('/merkle/trees/{root}/validate')
async def validate_proof(
    root: str,
    req: VerifyProofRequest,
    caller: str = Header(..., alias='X-Caller-Address')
) -> ORJSONResponse:
    registry = _require_services().registry
    leaf = _resolve_leaf(req)
    return _submit('validateProof', caller, lambda: registry.validate_proof(caller, root, req.proof, leaf))


@app.get('/merkle/trees/{root}/stats')
async def validation_stats(root: str) -> dict:
    registry = _require_services().registry
    return _read(lambda: registry.get_validation_stats(root)).to_payload()


@app.get('/merkle/creators/{address}/trees')
async def trees_by_creator(address: str) -> dict:
    registry = _require_services().registry
    records = _read(lambda: registry.trees_by_creator(address))
    return {'creator': address, 'trees': [record.to_payload() for record in records]}


@app.get('/merkle/fee')
async def platform_fee() -> dict:
    services = _require_services()
    fee_state = services.state.fee_state
    return _api_payload({'platform_fee': services.registry.get_platform_fee(), 'treasury': fee_state.treasury})


@app.put('/merkle/fee')
async def set_platform_fee(
    req: PlatformFeeRequest,
    caller: str = Header(..., alias='X-Caller-Address')
) -> ORJSONResponse:
    fees = _require_services().fees
    return _submit('setPlatformFee', caller, lambda: fees.set_platform_fee(caller, req.platform_fee))


@app.put('/merkle/treasury')
async def set_treasury(
    req: TreasuryRequest,
    caller: str = Header(..., alias='X-Caller-Address')
) -> ORJSONResponse:
    fees = _require_services().fees
    return _submit('setTreasury', caller, lambda: fees.set_treasury(caller, req.treasury))


@app.get('/merkle/newcomers/{address}')
async def user_newcomer(address: str) -> dict:
    services = _require_services()
    newcomer = _read(lambda: services.registry.is_user_newcomer(address))
    required = _read(lambda: services.fees.required_fee(address))
    return _api_payload({'address': address, 'is_newcomer': newcomer, 'required_fee': required})


@app.get('/transactions/{tx_id}')
async def transaction_status(tx_id: str) -> dict:
    tracker = _require_services().tracker
    try:
        receipt = tracker.get(tx_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f'tx_id={tx_id} not found') from exc
    return _api_payload(receipt.to_payload())


@app.get('/events')
async def events(
    since: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000)
) -> dict:
    event_log = _require_services().event_log
    rows = [entry.to_payload() for entry in event_log.since(since, limit=limit)]
    return _api_payload({'since': since, 'rows': rows})


@app.get('/')
async def root() -> dict:
    return {'service': settings.app_name, 'status': 'ok'}
