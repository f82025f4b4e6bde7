#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import secrets
import time
import urllib.error
import urllib.request

CALLER = '0x70997970C51812dc3A010C7d01b50e0d17dc79C8'


def http_request(url: str, method: str = 'GET', payload: dict | None = None, caller: str | None = None) -> tuple[int, dict]:
    headers = {'Content-Type': 'application/json'}
    if caller:
        headers['X-Caller-Address'] = caller
    body = json.dumps(payload).encode('utf-8') if payload is not None else None
    req = urllib.request.Request(url=url, method=method, data=body, headers=headers)
    try:
        with urllib.request.urlopen(req, timeout=10) as resp:
            return resp.status, json.loads(resp.read().decode('utf-8'))
    except urllib.error.HTTPError as exc:
        # Failed submissions still carry a receipt body.
        return exc.code, json.loads(exc.read().decode('utf-8') or '{}')


def http_get(url: str) -> dict:
    return http_request(url)[1]


def wait_until(fn, timeout_seconds: int, interval_seconds: float, label: str):
    started = time.time()
    last_error = None
    while time.time() - started < timeout_seconds:
        try:
            result = fn()
            if result:
                return result
        except Exception as exc:  # noqa: BLE001
            last_error = exc
        time.sleep(interval_seconds)

    if last_error is not None:
        raise TimeoutError(f'{label} timed out. last_error={last_error}') from last_error
    raise TimeoutError(f'{label} timed out.')


def events_for_root(api: str, root: str) -> list[str]:
    names: list[str] = []
    since = 0
    while True:
        rows = http_get(f'{api}/events?since={since}&limit=1000').get('rows', [])
        if not rows:
            return names
        names.extend(row.get('event') for row in rows if row.get('root') == root)
        since = rows[-1]['sequence']


def expect(condition: bool, message: str) -> None:
    if not condition:
        raise SystemExit(f'[fail] {message}')


def main() -> None:
    parser = argparse.ArgumentParser(description='Merkle registry add -> validate -> remove smoke check')
    parser.add_argument('--api-base', default='http://localhost:8000', help='Ledger API base URL')
    parser.add_argument('--timeout', type=int, default=60, help='Timeout seconds')
    parser.add_argument('--caller', default=CALLER, help='Address submitting the registry transactions')
    args = parser.parse_args()

    api = args.api_base.rstrip('/')

    print('[check] waiting for API health...')
    wait_until(
        fn=lambda: http_get(f'{api}/health').get('status') == 'ok',
        timeout_seconds=args.timeout,
        interval_seconds=2,
        label='api health'
    )

    fee = http_get(f'{api}/merkle/newcomers/{args.caller}')
    root = '0x' + secrets.token_hex(32)

    print(f'[check] adding tree root={root} required_fee={fee["required_fee"]}')
    status, receipt = http_request(
        f'{api}/merkle/trees',
        method='POST',
        payload={
            'root': root,
            'description': 'e2e allowlist',
            'list_size': 2,
            'payment': int(fee['required_fee'])
        },
        caller=args.caller
    )
    expect(status == 200 and receipt.get('status') == 'confirmed', f'add failed status={status} body={receipt}')

    tx = http_get(f"{api}/transactions/{receipt['tx_id']}")
    expect(tx.get('status') == 'confirmed', f'receipt lookup mismatch body={tx}')

    valid = http_get(f'{api}/merkle/trees/{root}/valid')
    expect(valid.get('valid') is True, f'root not valid after add body={valid}')

    status, duplicate = http_request(
        f'{api}/merkle/trees',
        method='POST',
        payload={'root': root, 'description': 'again', 'list_size': 2, 'payment': 0},
        caller=args.caller
    )
    expect(status in {402, 409} and duplicate.get('status') == 'failed', f'duplicate accepted body={duplicate}')

    print('[check] removing tree...')
    status, removed = http_request(f'{api}/merkle/trees/{root}', method='DELETE', caller=args.caller)
    expect(status == 200 and removed.get('status') == 'confirmed', f'remove failed status={status} body={removed}')

    valid = http_get(f'{api}/merkle/trees/{root}/valid')
    expect(valid.get('valid') is False, f'root still valid after remove body={valid}')

    names = events_for_root(api, root)
    expect(names == ['TreeAdded', 'TreeRemoved'], f'unexpected event sequence {names}')

    print('[ok] registry add/validate/remove and event log verified.')


if __name__ == '__main__':
    main()
