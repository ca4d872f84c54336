#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import time
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime, timezone


def http_get(url: str) -> dict:
    req = urllib.request.Request(url=url, method='GET', headers={'Accept': 'application/json'})
    with urllib.request.urlopen(req, timeout=30) as resp:
        return json.loads(resp.read().decode('utf-8'))


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


def main() -> None:
    parser = argparse.ArgumentParser(description='Resolve one page of a configured agent registry through the API')
    parser.add_argument('--api-base', default='http://localhost:8000', help='Agent registry API base URL')
    parser.add_argument('--registry', default='', help='Registry address (defaults to the API default registry)')
    parser.add_argument('--page', type=int, default=0)
    parser.add_argument('--page-size', type=int, default=10)
    parser.add_argument('--timeout', type=int, default=60, help='Timeout seconds')
    args = parser.parse_args()

    api = args.api_base.rstrip('/')

    print('[check] waiting for API health...')
    wait_until(
        fn=lambda: http_get(f'{api}/health').get('status') == 'ok',
        timeout_seconds=args.timeout,
        interval_seconds=2,
        label='api health'
    )

    registry = args.registry.strip()
    if not registry:
        registry = http_get(f'{api}/registries').get('default') or ''
        if not registry:
            raise SystemExit('no registries configured')

    total = http_get(f'{api}/registries/{registry}/total')['total']
    print(f'[check] registry={registry} total={total}')

    query = urllib.parse.urlencode({'page': args.page, 'page_size': args.page_size})
    try:
        page = http_get(f'{api}/registries/{registry}/agents?{query}')
    except urllib.error.HTTPError as exc:
        raise SystemExit(f'page resolution failed: {exc.code} {exc.read().decode("utf-8", "replace")}') from exc

    items = page.get('items', [])
    partial = [item for item in items if item.get('status') == 'partial']
    for item in partial:
        print(f"[check] partial name={item.get('name', '?')} error={item.get('error', '')[:120]}")

    print(
        json.dumps(
            {
                'status': 'ok',
                'checked_at': datetime.now(timezone.utc).isoformat(),
                'api_base': api,
                'registry': registry,
                'total': total,
                'page': args.page,
                'items': len(items),
                'partial': len(partial)
            },
            indent=2
        )
    )


if __name__ == '__main__':
    main()
