#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from typing import Any

from services.common.address_ledger import AddressLedger, ChainRecord
from services.common.chain_registry import ChainRegistry, IntegrationType, load_chain_registry
from services.common.errors import ConfigurationError


def _sibling_status(registry: ChainRegistry, ledger: AddressLedger, record: ChainRecord, src: int, dst: int) -> dict[str, Any]:
    registered: list[str] = []
    for integration_type in IntegrationType:
        config = record.integration(dst, integration_type)
        if config is not None and config.capacitor:
            registered.append(integration_type.value)

    variant = registry.native_variant(src, dst)
    status: dict[str, Any] = {
        'sibling': dst,
        'registered': registered,
        'native_variant': variant.value if variant is not None else None
    }

    native = record.integration(dst, IntegrationType.NATIVE)
    if native is not None:
        remote_record = ledger.get(dst)
        remote = remote_record.integration(src, IntegrationType.NATIVE) if remote_record is not None else None
        status['native_switchboard'] = native.switchboard
        status['remote_switchboard'] = remote.switchboard if remote is not None else None
    return status


def mesh_status(registry: ChainRegistry, ledger: AddressLedger, only_chain: int | None = None) -> list[dict[str, Any]]:
    chains: list[dict[str, Any]] = []
    for src in ledger.chains():
        if only_chain is not None and src != only_chain:
            continue
        record = ledger.get(src)
        spec = registry.get(src)
        if record is None:
            continue
        if spec is None:
            chains.append({'chain_slug': src, 'known': False, 'siblings': []})
            continue

        siblings = [_sibling_status(registry, ledger, record, src, dst) for dst in registry.siblings(src)]
        chains.append(
            {
                'chain_slug': src,
                'chain_key': spec.chain_key,
                'network_class': spec.network_class,
                'known': True,
                'contracts': {
                    role: record.address(role)
                    for role in ('socket', 'notary', 'FastSwitchboard', 'OptimisticSwitchboard', 'TransmitManager', 'SocketBatcher')
                },
                'siblings': siblings
            }
        )
    return chains


def main() -> int:
    parser = argparse.ArgumentParser(description='Report switchboard registration state from the address ledger')
    parser.add_argument('--mode', default='dev', choices=['dev', 'surge', 'prod'], help='Deployment mode')
    parser.add_argument('--ledger-dir', default='deployments', help='Directory holding <mode>_addresses.json')
    parser.add_argument('--chain', type=int, default=None, help='Only report this chain slug')
    parser.add_argument('--registry', default='', help='Optional chain registry override JSON')
    args = parser.parse_args()

    try:
        registry = load_chain_registry(args.registry or None)
        ledger = AddressLedger.load(args.ledger_dir, args.mode)
    except ConfigurationError as exc:
        print(f'[status] {exc.detail}', file=sys.stderr)
        return 2

    print(
        json.dumps(
            {
                'checked_at': datetime.now(timezone.utc).isoformat(),
                'mode': args.mode,
                'ledger': str(ledger.path),
                'chains': mesh_status(registry, ledger, args.chain)
            },
            indent=2
        )
    )
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
