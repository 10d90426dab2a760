from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from services.common.errors import ConfigurationError

LOGGER = logging.getLogger('socketmesh.chain_registry')


class IntegrationType(str, Enum):
    FAST = 'FAST'
    OPTIMISTIC = 'OPTIMISTIC'
    NATIVE = 'NATIVE_BRIDGE'


class NativeSwitchboard(str, Enum):
    ARBITRUM_L1 = 'arbitrum-l1'
    ARBITRUM_L2 = 'arbitrum-l2'
    OPTIMISM = 'optimism'
    POLYGON_L1 = 'polygon-l1'
    POLYGON_L2 = 'polygon-l2'


@dataclass(frozen=True)
class ChainSpec:
    slug: int
    chain_key: str
    name: str
    network_class: Literal['testnet', 'mainnet']
    rpc_env_key: str
    default_rpc_url: str
    # Target limits applied on every source chain for this destination.
    propose_gas_limit: int = 150000
    attest_gas_limit: int = 150000
    execution_overhead: int = 300000


CHAIN_SPECS = [
    ChainSpec(
        slug=5,
        chain_key='goerli',
        name='Ethereum Goerli',
        network_class='testnet',
        rpc_env_key='GOERLI_RPC',
        default_rpc_url='https://ethereum-goerli-rpc.publicnode.com'
    ),
    ChainSpec(
        slug=421613,
        chain_key='arbitrum-goerli',
        name='Arbitrum Goerli',
        network_class='testnet',
        rpc_env_key='ARBITRUM_GOERLI_RPC',
        default_rpc_url='https://goerli-rollup.arbitrum.io/rpc',
        propose_gas_limit=1500000,
        attest_gas_limit=1500000,
        execution_overhead=1500000
    ),
    ChainSpec(
        slug=420,
        chain_key='optimism-goerli',
        name='Optimism Goerli',
        network_class='testnet',
        rpc_env_key='OPTIMISM_GOERLI_RPC',
        default_rpc_url='https://goerli.optimism.io'
    ),
    ChainSpec(
        slug=80001,
        chain_key='polygon-mumbai',
        name='Polygon Mumbai',
        network_class='testnet',
        rpc_env_key='POLYGON_MUMBAI_RPC',
        default_rpc_url='https://polygon-mumbai-bor-rpc.publicnode.com'
    ),
    ChainSpec(
        slug=97,
        chain_key='bsc-testnet',
        name='BNB Chain Testnet',
        network_class='testnet',
        rpc_env_key='BSC_TESTNET_RPC',
        default_rpc_url='https://bsc-testnet-rpc.publicnode.com'
    ),
    ChainSpec(
        slug=1,
        chain_key='mainnet',
        name='Ethereum',
        network_class='mainnet',
        rpc_env_key='ETHEREUM_RPC',
        default_rpc_url='https://ethereum-rpc.publicnode.com',
        propose_gas_limit=200000,
        attest_gas_limit=200000,
        execution_overhead=400000
    ),
    ChainSpec(
        slug=42161,
        chain_key='arbitrum',
        name='Arbitrum One',
        network_class='mainnet',
        rpc_env_key='ARBITRUM_RPC',
        default_rpc_url='https://arbitrum-one-rpc.publicnode.com',
        propose_gas_limit=1500000,
        attest_gas_limit=1500000,
        execution_overhead=1500000
    ),
    ChainSpec(
        slug=10,
        chain_key='optimism',
        name='Optimism',
        network_class='mainnet',
        rpc_env_key='OPTIMISM_RPC',
        default_rpc_url='https://optimism-rpc.publicnode.com'
    ),
    ChainSpec(
        slug=137,
        chain_key='polygon-mainnet',
        name='Polygon',
        network_class='mainnet',
        rpc_env_key='POLYGON_RPC',
        default_rpc_url='https://polygon-bor-rpc.publicnode.com'
    ),
    ChainSpec(
        slug=56,
        chain_key='bsc',
        name='BNB Chain',
        network_class='mainnet',
        rpc_env_key='BSC_RPC',
        default_rpc_url='https://bsc-rpc.publicnode.com'
    )
]

NATIVE_SWITCHBOARDS: dict[int, dict[int, NativeSwitchboard]] = {
    5: {
        421613: NativeSwitchboard.ARBITRUM_L1,
        420: NativeSwitchboard.OPTIMISM,
        80001: NativeSwitchboard.POLYGON_L1
    },
    421613: {5: NativeSwitchboard.ARBITRUM_L2},
    420: {5: NativeSwitchboard.OPTIMISM},
    80001: {5: NativeSwitchboard.POLYGON_L2},
    1: {
        42161: NativeSwitchboard.ARBITRUM_L1,
        10: NativeSwitchboard.OPTIMISM,
        137: NativeSwitchboard.POLYGON_L1
    },
    42161: {1: NativeSwitchboard.ARBITRUM_L2},
    10: {1: NativeSwitchboard.OPTIMISM},
    137: {1: NativeSwitchboard.POLYGON_L2}
}

LIMIT_FIELDS = ('propose_gas_limit', 'attest_gas_limit', 'execution_overhead')


class ChainRegistry:
    def __init__(
        self,
        chains: list[ChainSpec],
        native_switchboards: dict[int, dict[int, NativeSwitchboard]] | None = None
    ) -> None:
        self._chains: dict[int, ChainSpec] = {}
        for spec in chains:
            self._chains[spec.slug] = spec
        self._native = {
            src: dict(pairs)
            for src, pairs in (native_switchboards or {}).items()
        }

    def slugs(self) -> list[int]:
        # Testnets first, then mainnets, each in declaration order.
        testnets = [slug for slug, spec in self._chains.items() if spec.network_class == 'testnet']
        mainnets = [slug for slug, spec in self._chains.items() if spec.network_class == 'mainnet']
        return testnets + mainnets

    def get(self, slug: int) -> ChainSpec | None:
        return self._chains.get(slug)

    def require(self, slug: int) -> ChainSpec:
        spec = self._chains.get(slug)
        if spec is None:
            raise ConfigurationError(f'unknown chain slug: {slug}', chain_slug=slug)
        return spec

    def siblings(self, slug: int) -> list[int]:
        network_class = self.require(slug).network_class
        return [
            other
            for other in self.slugs()
            if other != slug and self._chains[other].network_class == network_class
        ]

    def native_variant(self, src: int, dst: int) -> NativeSwitchboard | None:
        return self._native.get(src, {}).get(dst)

    def rpc_url(self, slug: int) -> str:
        spec = self.require(slug)
        from_env = os.getenv(spec.rpc_env_key, '').strip() if spec.rpc_env_key else ''
        return from_env or spec.default_rpc_url

    def limits(self, dst: int) -> dict[str, int]:
        spec = self.require(dst)
        return {name: int(getattr(spec, name)) for name in LIMIT_FIELDS}


def default_registry() -> ChainRegistry:
    return ChainRegistry(CHAIN_SPECS, NATIVE_SWITCHBOARDS)


def _safe_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _spec_from_payload(item: dict[str, Any], base: ChainSpec | None) -> ChainSpec | None:
    slug = _safe_int(item.get('slug', item.get('chain_id')), 0)
    if slug <= 0:
        return None

    network_class = str(item.get('network_class', base.network_class if base else 'testnet')).strip().lower()
    if network_class not in {'testnet', 'mainnet'}:
        network_class = 'testnet'

    if base is None:
        base = ChainSpec(
            slug=slug,
            chain_key=str(slug),
            name=str(slug),
            network_class=network_class,  # type: ignore[arg-type]
            rpc_env_key='',
            default_rpc_url=''
        )

    limits = {
        name: _safe_int(item.get(name), getattr(base, name))
        for name in LIMIT_FIELDS
    }
    return replace(
        base,
        chain_key=str(item.get('chain_key', base.chain_key)),
        name=str(item.get('name', base.name)),
        network_class=network_class,  # type: ignore[arg-type]
        rpc_env_key=str(item.get('rpc_env_key', base.rpc_env_key)),
        default_rpc_url=str(item.get('default_rpc_url', base.default_rpc_url)),
        **limits
    )


def _native_from_payload(raw: Any) -> dict[int, dict[int, NativeSwitchboard]]:
    parsed: dict[int, dict[int, NativeSwitchboard]] = {}
    if not isinstance(raw, dict):
        return parsed

    for src_raw, pairs in raw.items():
        src = _safe_int(src_raw, 0)
        if src <= 0 or not isinstance(pairs, dict):
            continue
        for dst_raw, value in pairs.items():
            dst = _safe_int(dst_raw, 0)
            if dst <= 0:
                continue
            try:
                variant = NativeSwitchboard(str(value).strip().lower())
            except ValueError:
                LOGGER.warning('ignoring unknown native switchboard src=%s dst=%s value=%s', src, dst, value)
                continue
            parsed.setdefault(src, {})[dst] = variant
    return parsed


def load_chain_registry(path: Path | str | None = None) -> ChainRegistry:
    """Build the registry, merging an optional JSON override over the built-in tables.

    The override may add chains, change limits or RPC settings of known chains,
    and replace native switchboard pairs per source chain. A missing file is not
    an error; an unreadable one is.
    """
    if not path:
        return default_registry()

    registry_path = Path(path)
    if not registry_path.exists():
        LOGGER.warning('chain registry override not found path=%s; using built-in registry', registry_path)
        return default_registry()

    try:
        payload = json.loads(registry_path.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f'invalid chain registry file {registry_path}: {exc}') from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f'chain registry file {registry_path} must contain an object')

    chains: dict[int, ChainSpec] = {spec.slug: spec for spec in CHAIN_SPECS}
    raw_chains = payload.get('chains') if isinstance(payload.get('chains'), list) else []
    for item in raw_chains:
        if not isinstance(item, dict):
            continue
        slug = _safe_int(item.get('slug', item.get('chain_id')), 0)
        spec = _spec_from_payload(item, chains.get(slug))
        if spec is not None:
            chains[spec.slug] = spec

    native = {src: dict(pairs) for src, pairs in NATIVE_SWITCHBOARDS.items()}
    native.update(_native_from_payload(payload.get('native_switchboards')))

    return ChainRegistry(list(chains.values()), native)
