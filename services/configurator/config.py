from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Literal


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'y', 'on'}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, '').strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    mode: Literal['dev', 'surge', 'prod']
    ledger_dir: str
    chain_registry_path: str
    capacitor_type: int
    max_packet_length: int
    attester_address: str
    tx_timeout_seconds: int
    max_workers: int
    metrics_path: str
    update_limits: bool
    sync_remote_links: bool
    log_level: str
    signer_key: str = field(default='', repr=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    mode = os.getenv('DEPLOYMENT_MODE', 'dev').strip().lower()
    if mode not in {'dev', 'surge', 'prod'}:
        mode = 'dev'

    return Settings(
        mode=mode,  # type: ignore[arg-type]
        ledger_dir=os.getenv('LEDGER_DIR', 'deployments'),
        chain_registry_path=os.getenv('CHAIN_REGISTRY_PATH', '').strip(),
        capacitor_type=_env_int('CAPACITOR_TYPE', 1),
        max_packet_length=_env_int('MAX_PACKET_LENGTH', 10),
        attester_address=os.getenv('ATTESTER_ADDRESS', '').strip(),
        tx_timeout_seconds=max(1, _env_int('TX_TIMEOUT_SECONDS', 180)),
        max_workers=max(1, _env_int('CONFIGURE_MAX_WORKERS', 1)),
        metrics_path=os.getenv('CONFIGURE_METRICS_PATH', '').strip(),
        update_limits=_env_bool('CONFIGURE_UPDATE_LIMITS', True),
        sync_remote_links=_env_bool('CONFIGURE_SYNC_REMOTE_LINKS', True),
        log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        signer_key=os.getenv('SOCKET_SIGNER_KEY', '').strip()
    )
