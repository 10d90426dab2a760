from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from services.common.chain_registry import IntegrationType
from services.common.errors import ConfigurationError

LOGGER = logging.getLogger('socketmesh.address_ledger')

DEPLOYMENT_MODES = ('dev', 'surge', 'prod')

CONTRACT_ROLES = {
    'socket': 'socket',
    'notary': 'notary',
    'FastSwitchboard': 'fast_switchboard',
    'OptimisticSwitchboard': 'optimistic_switchboard',
    'TransmitManager': 'transmit_manager',
    'SocketBatcher': 'socket_batcher'
}


class IntegrationConfig(BaseModel):
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    switchboard: str
    capacitor: str | None = None
    decapacitor: str | None = None
    capacitor_type: int | None = Field(default=None, alias='capacitorType')
    max_packet_length: int | None = Field(default=None, alias='maxPacketLength')

    def matches(self, switchboard: str, capacitor_type: int, max_packet_length: int) -> bool:
        return (
            self.switchboard.lower() == switchboard.lower()
            and self.capacitor_type == capacitor_type
            and self.max_packet_length == max_packet_length
        )


class ChainRecord(BaseModel):
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    socket: str | None = None
    notary: str | None = None
    fast_switchboard: str | None = Field(default=None, alias='FastSwitchboard')
    optimistic_switchboard: str | None = Field(default=None, alias='OptimisticSwitchboard')
    transmit_manager: str | None = Field(default=None, alias='TransmitManager')
    socket_batcher: str | None = Field(default=None, alias='SocketBatcher')
    integrations: dict[str, dict[str, IntegrationConfig]] = Field(default_factory=dict)

    def address(self, role: str) -> str | None:
        attr = CONTRACT_ROLES.get(role)
        if attr is not None:
            return getattr(self, attr)
        value = (self.model_extra or {}).get(role)
        return str(value) if isinstance(value, str) and value else None

    def integration(self, sibling: int, integration_type: IntegrationType) -> IntegrationConfig | None:
        return self.integrations.get(str(sibling), {}).get(integration_type.value)

    def siblings_with(self, integration_type: IntegrationType) -> list[int]:
        found: list[int] = []
        for sibling, configs in self.integrations.items():
            if integration_type.value not in configs:
                continue
            try:
                found.append(int(sibling))
            except ValueError:
                LOGGER.warning('ignoring non-numeric sibling key=%s', sibling)
        return found

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode='json')


def ledger_path(ledger_dir: Path | str, mode: str) -> Path:
    return Path(ledger_dir) / f'{mode}_addresses.json'


def _parse_records(payload: Any, path: Path) -> dict[int, ChainRecord]:
    if not isinstance(payload, dict):
        raise ConfigurationError(f'ledger {path} must contain an object keyed by chain slug')

    records: dict[int, ChainRecord] = {}
    for key, raw in payload.items():
        try:
            slug = int(key)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f'ledger {path} has non-numeric chain key: {key}') from exc
        if not isinstance(raw, dict):
            raise ConfigurationError(f'ledger {path} entry for chain {slug} must be an object', chain_slug=slug)
        try:
            records[slug] = ChainRecord.model_validate(raw)
        except ValidationError as exc:
            raise ConfigurationError(f'ledger {path} entry for chain {slug} is invalid: {exc}', chain_slug=slug) from exc
    return records


class AddressLedger:
    def __init__(self, path: Path, records: dict[int, ChainRecord]) -> None:
        self.path = path
        self._records = records
        self._chain_locks: dict[int, threading.Lock] = {slug: threading.Lock() for slug in records}
        self._file_lock = threading.Lock()
        self._snapshots: dict[int, dict[str, Any]] = {
            slug: record.to_payload() for slug, record in records.items()
        }

    @classmethod
    def load(cls, ledger_dir: Path | str, mode: str) -> AddressLedger:
        if mode not in DEPLOYMENT_MODES:
            raise ConfigurationError(f'unsupported deployment mode: {mode}')
        return load_ledger(ledger_path(ledger_dir, mode))

    def chains(self) -> list[int]:
        return list(self._records.keys())

    def get(self, slug: int) -> ChainRecord | None:
        return self._records.get(slug)

    def __contains__(self, slug: object) -> bool:
        return slug in self._records

    def record_integration(
        self,
        slug: int,
        sibling: int,
        integration_type: IntegrationType,
        config: IntegrationConfig
    ) -> None:
        record = self._records.get(slug)
        if record is None:
            raise ConfigurationError(f'chain {slug} is not in the ledger', chain_slug=slug)

        with self._chain_locks[slug]:
            siblings = dict(record.integrations)
            configs = dict(siblings.get(str(sibling), {}))
            configs[integration_type.value] = config
            siblings[str(sibling)] = configs
            record.integrations = siblings
            self._snapshots[slug] = record.to_payload()

        self.store(slug)

    def store(self, slug: int) -> None:
        with self._file_lock:
            payload = {str(key): value for key, value in sorted(self._snapshots.items())}
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f'.{self.path.name}.', dir=str(self.path.parent))
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as handle:
                    json.dump(payload, handle, indent=2)
                    handle.write('\n')
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        LOGGER.debug('ledger stored chain_slug=%s path=%s', slug, self.path)

    def snapshot(self) -> dict[str, Any]:
        with self._file_lock:
            return {str(key): value for key, value in sorted(self._snapshots.items())}


def load_ledger(path: Path | str) -> AddressLedger:
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f'ledger not found: {path}')

    try:
        payload = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f'ledger {path} is unreadable: {exc}') from exc

    records = _parse_records(payload, path)
    LOGGER.info('ledger loaded path=%s chains=%s', path, len(records))
    return AddressLedger(path, records)
