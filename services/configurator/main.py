from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from services.common.address_ledger import AddressLedger
from services.common.chain_registry import ChainRegistry, load_chain_registry
from services.common.errors import ConfigurationError, ConfiguratorError

from .config import Settings, get_settings
from .contracts import ChainClient
from .limits import ParameterUpdater
from .metrics import RunMetrics
from .outcomes import RunReport, StepOutcome, failed, unsupported
from .registration import register_chain
from .remote_links import REMOTE_LINK_STEP, sync_remote_links

LOGGER = logging.getLogger('socketmesh.configurator')

CHAIN_STEP = 'configure_chain'


def _as_configurator_error(exc: Exception, chain_slug: int | None) -> ConfiguratorError:
    if isinstance(exc, ConfiguratorError):
        return exc
    return ConfiguratorError(f'{type(exc).__name__}: {exc}', chain_slug=chain_slug)


class Configurator:
    def __init__(
        self,
        settings: Settings,
        registry: ChainRegistry,
        ledger: AddressLedger,
        client_factory: Callable[[int], object] | None = None
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.ledger = ledger
        self.client_factory = client_factory or self._rpc_client
        self.updater = ParameterUpdater()
        self._clients: dict[int, object] = {}
        self._clients_lock = threading.Lock()

    def _rpc_client(self, chain_slug: int) -> ChainClient:
        return ChainClient.from_rpc(
            chain_slug,
            self.registry.rpc_url(chain_slug),
            self.settings.signer_key,
            self.settings.tx_timeout_seconds
        )

    def client_for(self, chain_slug: int):
        with self._clients_lock:
            client = self._clients.get(chain_slug)
            if client is None:
                client = self.client_factory(chain_slug)
                self._clients[chain_slug] = client
            return client

    def configure_chain(self, chain_slug: int) -> list[StepOutcome]:
        try:
            client = self.client_for(chain_slug)
        except ConfigurationError as exc:
            return [failed(CHAIN_STEP, chain_slug, None, 'client', exc)]

        LOGGER.info('configuring chain_slug=%s siblings=%s', chain_slug, self.registry.siblings(chain_slug))
        outcomes: list[StepOutcome] = []
        try:
            register_chain(
                self.ledger,
                self.registry,
                client,
                chain_slug,
                self.settings.capacitor_type,
                self.settings.max_packet_length,
                self.settings.attester_address,
                outcomes=outcomes
            )
            if self.settings.update_limits:
                record = self.ledger.get(chain_slug)
                if record is not None:
                    self.updater.update_chain(client, self.registry, record, chain_slug, outcomes=outcomes)
        except Exception as exc:
            LOGGER.exception('chain configuration aborted chain_slug=%s', chain_slug)
            outcomes.append(failed(CHAIN_STEP, chain_slug, None, 'chain', _as_configurator_error(exc, chain_slug)))
        return outcomes

    def run(self) -> RunReport:
        report = RunReport()

        for chain_slug in self.ledger.chains():
            if self.registry.get(chain_slug) is None:
                report.add(unsupported(CHAIN_STEP, chain_slug, None, 'chain', 'chain not in registry'))

        chains = [slug for slug in self.registry.slugs() if slug in self.ledger]
        LOGGER.info(
            'configuration run starting mode=%s chains=%s workers=%s',
            self.settings.mode,
            chains,
            self.settings.max_workers
        )

        if self.settings.max_workers > 1 and len(chains) > 1:
            with ThreadPoolExecutor(max_workers=self.settings.max_workers, thread_name_prefix='configure') as pool:
                results = list(pool.map(self.configure_chain, chains))
        else:
            results = [self.configure_chain(slug) for slug in chains]

        for outcomes in results:
            report.extend(outcomes)

        if self.settings.sync_remote_links:
            links: list[StepOutcome] = []
            try:
                sync_remote_links(self.ledger, self.registry, self.client_for, outcomes=links)
            except Exception as exc:
                LOGGER.exception('remote link sync aborted')
                links.append(failed(REMOTE_LINK_STEP, 0, None, 'remote_links', _as_configurator_error(exc, None)))
            report.extend(links)

        LOGGER.info(
            'configuration run complete transactions=%s summary=%s',
            report.transactions,
            report.summary()
        )
        return report


def main() -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    try:
        registry = load_chain_registry(settings.chain_registry_path or None)
        ledger = AddressLedger.load(settings.ledger_dir, settings.mode)
        if not settings.signer_key:
            raise ConfigurationError('SOCKET_SIGNER_KEY is not set')
        report = Configurator(settings, registry, ledger).run()
    except ConfigurationError as exc:
        LOGGER.error('configuration error: %s', exc.detail)
        return 2
    except Exception:
        LOGGER.exception('configuration run aborted')
        return 1

    metrics = RunMetrics()
    metrics.observe(report)
    try:
        metrics.write(settings.metrics_path)
    except OSError as exc:
        LOGGER.error('metrics not written path=%s error=%s', settings.metrics_path, exc)

    for outcome in report.failed:
        LOGGER.warning('unresolved %s', outcome.describe())
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
