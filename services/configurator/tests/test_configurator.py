import json
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

from services.common.address_ledger import AddressLedger
from services.common.errors import ConfigurationError
from services.configurator.config import Settings, get_settings
from services.configurator.contracts import ChainClient
from services.configurator.main import Configurator, main
from services.configurator.metrics import RunMetrics
from services.configurator.outcomes import StepStatus
from services.configurator.tests.chain_fakes import (
    SIGNER_KEY,
    FakeChainClient,
    chain_payload,
    read_ledger,
    synthetic_registry,
    write_ledger
)

BASE_SETTINGS = Settings(
    mode='dev',
    ledger_dir='',
    chain_registry_path='',
    capacitor_type=1,
    max_packet_length=10,
    attester_address='',
    tx_timeout_seconds=30,
    max_workers=1,
    metrics_path='',
    update_limits=True,
    sync_remote_links=True,
    log_level='INFO',
    signer_key=SIGNER_KEY
)


def _signature(report) -> list[tuple]:
    return sorted(
        (outcome.step, outcome.src, outcome.dst or 0, outcome.subject, outcome.status.value)
        for outcome in report.outcomes
    )


class ConfiguratorRunTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name
        self.registry = synthetic_registry()
        self.payload = {
            '1': chain_payload(1, native_siblings=(2,)),
            '2': chain_payload(2, native_siblings=(1,)),
            '3': chain_payload(3)
        }
        self.clients = {slug: FakeChainClient(slug) for slug in (1, 2, 3)}

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _configurator(self, ledger=None, factory=None, **overrides) -> Configurator:
        settings = replace(BASE_SETTINGS, ledger_dir=self.tmp, **overrides)
        ledger = ledger or write_ledger(self.tmp, self.payload)
        return Configurator(settings, self.registry, ledger, client_factory=factory or self.clients.__getitem__)

    def test_second_run_sends_no_transactions(self) -> None:
        first = self._configurator().run()

        self.assertEqual(first.failed, [])
        self.assertGreater(first.transactions, 0)
        self.assertEqual(len(first.by_status(StepStatus.UNSUPPORTED)), 0)

        reloaded = AddressLedger.load(self.tmp, 'dev')
        second = self._configurator(ledger=reloaded).run()

        self.assertEqual(second.transactions, 0)
        self.assertEqual(second.summary()['applied'], 0)
        self.assertEqual(second.failed, [])

    def test_run_persists_every_pair(self) -> None:
        self._configurator().run()

        on_disk = json.loads((Path(self.tmp) / 'dev_addresses.json').read_text(encoding='utf-8'))
        self.assertEqual(set(on_disk['1']['integrations']['2']), {'NATIVE_BRIDGE', 'FAST', 'OPTIMISTIC'})
        self.assertEqual(set(on_disk['1']['integrations']['3']), {'FAST', 'OPTIMISTIC'})
        self.assertEqual(set(on_disk['3']['integrations']), {'1', '2'})
        self.assertNotIn('100', on_disk)

    def test_client_failure_is_isolated_to_its_chain(self) -> None:
        def factory(slug: int):
            if slug == 2:
                raise ConfigurationError('no rpc url configured for chain 2', chain_slug=2)
            return self.clients[slug]

        report = self._configurator(factory=factory).run()

        client_failures = [outcome for outcome in report.failed if outcome.step == 'configure_chain']
        self.assertEqual([outcome.src for outcome in client_failures], [2])
        self.assertEqual(client_failures[0].error_kind, 'config')
        self.assertGreater(len(self.clients[1].transactions), 0)
        self.assertGreater(len(self.clients[3].transactions), 0)
        self.assertIn('FAST', read_ledger(AddressLedger.load(self.tmp, 'dev'))['3']['integrations']['2'])

    def test_unexpected_error_aborts_only_that_chain(self) -> None:
        self.clients[3].fail('capacitors__', RuntimeError('boom'), dst=2)

        with self.assertLogs('socketmesh.configurator', level='ERROR'):
            report = self._configurator().run()

        aborted = [outcome for outcome in report.failed if outcome.subject == 'chain']
        self.assertEqual([outcome.src for outcome in aborted], [3])
        self.assertEqual(aborted[0].error_kind, 'error')
        self.assertIn('RuntimeError', aborted[0].reason)
        self.assertIn('1', read_ledger(AddressLedger.load(self.tmp, 'dev'))['2']['integrations'])

        # Work confirmed before the error is still reported.
        before = [
            outcome
            for outcome in report.outcomes
            if outcome.src == 3 and outcome.step == 'register_switchboard'
        ]
        self.assertEqual([(outcome.dst, outcome.status) for outcome in before], [(1, StepStatus.APPLIED)])
        self.assertIsNotNone(before[0].tx_hash)
        self.assertEqual(
            sum(1 for outcome in report.outcomes if outcome.src == 3 and outcome.transacted),
            len(self.clients[3].transactions)
        )

    def test_unexpected_error_during_link_sync_keeps_earlier_links(self) -> None:
        self.clients[2].fail('remoteNativeSwitchboard', RuntimeError('boom'))

        with self.assertLogs('socketmesh.configurator', level='ERROR'):
            report = self._configurator().run()

        links = [outcome for outcome in report.outcomes if outcome.step == 'remote_link']
        self.assertEqual([(outcome.src, outcome.status) for outcome in links], [(1, StepStatus.APPLIED), (0, StepStatus.FAILED)])
        self.assertEqual(links[1].error_kind, 'error')
        self.assertGreater(report.summary()['applied'], 1)

    def test_ledger_chain_missing_from_registry_is_unsupported(self) -> None:
        self.payload['999'] = chain_payload(999)
        requested = []

        def factory(slug: int):
            requested.append(slug)
            return self.clients[slug]

        report = self._configurator(factory=factory).run()

        unknown = [outcome for outcome in report.outcomes if outcome.src == 999]
        self.assertEqual(len(unknown), 1)
        self.assertEqual(unknown[0].status, StepStatus.UNSUPPORTED)
        self.assertNotIn(999, requested)

    def test_parallel_run_matches_sequential(self) -> None:
        sequential = self._configurator().run()

        parallel_tmp = tempfile.TemporaryDirectory()
        self.addCleanup(parallel_tmp.cleanup)
        clients = {slug: FakeChainClient(slug) for slug in (1, 2, 3)}
        settings = replace(BASE_SETTINGS, ledger_dir=parallel_tmp.name, max_workers=3)
        ledger = write_ledger(parallel_tmp.name, self.payload)
        parallel = Configurator(settings, self.registry, ledger, client_factory=clients.__getitem__).run()

        self.assertEqual(_signature(parallel), _signature(sequential))
        for slug, client in clients.items():
            self.assertEqual(len(client.transactions), len(self.clients[slug].transactions))

    def test_toggles_skip_limits_and_links(self) -> None:
        report = self._configurator(update_limits=False, sync_remote_links=False).run()

        steps = {outcome.step for outcome in report.outcomes}
        self.assertEqual(steps, {'register_switchboard'})

    def test_attester_granted_when_configured(self) -> None:
        attester = '0x' + '77' * 20
        report = self._configurator(attester_address=attester, update_limits=False).run()

        grants = [outcome for outcome in report.outcomes if outcome.step == 'grant_attester']
        self.assertEqual(len(grants), 6)
        self.assertTrue(all(outcome.status is StepStatus.APPLIED for outcome in grants))

    def test_metrics_are_written(self) -> None:
        report = self._configurator().run()
        path = Path(self.tmp) / 'configure.prom'

        metrics = RunMetrics()
        metrics.observe(report)
        metrics.write(str(path))

        text = path.read_text(encoding='utf-8')
        self.assertIn('socketmesh_configure_steps_total', text)
        self.assertIn('socketmesh_configure_transactions_total{chain_slug="1"}', text)


class ConfiguratorMainTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name
        get_settings.cache_clear()
        self.addCleanup(get_settings.cache_clear)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _env(self, **extra: str) -> dict[str, str]:
        env = {
            'DEPLOYMENT_MODE': 'dev',
            'LEDGER_DIR': self.tmp,
            'CHAIN_REGISTRY_PATH': '',
            'CONFIGURE_METRICS_PATH': '',
            'SOCKET_SIGNER_KEY': SIGNER_KEY
        }
        env.update(extra)
        return env

    def test_missing_ledger_exits_with_configuration_error(self) -> None:
        with patch.dict('os.environ', self._env(), clear=False):
            self.assertEqual(main(), 2)

    def test_missing_signer_key_exits_with_configuration_error(self) -> None:
        write_ledger(self.tmp, {'5': chain_payload(5)})

        with patch.dict('os.environ', self._env(SOCKET_SIGNER_KEY=''), clear=False):
            self.assertEqual(main(), 2)

    def test_successful_run_writes_ledger_and_metrics(self) -> None:
        write_ledger(self.tmp, {'5': chain_payload(5), '80001': chain_payload(80001)})
        metrics_path = str(Path(self.tmp) / 'configure.prom')
        clients: dict[int, FakeChainClient] = {}

        def from_rpc(slug: int, *args, **kwargs) -> FakeChainClient:
            return clients.setdefault(slug, FakeChainClient(slug))

        with patch.dict('os.environ', self._env(CONFIGURE_METRICS_PATH=metrics_path), clear=False):
            with patch.object(ChainClient, 'from_rpc', side_effect=from_rpc):
                self.assertEqual(main(), 0)

        on_disk = json.loads((Path(self.tmp) / 'dev_addresses.json').read_text(encoding='utf-8'))
        self.assertIn('80001', on_disk['5']['integrations'])
        self.assertIn('FAST', on_disk['80001']['integrations']['5'])
        self.assertTrue(Path(metrics_path).exists())

    def test_unwritable_metrics_path_is_logged_not_fatal(self) -> None:
        write_ledger(self.tmp, {'5': chain_payload(5)})
        metrics_path = str(Path(self.tmp) / 'missing' / 'configure.prom')

        with patch.dict('os.environ', self._env(CONFIGURE_METRICS_PATH=metrics_path), clear=False):
            with patch.object(ChainClient, 'from_rpc', side_effect=lambda slug, *args, **kwargs: FakeChainClient(slug)):
                with self.assertLogs('socketmesh.configurator', level='ERROR') as logs:
                    self.assertEqual(main(), 0)

        self.assertTrue(any('metrics not written' in line for line in logs.output))
        self.assertFalse(Path(metrics_path).exists())


if __name__ == '__main__':
    unittest.main()
