import threading
import unittest

from services.common.address_ledger import ChainRecord
from services.common.errors import OnChainRejection
from services.configurator.limits import (
    ATTEST_GAS_LIMIT,
    EXECUTION_OVERHEAD,
    PROPOSE_GAS_LIMIT,
    ParameterUpdater
)
from services.configurator.outcomes import StepStatus
from services.configurator.tests.chain_fakes import FakeChainClient, chain_payload, synthetic_registry

PAYLOAD = chain_payload(1)
FAST_SWITCHBOARD = PAYLOAD['FastSwitchboard']
TRANSMIT_MANAGER = PAYLOAD['TransmitManager']


class ParameterUpdaterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = FakeChainClient(1)
        self.updater = ParameterUpdater()

    def _overhead(self, dst: int, value: int):
        return self.updater.update_parameter(
            self.client,
            EXECUTION_OVERHEAD,
            'FastSwitchboard',
            FAST_SWITCHBOARD,
            1,
            dst,
            value
        )

    def test_successive_updates_use_increasing_nonces(self) -> None:
        outcomes = [self._overhead(2, 300000 + step) for step in range(5)]

        self.assertTrue(all(outcome.status is StepStatus.APPLIED for outcome in outcomes))
        self.assertEqual(self.client.used_nonces, [0, 1, 2, 3, 4])
        self.assertEqual(self.client.limits[(FAST_SWITCHBOARD.lower(), 'executionOverhead', 2)], 300004)

    def test_matching_value_is_skipped_without_signing(self) -> None:
        self.client.limits[(FAST_SWITCHBOARD.lower(), 'executionOverhead', 2)] = 300000

        outcome = self._overhead(2, 300000)

        self.assertEqual(outcome.status, StepStatus.SKIPPED)
        self.assertNotIn('nextNonce', [call[2] for call in self.client.calls])
        self.assertEqual(self.client.transactions, [])

    def test_rejected_update_does_not_consume_a_nonce(self) -> None:
        self.client.fail('setExecutionOverhead', OnChainRejection('execution reverted'), dst=2)

        rejected = self._overhead(2, 300000)
        accepted = self._overhead(3, 300000)

        self.assertEqual(rejected.status, StepStatus.FAILED)
        self.assertEqual(rejected.error_kind, 'rejected')
        self.assertEqual(accepted.status, StepStatus.APPLIED)
        self.assertEqual(self.client.used_nonces, [0])
        self.assertEqual(self.client.transactions_for('setExecutionOverhead')[0][3][0], 0)

    def test_out_of_range_value_fails_before_submitting(self) -> None:
        outcome = self._overhead(2, -1)

        self.assertEqual(outcome.status, StepStatus.FAILED)
        self.assertEqual(outcome.error_kind, 'config')
        self.assertEqual(self.client.transactions, [])

    def test_concurrent_updates_never_share_a_nonce(self) -> None:
        results = []
        results_lock = threading.Lock()

        def worker(dst: int) -> None:
            outcome = self._overhead(dst, 250000)
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker, args=(dst,)) for dst in range(10, 18)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertTrue(all(outcome.status is StepStatus.APPLIED for outcome in results))
        self.assertEqual(self.client.used_nonces, list(range(8)))

    def test_nonces_are_tracked_per_contract(self) -> None:
        self.updater.update_parameter(self.client, PROPOSE_GAS_LIMIT, 'TransmitManager', TRANSMIT_MANAGER, 1, 2, 150000)
        self.updater.update_parameter(self.client, ATTEST_GAS_LIMIT, 'FastSwitchboard', FAST_SWITCHBOARD, 1, 2, 150000)
        self._overhead(2, 300000)

        nonces = [tx[3][0] for tx in self.client.transactions]
        self.assertEqual(nonces, [0, 0, 1])


class ChainParameterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = FakeChainClient(1)
        self.registry = synthetic_registry()
        self.updater = ParameterUpdater()

    def test_chain_update_takes_values_from_destination(self) -> None:
        record = ChainRecord.model_validate(PAYLOAD)

        outcomes = self.updater.update_chain(self.client, self.registry, record, 1)

        self.assertEqual(len(outcomes), 8)
        self.assertTrue(all(outcome.status is StepStatus.APPLIED for outcome in outcomes))
        limits = self.client.limits
        self.assertEqual(limits[(TRANSMIT_MANAGER.lower(), 'proposeGasLimit', 2)], 150000)
        self.assertEqual(limits[(TRANSMIT_MANAGER.lower(), 'proposeGasLimit', 3)], 900000)
        self.assertEqual(limits[(FAST_SWITCHBOARD.lower(), 'attestGasLimit', 3)], 800000)
        self.assertEqual(limits[(FAST_SWITCHBOARD.lower(), 'executionOverhead', 3)], 700000)
        optimistic = PAYLOAD['OptimisticSwitchboard'].lower()
        self.assertEqual(limits[(optimistic, 'executionOverhead', 2)], 300000)

        again = self.updater.update_chain(self.client, self.registry, record, 1)
        self.assertTrue(all(outcome.status is StepStatus.SKIPPED for outcome in again))
        self.assertEqual(len(self.client.transactions), 8)

    def test_submission_order(self) -> None:
        record = ChainRecord.model_validate(PAYLOAD)

        self.updater.update_chain(self.client, self.registry, record, 1)

        functions = [tx[2] for tx in self.client.transactions]
        self.assertEqual(
            functions,
            ['setProposeGasLimit'] * 2 + ['setAttestGasLimit'] * 2 + ['setExecutionOverhead'] * 4
        )

    def test_missing_contract_fails_only_its_parameters(self) -> None:
        payload = dict(PAYLOAD)
        del payload['TransmitManager']
        record = ChainRecord.model_validate(payload)

        outcomes = self.updater.update_chain(self.client, self.registry, record, 1)

        failures = [outcome for outcome in outcomes if outcome.status is StepStatus.FAILED]
        self.assertEqual([outcome.dst for outcome in failures], [2, 3])
        self.assertTrue(all(outcome.error_kind == 'config' for outcome in failures))
        self.assertEqual(len(self.client.transactions), 6)


if __name__ == '__main__':
    unittest.main()
