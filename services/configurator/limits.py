from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from services.common.address_ledger import ChainRecord
from services.common.chain_registry import ChainRegistry
from services.common.errors import ConfigurationError, ConfiguratorError
from services.common.update_codec import (
    ATTEST_GAS_LIMIT_UPDATE,
    EXECUTION_OVERHEAD_UPDATE,
    PROPOSE_GAS_LIMIT_UPDATE,
    update_digest
)

from .outcomes import StepOutcome, applied, failed, skipped

LOGGER = logging.getLogger('socketmesh.limits')

LIMITS_STEP = 'update_parameter'


@dataclass(frozen=True)
class ParameterKind:
    tag: str
    getter: str
    setter: str
    limit_field: str


PROPOSE_GAS_LIMIT = ParameterKind(PROPOSE_GAS_LIMIT_UPDATE, 'proposeGasLimit', 'setProposeGasLimit', 'propose_gas_limit')
ATTEST_GAS_LIMIT = ParameterKind(ATTEST_GAS_LIMIT_UPDATE, 'attestGasLimit', 'setAttestGasLimit', 'attest_gas_limit')
EXECUTION_OVERHEAD = ParameterKind(
    EXECUTION_OVERHEAD_UPDATE,
    'executionOverhead',
    'setExecutionOverhead',
    'execution_overhead'
)

# (kind, contract role holding the parameter), in submission order.
CHAIN_PARAMETERS = [
    (PROPOSE_GAS_LIMIT, 'TransmitManager'),
    (ATTEST_GAS_LIMIT, 'FastSwitchboard'),
    (EXECUTION_OVERHEAD, 'FastSwitchboard'),
    (EXECUTION_OVERHEAD, 'OptimisticSwitchboard')
]


class ParameterUpdater:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._nonce_locks: dict[tuple[str, int], threading.Lock] = {}

    def _nonce_lock(self, signer: str, chain_slug: int) -> threading.Lock:
        key = (signer.lower(), chain_slug)
        with self._guard:
            lock = self._nonce_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._nonce_locks[key] = lock
            return lock

    def update_parameter(
        self,
        client,
        kind: ParameterKind,
        contract: str,
        contract_address: str,
        src: int,
        dst: int,
        value: int
    ) -> StepOutcome:
        subject = f'{contract}.{kind.tag}'
        signer = client.signer_address

        # Nonce fetch, signing and confirmation for one signer/chain never overlap.
        with self._nonce_lock(signer, src):
            try:
                current = int(client.call(contract, contract_address, kind.getter, dst))
                if current == value:
                    return skipped(LIMITS_STEP, src, dst, subject, f'{kind.getter} already {value}')

                nonce = int(client.call(contract, contract_address, 'nextNonce', signer))
                digest = update_digest(kind.tag, src, dst, nonce, value)
                signature = client.sign_digest(digest)
                LOGGER.info(
                    'submitting %s src=%s dst=%s nonce=%s value=%s previous=%s',
                    subject,
                    src,
                    dst,
                    nonce,
                    value,
                    current
                )
                tx_hash = client.transact(contract, contract_address, kind.setter, nonce, dst, value, signature)
            except ConfiguratorError as exc:
                return failed(LIMITS_STEP, src, dst, subject, exc)
            except ValueError as exc:
                return failed(LIMITS_STEP, src, dst, subject, ConfigurationError(str(exc), chain_slug=src))
        return applied(LIMITS_STEP, src, dst, subject, tx_hash)

    def update_chain(
        self,
        client,
        registry: ChainRegistry,
        record: ChainRecord,
        src: int,
        outcomes: list[StepOutcome] | None = None
    ) -> list[StepOutcome]:
        if outcomes is None:
            outcomes = []
        siblings = registry.siblings(src)

        for kind, contract in CHAIN_PARAMETERS:
            address = record.address(contract)
            if not address:
                for dst in siblings:
                    outcomes.append(
                        failed(
                            LIMITS_STEP,
                            src,
                            dst,
                            f'{contract}.{kind.tag}',
                            ConfigurationError(f'{contract} not deployed on {src}', chain_slug=src)
                        )
                    )
                continue

            for dst in siblings:
                value = registry.limits(dst)[kind.limit_field]
                outcomes.append(self.update_parameter(client, kind, contract, address, src, dst, value))

        return outcomes
