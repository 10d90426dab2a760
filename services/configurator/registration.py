from __future__ import annotations

import logging

from services.common.address_ledger import AddressLedger, IntegrationConfig
from services.common.chain_registry import ChainRegistry, IntegrationType
from services.common.errors import ConfigurationError, ConfiguratorError

from .contracts import is_zero_address, same_address
from .outcomes import StepOutcome, applied, failed, skipped, unsupported
from .selector import SwitchboardSelection, select_switchboard

LOGGER = logging.getLogger('socketmesh.registration')

REGISTER_STEP = 'register_switchboard'
ATTESTER_STEP = 'grant_attester'


def _integration_config(
    existing: IntegrationConfig | None,
    switchboard: str,
    capacitor: str,
    decapacitor: str,
    capacitor_type: int,
    max_packet_length: int
) -> IntegrationConfig:
    values = {
        'switchboard': switchboard,
        'capacitor': capacitor,
        'decapacitor': decapacitor,
        'capacitor_type': capacitor_type,
        'max_packet_length': max_packet_length
    }
    if existing is not None:
        return existing.model_copy(update=values)
    return IntegrationConfig(**values)


def _registered_with_other_parameters(existing: IntegrationConfig | None, switchboard: str) -> bool:
    # A ledger entry that only declares the switchboard has never been registered.
    if existing is None or not same_address(existing.switchboard, switchboard):
        return False
    return existing.capacitor_type is not None or existing.max_packet_length is not None


def ensure_registered(
    ledger: AddressLedger,
    client,
    src: int,
    dst: int,
    integration_type: IntegrationType,
    selection: SwitchboardSelection,
    capacitor_type: int,
    max_packet_length: int
) -> StepOutcome:
    subject = integration_type.value
    if not selection.supported:
        return unsupported(REGISTER_STEP, src, dst, subject, selection.reason)

    record = ledger.get(src)
    if record is None:
        return failed(REGISTER_STEP, src, dst, subject, ConfigurationError(f'chain {src} not in ledger', chain_slug=src))

    switchboard = str(selection.address)
    existing = record.integration(dst, integration_type)
    if existing is not None and existing.matches(switchboard, capacitor_type, max_packet_length):
        return skipped(REGISTER_STEP, src, dst, subject, 'already registered')

    socket = record.address('socket')
    if not socket:
        return failed(REGISTER_STEP, src, dst, subject, ConfigurationError(f'socket not deployed on {src}', chain_slug=src))

    tx_hash: str | None = None
    try:
        capacitor = client.call('Socket', socket, 'capacitors__', switchboard, dst)
        if is_zero_address(capacitor):
            tx_hash = client.transact(
                'Socket',
                socket,
                'registerSwitchBoard',
                switchboard,
                max_packet_length,
                dst,
                capacitor_type
            )
            capacitor = client.call('Socket', socket, 'capacitors__', switchboard, dst)
        elif _registered_with_other_parameters(existing, switchboard):
            return failed(
                REGISTER_STEP,
                src,
                dst,
                subject,
                ConfigurationError(
                    f'registered on chain with different parameters: ledger has capacitorType={existing.capacitor_type} '
                    f'maxPacketLength={existing.max_packet_length}, configured {capacitor_type}/{max_packet_length}',
                    chain_slug=src
                )
            )
        decapacitor = client.call('Socket', socket, 'decapacitors__', switchboard, dst)
    except ConfiguratorError as exc:
        return failed(REGISTER_STEP, src, dst, subject, exc)

    ledger.record_integration(
        src,
        dst,
        integration_type,
        _integration_config(existing, switchboard, capacitor, decapacitor, capacitor_type, max_packet_length)
    )

    if tx_hash is None:
        return skipped(REGISTER_STEP, src, dst, subject, 'recovered from chain')
    return applied(REGISTER_STEP, src, dst, subject, tx_hash)


def ensure_attester(ledger: AddressLedger, client, src: int, dst: int, attester: str) -> StepOutcome:
    record = ledger.get(src)
    notary = record.address('notary') if record is not None else None
    if not notary:
        return unsupported(ATTESTER_STEP, src, dst, attester, f'notary not deployed on {src}')

    try:
        if client.call('Notary', notary, 'isAttester', attester, dst):
            return skipped(ATTESTER_STEP, src, dst, attester, 'attester already granted')
        tx_hash = client.transact('Notary', notary, 'grantAttesterRole', dst, attester)
    except ConfiguratorError as exc:
        return failed(ATTESTER_STEP, src, dst, attester, exc)
    return applied(ATTESTER_STEP, src, dst, attester, tx_hash)


def register_chain(
    ledger: AddressLedger,
    registry: ChainRegistry,
    client,
    src: int,
    capacitor_type: int,
    max_packet_length: int,
    attester: str = '',
    outcomes: list[StepOutcome] | None = None
) -> list[StepOutcome]:
    """Register every switchboard a chain needs against its socket.

    Native pairs come first and only for siblings whose integrations already
    declare a native switchboard; fast and optimistic follow for every sibling.
    Each pair is isolated: a failure is reported and the loop moves on.
    Outcomes are appended to `outcomes` as each step finishes, so a caller
    holding the list keeps them even if the pass is cut short.
    """
    record = ledger.get(src)
    siblings = registry.siblings(src)
    if outcomes is None:
        outcomes = []

    def register(dst: int, integration_type: IntegrationType) -> None:
        selection = select_switchboard(registry, ledger.get(src), integration_type, src, dst)
        outcomes.append(
            ensure_registered(
                ledger,
                client,
                src,
                dst,
                integration_type,
                selection,
                capacitor_type,
                max_packet_length
            )
        )

    native_siblings = record.siblings_with(IntegrationType.NATIVE) if record is not None else []
    for dst in native_siblings:
        register(dst, IntegrationType.NATIVE)

    for integration_type in (IntegrationType.FAST, IntegrationType.OPTIMISTIC):
        for dst in siblings:
            register(dst, integration_type)

    if attester:
        for dst in siblings:
            outcomes.append(ensure_attester(ledger, client, src, dst, attester))

    LOGGER.info(
        'registration pass done chain_slug=%s siblings=%s native=%s outcomes=%s',
        src,
        len(siblings),
        len(native_siblings),
        len(outcomes)
    )
    return outcomes
