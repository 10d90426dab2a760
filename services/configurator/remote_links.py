from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from services.common.address_ledger import AddressLedger
from services.common.chain_registry import ChainRegistry, IntegrationType, NativeSwitchboard
from services.common.errors import ConfigurationError, ConfiguratorError

from .contracts import is_zero_address, same_address
from .outcomes import StepOutcome, applied, failed, skipped, unsupported

LOGGER = logging.getLogger('socketmesh.remote_links')

REMOTE_LINK_STEP = 'remote_link'


@dataclass(frozen=True)
class LinkHandler:
    contract: str
    getter: str
    setter: str
    # Returns True when the current pointer already satisfies the target.
    is_set: Callable[[str, str], bool]


def _tunnel_is_set(current: str, remote: str) -> bool:
    # Fx tunnels can be set only once, so any non-zero value is final.
    return not is_zero_address(current)


def _pointer_is_set(current: str, remote: str) -> bool:
    return same_address(current, remote)


REMOTE_POINTER = LinkHandler('NativeSwitchboard', 'remoteNativeSwitchboard', 'updateRemoteNativeSwitchboard', _pointer_is_set)

LINK_HANDLERS: dict[NativeSwitchboard, LinkHandler] = {
    NativeSwitchboard.POLYGON_L1: LinkHandler('PolygonL1Switchboard', 'fxChildTunnel', 'setFxChildTunnel', _tunnel_is_set),
    NativeSwitchboard.POLYGON_L2: LinkHandler('PolygonL2Switchboard', 'fxRootTunnel', 'setFxRootTunnel', _tunnel_is_set),
    NativeSwitchboard.ARBITRUM_L1: REMOTE_POINTER,
    NativeSwitchboard.ARBITRUM_L2: REMOTE_POINTER,
    NativeSwitchboard.OPTIMISM: REMOTE_POINTER
}


def ensure_remote_linked(
    client,
    src: int,
    dst: int,
    variant: NativeSwitchboard | None,
    switchboard: str,
    remote_switchboard: str,
    handlers: dict[NativeSwitchboard, LinkHandler] | None = None
) -> StepOutcome:
    table = LINK_HANDLERS if handlers is None else handlers
    subject = variant.value if variant is not None else 'unknown'
    handler = table.get(variant) if variant is not None else None
    if handler is None:
        return unsupported(REMOTE_LINK_STEP, src, dst, subject, f'no remote link handler for variant {subject}')

    try:
        current = client.call(handler.contract, switchboard, handler.getter)
        if handler.is_set(current, remote_switchboard):
            return skipped(REMOTE_LINK_STEP, src, dst, subject, f'{handler.getter} already set to {current}')

        LOGGER.info(
            'setting %s=%s on %s src=%s dst=%s',
            handler.getter,
            remote_switchboard,
            switchboard,
            src,
            dst
        )
        tx_hash = client.transact(handler.contract, switchboard, handler.setter, remote_switchboard)
    except ConfiguratorError as exc:
        return failed(REMOTE_LINK_STEP, src, dst, subject, exc)
    return applied(REMOTE_LINK_STEP, src, dst, subject, tx_hash)


def sync_remote_links(
    ledger: AddressLedger,
    registry: ChainRegistry,
    client_for: Callable[[int], object],
    outcomes: list[StepOutcome] | None = None
) -> list[StepOutcome]:
    """Point every native switchboard at its counterpart on the paired chain.

    The counterpart for src -> dst is the switchboard dst recorded for src.
    Pairs whose counterpart is not deployed yet are reported as unsupported
    and picked up on a later run.
    """
    if outcomes is None:
        outcomes = []

    for src in ledger.chains():
        record = ledger.get(src)
        if record is None:
            continue

        for dst in record.siblings_with(IntegrationType.NATIVE):
            variant = registry.native_variant(src, dst)
            local = record.integration(dst, IntegrationType.NATIVE)
            remote_record = ledger.get(dst)
            remote = remote_record.integration(src, IntegrationType.NATIVE) if remote_record is not None else None

            if variant is None:
                outcomes.append(
                    unsupported(REMOTE_LINK_STEP, src, dst, 'unknown', f'no native switchboard declared for {src}->{dst}')
                )
                continue
            if local is None or remote is None or not remote.switchboard:
                outcomes.append(
                    unsupported(REMOTE_LINK_STEP, src, dst, variant.value, f'counterpart switchboard on {dst} not deployed')
                )
                continue

            try:
                client = client_for(src)
            except ConfigurationError as exc:
                outcomes.append(failed(REMOTE_LINK_STEP, src, dst, variant.value, exc))
                continue

            outcomes.append(ensure_remote_linked(client, src, dst, variant, local.switchboard, remote.switchboard))

    return outcomes
