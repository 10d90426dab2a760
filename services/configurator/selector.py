from __future__ import annotations

from dataclasses import dataclass

from services.common.address_ledger import ChainRecord
from services.common.chain_registry import ChainRegistry, IntegrationType, NativeSwitchboard

SHARED_SWITCHBOARD_ROLES = {
    IntegrationType.FAST: 'FastSwitchboard',
    IntegrationType.OPTIMISTIC: 'OptimisticSwitchboard'
}


@dataclass(frozen=True)
class SwitchboardSelection:
    integration_type: IntegrationType
    src: int
    dst: int
    address: str | None = None
    variant: NativeSwitchboard | None = None
    reason: str = ''

    @property
    def supported(self) -> bool:
        return self.address is not None


def select_switchboard(
    registry: ChainRegistry,
    record: ChainRecord | None,
    integration_type: IntegrationType,
    src: int,
    dst: int
) -> SwitchboardSelection:
    """Pick the switchboard governing src -> dst for one integration type.

    Fast and optimistic switchboards are deployed once per chain and shared by all
    siblings. Native switchboards are per pair: the registry names the bridge
    family and the ledger's integration entry holds the deployed address. Anything
    missing yields an unsupported selection carrying the reason; this never raises.
    """
    if record is None:
        return SwitchboardSelection(integration_type, src, dst, reason=f'chain {src} not in ledger')

    role = SHARED_SWITCHBOARD_ROLES.get(integration_type)
    if role is not None:
        address = record.address(role)
        if not address:
            return SwitchboardSelection(integration_type, src, dst, reason=f'{role} not deployed on {src}')
        return SwitchboardSelection(integration_type, src, dst, address=address)

    variant = registry.native_variant(src, dst)
    if variant is None:
        return SwitchboardSelection(integration_type, src, dst, reason=f'no native switchboard for {src}->{dst}')

    config = record.integration(dst, IntegrationType.NATIVE)
    if config is None or not config.switchboard:
        return SwitchboardSelection(
            integration_type,
            src,
            dst,
            variant=variant,
            reason=f'native switchboard for {src}->{dst} not deployed'
        )
    return SwitchboardSelection(integration_type, src, dst, address=config.switchboard, variant=variant)
