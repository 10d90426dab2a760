from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from services.common.errors import ConfiguratorError

LOGGER = logging.getLogger('socketmesh.outcomes')


class StepStatus(str, Enum):
    APPLIED = 'applied'
    SKIPPED = 'skipped'
    UNSUPPORTED = 'unsupported'
    FAILED = 'failed'


@dataclass(frozen=True)
class StepOutcome:
    step: str
    src: int
    dst: int | None
    subject: str
    status: StepStatus
    tx_hash: str | None = None
    reason: str = ''
    error_kind: str | None = None

    @property
    def transacted(self) -> bool:
        return self.tx_hash is not None

    def describe(self) -> str:
        parts = [
            f'step={self.step}',
            f'src={self.src}',
            f'dst={self.dst}',
            f'subject={self.subject}',
            f'status={self.status.value}'
        ]
        if self.tx_hash:
            parts.append(f'tx_hash={self.tx_hash}')
        if self.error_kind:
            parts.append(f'error_kind={self.error_kind}')
        if self.reason:
            parts.append(f'reason={self.reason}')
        return ' '.join(parts)


def applied(step: str, src: int, dst: int | None, subject: str, tx_hash: str | None, reason: str = '') -> StepOutcome:
    return StepOutcome(step, src, dst, subject, StepStatus.APPLIED, tx_hash=tx_hash, reason=reason)


def skipped(step: str, src: int, dst: int | None, subject: str, reason: str) -> StepOutcome:
    return StepOutcome(step, src, dst, subject, StepStatus.SKIPPED, reason=reason)


def unsupported(step: str, src: int, dst: int | None, subject: str, reason: str) -> StepOutcome:
    return StepOutcome(step, src, dst, subject, StepStatus.UNSUPPORTED, reason=reason)


def failed(step: str, src: int, dst: int | None, subject: str, exc: ConfiguratorError) -> StepOutcome:
    return StepOutcome(
        step,
        src,
        dst,
        subject,
        StepStatus.FAILED,
        reason=exc.detail,
        error_kind=exc.kind
    )


def log_outcome(outcome: StepOutcome) -> StepOutcome:
    if outcome.status is StepStatus.FAILED:
        LOGGER.error('step failed %s', outcome.describe())
    elif outcome.status is StepStatus.UNSUPPORTED:
        LOGGER.warning('step unsupported %s', outcome.describe())
    else:
        LOGGER.info('step %s %s', outcome.status.value, outcome.describe())
    return outcome


@dataclass
class RunReport:
    outcomes: list[StepOutcome] = field(default_factory=list)

    def add(self, outcome: StepOutcome) -> StepOutcome:
        self.outcomes.append(log_outcome(outcome))
        return outcome

    def extend(self, outcomes: list[StepOutcome]) -> None:
        for outcome in outcomes:
            self.add(outcome)

    def by_status(self, status: StepStatus) -> list[StepOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is status]

    @property
    def failed(self) -> list[StepOutcome]:
        return self.by_status(StepStatus.FAILED)

    @property
    def transactions(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.transacted)

    def summary(self) -> dict[str, int]:
        counts = Counter(outcome.status.value for outcome in self.outcomes)
        return {status.value: counts.get(status.value, 0) for status in StepStatus}
