from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry, Counter, write_to_textfile

from .outcomes import RunReport

LOGGER = logging.getLogger('socketmesh.metrics')


class RunMetrics:
    def __init__(self) -> None:
        self.registry = CollectorRegistry()
        self.steps_total = Counter(
            'socketmesh_configure_steps_total',
            'Configuration steps by kind and status',
            ['step', 'status'],
            registry=self.registry
        )
        self.transactions_total = Counter(
            'socketmesh_configure_transactions_total',
            'Confirmed configuration transactions',
            ['chain_slug'],
            registry=self.registry
        )

    def observe(self, report: RunReport) -> None:
        for outcome in report.outcomes:
            self.steps_total.labels(step=outcome.step, status=outcome.status.value).inc()
            if outcome.transacted:
                self.transactions_total.labels(chain_slug=str(outcome.src)).inc()

    def write(self, path: str) -> None:
        if not path:
            return
        write_to_textfile(path, self.registry)
        LOGGER.info('metrics written path=%s', path)
