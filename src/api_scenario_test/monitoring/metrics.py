# src/api_scenario_test/monitoring/metrics.py
"""Run metrics exported to a Prometheus pushgateway."""

from __future__ import annotations

from typing import Dict, Optional
import logging

from prometheus_client import CollectorRegistry, Gauge, Counter, Histogram, push_to_gateway
from prometheus_client.exposition import basic_auth_handler, default_handler

logger = logging.getLogger(__name__)


class RunMetrics:
    """Counts steps, polls and scenario outcomes of a test run."""

    def __init__(self,
                 job_name: str = "api_scenario_test",
                 pushgateway_url: Optional[str] = None,
                 instance: Optional[str] = None,
                 username: Optional[str] = None,
                 password: Optional[str] = None):
        """
        Initialize run metrics.

        Args:
            job_name: Job name for grouping metrics
            pushgateway_url: URL of Prometheus pushgateway, or None to keep metrics local
            instance: Instance label
            username: Basic auth username
            password: Basic auth password
        """
        self.job_name = job_name
        self.pushgateway_url = pushgateway_url
        self.instance = instance or "api_scenario_test"
        self.username = username
        self.password = password

        self.registry = CollectorRegistry()
        self._define_metrics()

    def _define_metrics(self) -> None:
        """Define Prometheus metrics."""
        self.steps_total = Counter(
            'apst_steps_total',
            'Executed test steps',
            ['kind', 'status'],
            registry=self.registry
        )
        self.lro_polls_total = Counter(
            'apst_lro_polls_total',
            'Long-running operation polls sent',
            registry=self.registry
        )
        self.step_duration = Histogram(
            'apst_step_duration_seconds',
            'Step duration in seconds',
            ['kind'],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0, 3600.0),
            registry=self.registry
        )
        self.scenario_success = Gauge(
            'apst_scenario_success',
            '1 when the last run of the scenario passed, else 0',
            ['scenario'],
            registry=self.registry
        )

    def record_step(self, kind: str, status: str, duration_seconds: float) -> None:
        self.steps_total.labels(kind=kind, status=status).inc()
        self.step_duration.labels(kind=kind).observe(duration_seconds)

    def record_lro_poll(self) -> None:
        self.lro_polls_total.inc()

    def record_scenario(self, scenario: str, passed: bool) -> None:
        self.scenario_success.labels(scenario=scenario).set(1 if passed else 0)

    def snapshot(self) -> Dict[str, float]:
        """Current totals, keyed by ``<kind>_<status>`` plus ``lro_polls``."""
        values: Dict[str, float] = {}
        for metric in self.steps_total.collect():
            for sample in metric.samples:
                if sample.name.endswith("_total"):
                    values[f"{sample.labels['kind']}_{sample.labels['status']}"] = sample.value
        values["lro_polls"] = self.registry.get_sample_value('apst_lro_polls_total') or 0.0
        return values

    def _auth_handler(self, url, method, timeout, headers, data):
        return basic_auth_handler(url, method, timeout, headers, data, self.username, self.password)

    def push(self) -> None:
        """Push metrics to the pushgateway; failures are logged, never raised."""
        if not self.pushgateway_url:
            logger.debug("No pushgateway configured, skipping metrics push")
            return

        try:
            push_to_gateway(
                self.pushgateway_url,
                job=self.job_name,
                registry=self.registry,
                grouping_key={'instance': self.instance},
                handler=self._auth_handler if self.username and self.password else default_handler,
            )
            logger.debug("Pushed metrics to Prometheus pushgateway")
        except Exception as e:
            logger.error(f"Failed to push metrics to Prometheus: {e}")
