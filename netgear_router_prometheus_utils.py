from __future__ import annotations

import time
from typing import Iterable

from prometheus_client import Counter, Gauge
from prometheus_client.metrics import MetricWrapperBase
from prometheus_client.metrics_core import Metric


def collect_all(*metrics: MetricWrapperBase) -> Iterable[Metric]:
    for metric in metrics:
        yield from metric.collect()


def describe_all(*metrics: MetricWrapperBase) -> Iterable[Metric]:
    for metric in metrics:
        yield from metric.describe()


class ScrapeHealth:
    """The five scrape-health metrics every collector publishes on each poll."""

    def __init__(self, namespace: str, subsystem: str, description: str):
        self.scrapes_total = Counter(
            "total",
            f"Total number of scrapes for Netgear {description} stats.",
            namespace=namespace,
            subsystem=f"{subsystem}_scrapes",
            registry=None,
        )
        self.scrape_errors_total = Counter(
            "total",
            f"Total number of scrapes errors for Netgear {description} stats.",
            namespace=namespace,
            subsystem=f"{subsystem}_scrape_errors",
            registry=None,
        )
        self.last_scrape_error = Gauge(
            f"last_{subsystem}_scrape_error",
            f"Whether the last scrape of Netgear {description} stats resulted in an error (1 for error, 0 for success).",
            namespace=namespace,
            registry=None,
        )
        self.last_scrape_timestamp = Gauge(
            f"last_{subsystem}_scrape_timestamp",
            f"Number of seconds since 1970 since last scrape of Netgear {description} metrics.",
            namespace=namespace,
            registry=None,
        )
        self.last_scrape_duration_seconds = Gauge(
            f"last_{subsystem}_scrape_duration_seconds",
            f"Duration of the last scrape of Netgear {description} stats.",
            namespace=namespace,
            registry=None,
        )

    @property
    def metrics(self) -> tuple[MetricWrapperBase, ...]:
        return (
            self.scrapes_total,
            self.scrape_errors_total,
            self.last_scrape_error,
            self.last_scrape_timestamp,
            self.last_scrape_duration_seconds,
        )

    def record(self, began: float, failed: bool):
        """Update all five metrics for a poll that started at ``began`` (perf_counter)."""
        if failed:
            self.scrape_errors_total.inc()
        self.scrapes_total.inc()
        self.last_scrape_error.set(1 if failed else 0)
        self.last_scrape_timestamp.set(time.time())
        self.last_scrape_duration_seconds.set(time.perf_counter() - began)

    def collect(self) -> Iterable[Metric]:
        return collect_all(*self.metrics)

    def describe(self) -> Iterable[Metric]:
        return describe_all(*self.metrics)
