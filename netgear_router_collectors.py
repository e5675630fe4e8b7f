"""
Prometheus collectors for Netgear router statistics.

Each collector polls the router through a shared RouterClient when it is
collected, converts the values and publishes them together with its own
scrape-health metrics. Metric objects are private to the collector
(``registry=None``) so ``describe()`` never touches the router.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import abstractmethod
from typing import Iterable

from prometheus_client import Gauge
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from netgear_router_client import RouterClient
from netgear_router_client_exceptions import RouterClientException
from netgear_router_models import TrafficSample
from netgear_router_prometheus_utils import ScrapeHealth, collect_all, describe_all
from netgear_router_utils import hm_to_seconds, safe_float

logger = logging.getLogger(__name__)

SYSTEM_INFO_FIELDS = (
    "CPUUtilization",
    "PhysicalMemory",
    "MemoryUtilization",
    "PhysicalFlash",
    "AvailableFlash",
)

TRAFFIC_FIELDS = (
    "TodayConnectionTime",
    "TodayDownload",
    "TodayUpload",
    "YesterdayConnectionTime",
    "YesterdayDownload",
    "YesterdayUpload",
    "WeekConnectionTime",
    "WeekDownload",
    "WeekDownloadAverage",
    "WeekUpload",
    "WeekUploadAverage",
    "MonthConnectionTime",
    "MonthDownload",
    "MonthDownloadAverage",
    "MonthUpload",
    "MonthUploadAverage",
    "LastMonthConnectionTime",
    "LastMonthDownload",
    "LastMonthDownloadAverage",
    "LastMonthUpload",
    "LastMonthUploadAverage",
)


def _parse_value(name: str, value: str) -> float:
    """Time fields arrive as ``H:M`` and are published in seconds."""
    if name.endswith("Time"):
        return hm_to_seconds(value)
    metric = safe_float(value)
    if metric == 0.0 and value.strip() not in ("0", "0.0", ""):
        logger.debug(f"Unparseable value for '{name}': {value!r}, using 0")
    return metric


class RouterCollector(Collector):
    """Base for the router collectors: one locked poll per collect() call."""

    def __init__(self, namespace: str, client: RouterClient | None, subsystem: str, description: str):
        self.namespace = namespace
        self.client = client
        self.description = description
        self.health = ScrapeHealth(namespace, subsystem, description)
        self._lock = threading.Lock()

    @abstractmethod
    def _poll(self):
        """Fetch from the router and update the collector's metrics."""

    @abstractmethod
    def _metrics(self) -> tuple:
        """Metric objects published besides the scrape-health ones."""

    def collect(self) -> Iterable[Metric]:
        with self._lock:
            began = time.perf_counter()
            failed = False
            try:
                self._poll()
            except RouterClientException as e:
                logger.error(f"Error while collecting {self.description} statistics: {e}")
                failed = True
            self.health.record(began, failed)

            # materialize under the lock so a concurrent poll cannot interleave
            return [*collect_all(*self._metrics()), *self.health.collect()]

    def describe(self) -> Iterable[Metric]:
        return [*describe_all(*self._metrics()), *self.health.describe()]


class ClientCollector(RouterCollector):
    def __init__(self, namespace: str, client: RouterClient | None):
        super().__init__(namespace, client, "client", "client")
        self.clients = Gauge(
            "info",
            "Client information with ip, name, MAC address and connection type labels",
            ["ip", "name", "mac", "connection_type"],
            namespace=namespace,
            subsystem="client",
            registry=None,
        )
        self.wireless_speed = Gauge(
            "wireless_speed",
            "Wireless speed of clients connected to the network",
            ["mac"],
            namespace=namespace,
            subsystem="client",
            registry=None,
        )
        self.wireless_strength = Gauge(
            "wireless_strength",
            "Wireless strength of clients connected to the network",
            ["mac"],
            namespace=namespace,
            subsystem="client",
            registry=None,
        )

    def _metrics(self) -> tuple:
        return self.clients, self.wireless_speed, self.wireless_strength

    def _poll(self):
        devices = self.client.get_attached_devices()
        for device in devices:
            self.clients.labels(
                ip=device.ip_address,
                name=device.name,
                mac=device.mac_address,
                connection_type=device.connection_type,
            ).set(1)

            if not device.is_wired:
                self.wireless_speed.labels(mac=device.mac_address).set(safe_float(device.wireless_link_speed))
                self.wireless_strength.labels(mac=device.mac_address).set(safe_float(device.wireless_signal_strength))
        logger.debug(f"Client metrics collected: {len(devices)} devices")


class SystemInfoCollector(RouterCollector):
    def __init__(self, namespace: str, client: RouterClient | None):
        super().__init__(namespace, client, "system_info", "system info")
        self.fields = {
            name: Gauge(
                name.lower(),
                f"Value of the '{name}' system info metric from the router",
                namespace=namespace,
                subsystem="system_info",
                registry=None,
            )
            for name in SYSTEM_INFO_FIELDS
        }

    def _metrics(self) -> tuple:
        return tuple(self.fields.values())

    def _poll(self):
        stats = self.client.get_system_info()
        for name in SYSTEM_INFO_FIELDS:
            if name not in stats:
                logger.warning(f"System info stat named '{name}' missing from results!")
                continue
            self.fields[name].set(_parse_value(name, stats[name]))


class TrafficCollector(RouterCollector):
    """Traffic meter statistics.

    With ``calculate_delta`` the collector also publishes ``traffic_download``
    and ``traffic_upload``: the growth of TodayDownload/TodayUpload since the
    previous poll. The first poll publishes 0 and negative deltas (daily
    rollover, router reset) are clamped to 0. A failed poll publishes 0 and
    keeps the previous reading, so the next delta covers both intervals.
    """

    def __init__(self, namespace: str, client: RouterClient | None, calculate_delta: bool = False):
        super().__init__(namespace, client, "traffic", "traffic")
        self.calculate_delta = calculate_delta
        self.previous = TrafficSample()
        self.fields = {
            name: Gauge(
                name.lower(),
                f"Value of the '{name}' traffic metric from the router",
                namespace=namespace,
                subsystem="traffic",
                registry=None,
            )
            for name in TRAFFIC_FIELDS
        }
        self.traffic_in = Gauge(
            "download",
            "Value downloaded since previous check",
            namespace=namespace,
            subsystem="traffic",
            registry=None,
        )
        self.traffic_out = Gauge(
            "upload",
            "Value uploaded since previous check",
            namespace=namespace,
            subsystem="traffic",
            registry=None,
        )

    def _metrics(self) -> tuple:
        metrics = tuple(self.fields.values())
        if self.calculate_delta:
            metrics += (self.traffic_in, self.traffic_out)
        return metrics

    def update_delta(self, current: TrafficSample) -> TrafficSample:
        """Return the non-negative delta against the previous sample and store ``current``."""
        previous = self.previous if self.previous.initialized else current
        delta = TrafficSample(
            download=max(0.0, current.download - previous.download),
            upload=max(0.0, current.upload - previous.upload),
        )
        logger.info(f"In - previous: {previous.download}, current: {current.download}, new: {delta.download}")
        logger.info(f"Out - previous: {previous.upload}, current: {current.upload}, new: {delta.upload}")
        self.previous = current
        return delta

    def _poll(self):
        # a failed poll or missing counters publish no traffic for the interval
        self.traffic_in.set(0)
        self.traffic_out.set(0)

        stats = self.client.get_traffic_meter_statistics()
        for name in TRAFFIC_FIELDS:
            if name not in stats:
                logger.warning(f"Traffic stat named '{name}' missing from results!")
                continue
            self.fields[name].set(_parse_value(name, stats[name]))

        if not self.calculate_delta:
            return

        logger.debug("Raw stats returned:")
        for k, v in stats.items():
            logger.debug(f"  {k} => {v}")

        if "TodayDownload" not in stats or "TodayUpload" not in stats:
            logger.warning("TodayDownload/TodayUpload missing from results, traffic delta not updated")
            return

        delta = self.update_delta(TrafficSample(
            download=safe_float(stats["TodayDownload"]),
            upload=safe_float(stats["TodayUpload"]),
        ))
        self.traffic_in.set(delta.download)
        self.traffic_out.set(delta.upload)
