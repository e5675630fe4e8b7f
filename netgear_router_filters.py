from __future__ import annotations

from typing import Iterable

from netgear_router_client_exceptions import ConfigException

CLIENT_COLLECTOR = "Client"
SYSTEM_INFO_COLLECTOR = "SystemInfo"
TRAFFIC_COLLECTOR = "Traffic"

SUPPORTED_COLLECTORS = (CLIENT_COLLECTOR, SYSTEM_INFO_COLLECTOR, TRAFFIC_COLLECTOR)


class CollectorsFilter:
    """Selects the enabled collectors. An empty filter enables all of them."""

    def __init__(self, filters: Iterable[str] = ()):
        enabled = set()
        for collector_name in filters:
            name = collector_name.strip()
            if name not in SUPPORTED_COLLECTORS:
                raise ConfigException(f"Collector filter `{collector_name}` is not supported")
            enabled.add(name)
        self._enabled = frozenset(enabled)

    @classmethod
    def from_string(cls, value: str | None) -> CollectorsFilter:
        """Build from a comma separated list such as ``"Client, Traffic"``."""
        if not value:
            return cls()
        return cls(value.split(","))

    def is_enabled(self, collector_name: str) -> bool:
        if not self._enabled:
            return True
        return collector_name in self._enabled

    def __repr__(self):
        return f"CollectorsFilter({sorted(self._enabled)!r})"
