from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class RemoteOperation:
    """A SOAP action together with its envelope template.

    The template is a ``str.format`` pattern; ``session_id`` is always
    supplied, the login operation also takes ``username`` and ``password``.
    """
    name: str
    soap_action: str
    template: str

    def render(self, **params: str) -> str:
        return self.template.format(**params)


@dataclass
class ResponseNode:
    name: str
    text: str = ""
    children: list[ResponseNode] = field(default_factory=list)

    def child(self, index: int = 0) -> Optional[ResponseNode]:
        if index < len(self.children):
            return self.children[index]
        return None


@dataclass
class SoapResponse:
    response_code: Optional[str]
    """Value of ``ResponseCode``; ``None`` when the router omitted it."""
    body: bytes
    """Serialized first payload element of the SOAP body."""
    fault: Optional[str] = None
    """``faultstring`` of a SOAP ``Fault`` payload, ``None`` for regular responses."""


@dataclass
class DeviceInfo:
    ip_address: str
    name: str
    mac_address: str
    connection_type: str
    wireless_link_speed: str
    wireless_signal_strength: str

    @property
    def is_wired(self) -> bool:
        return self.connection_type == "wired"


@dataclass
class TrafficSample:
    """Cumulative download/upload readings; -1 means no reading yet."""
    download: float = -1.0
    upload: float = -1.0

    @property
    def initialized(self) -> bool:
        return self.download >= 0 and self.upload >= 0
