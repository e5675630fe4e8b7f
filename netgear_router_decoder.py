"""
Decoding of the router's SOAP responses.

Every response is parsed into a tree of ResponseNode objects. Two consumers
turn that tree into records: ``to_flat_map`` for name/value payloads
(system info, traffic meter) and ``to_devices`` for the ``@``/``;``
encoded attached-device list.
"""

from __future__ import annotations

import html
import logging

from lxml import etree

from netgear_router_client_exceptions import DecodeException
from netgear_router_models import DeviceInfo, ResponseNode, SoapResponse
from netgear_router_utils import strip_new_prefix

logger = logging.getLogger(__name__)

DEVICE_RECORD_SEPARATOR = "@"
DEVICE_FIELD_SEPARATOR = ";"
DEVICE_FIELD_COUNT = 7


def _local_name(element) -> str:
    return etree.QName(element).localname


def _elements(element):
    # comments and processing instructions have a non-string tag
    return [child for child in element if isinstance(child.tag, str)]


def _parse(raw: bytes):
    try:
        parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True)
        return etree.fromstring(raw, parser=parser)
    except etree.XMLSyntaxError as e:
        raise DecodeException(f"Response is not well-formed XML: {e}") from e


def parse_envelope(raw: bytes) -> SoapResponse:
    """Unwrap the SOAP envelope into its ResponseCode and first payload element."""
    root = _parse(raw)
    body = next((el for el in _elements(root) if _local_name(el) == "Body"), None)
    if body is None:
        raise DecodeException("SOAP envelope has no Body element")

    response_code = None
    payload = b""
    fault = None
    for element in _elements(body):
        if _local_name(element) == "ResponseCode":
            response_code = (element.text or "").strip()
        elif not payload:
            payload = etree.tostring(element, with_tail=False)
            if _local_name(element) == "Fault":
                fault = _fault_string(element)

    # some firmware nests the code inside the payload element
    if response_code is None:
        for element in body.iter():
            if isinstance(element.tag, str) and _local_name(element) == "ResponseCode":
                response_code = (element.text or "").strip()
                break

    return SoapResponse(response_code=response_code, body=payload, fault=fault)


def _fault_string(fault) -> str:
    for element in _elements(fault):
        if _local_name(element) == "faultstring":
            return (element.text or "").strip()
    return ""


def _to_node(element) -> ResponseNode:
    return ResponseNode(
        name=_local_name(element),
        text=element.text or "",
        children=[_to_node(child) for child in _elements(element)],
    )


def decode(raw: bytes) -> ResponseNode:
    if not raw:
        return ResponseNode(name="")
    return _to_node(_parse(raw))


def to_flat_map(node: ResponseNode, split_averages: bool = False) -> dict[str, str]:
    """Name/value map of the node's immediate children.

    ``New`` prefixes are stripped from names and thousands separators from
    values. With ``split_averages`` a ``"total/average"`` value yields both
    ``Field`` and ``FieldAverage``.
    """
    stats: dict[str, str] = {}
    for child in node.children:
        name = strip_new_prefix(child.name)
        value = child.text.strip().replace(",", "")

        idx = value.find("/")
        if split_averages and idx > 0:
            stats[f"{name}Average"] = value[idx + 1:]
            stats[name] = value[:idx]
        else:
            stats[name] = value
    return stats


def to_devices(node: ResponseNode) -> list[DeviceInfo]:
    first = node.child(0)
    if first is None:
        return []

    # values arrive HTML-encoded, and entities would break the ";" split
    data = html.unescape(first.text.strip())
    devices: list[DeviceInfo] = []
    for segment in data.split(DEVICE_RECORD_SEPARATOR)[1:]:
        fields = segment.split(DEVICE_FIELD_SEPARATOR)
        if len(fields) < DEVICE_FIELD_COUNT:
            logger.warning(f"Skipping malformed device record with {len(fields)} fields: {segment!r}")
            continue
        devices.append(DeviceInfo(
            ip_address=fields[1],
            name=fields[2],
            mac_address=fields[3],
            connection_type=fields[4],
            wireless_link_speed=fields[5],
            wireless_signal_strength=fields[6],
        ))
    return devices
