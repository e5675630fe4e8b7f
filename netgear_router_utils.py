from urllib.parse import urlparse

from netgear_router_client_exceptions import ConfigException


def normalize_url(url: str) -> str:
    url = url.strip()
    if url.endswith("/"):
        url = url[:-1]
    if "://" not in url:
        url = f"https://{url}"

    try:
        parsed = urlparse(url)
        parsed.port  # raises on a non-numeric port
    except ValueError as e:
        raise ConfigException(f"Error parsing provided URL ({url}): {e}") from e
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigException(f"Error parsing provided URL ({url}): expected http(s)://host[:port]")
    return url


def strip_new_prefix(name: str) -> str:
    if name.startswith("New"):
        return name[3:]
    return name


def safe_float(value) -> float:
    try:
        return float(value)
    except (ValueError, TypeError):
        return 0.0


def hm_to_seconds(value: str) -> float:
    """``"H:M"`` -> seconds. ``"2:30"`` is 9000."""
    parts = value.split(":")
    hours = safe_float(parts[0])
    minutes = safe_float(parts[1]) if len(parts) > 1 else 0.0
    return hours * 3600 + minutes * 60


def to_bool(s) -> bool:
    if isinstance(s, bool):
        return s
    return str(s).strip().lower() in ("1", "true", "yes", "on")
