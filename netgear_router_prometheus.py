#!/usr/bin/env python3
"""
Prometheus exporter for Netgear router metrics.

This module exports statistics read from the router's SOAP interface in
Prometheus format: attached clients, system resource usage and the traffic
meter. The router is polled when Prometheus scrapes, never in the background.
"""

from __future__ import annotations

import argparse
import base64
import binascii
import hmac
import logging
import os
import ssl
import sys
from dataclasses import dataclass
from socketserver import ThreadingMixIn
from typing import Optional
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CollectorRegistry, Info, make_wsgi_app

import netgear_router_client
from netgear_router_client_exceptions import ConfigException
from netgear_router_collectors import ClientCollector, RouterCollector, SystemInfoCollector, TrafficCollector
from netgear_router_filters import (CLIENT_COLLECTOR, SYSTEM_INFO_COLLECTOR, TRAFFIC_COLLECTOR,
                                    SUPPORTED_COLLECTORS, CollectorsFilter)
from netgear_router_utils import to_bool

__version__ = "1.0.0"

ENV_PREFIX = "NETGEAR_EXPORTER_"

LANDING_PAGE = """<html>
<head><title>Netgear Exporter</title></head>
<body>
<h1>Netgear Exporter</h1>
<p><a href='{metrics_path}'>Metrics</a></p>
</body>
</html>"""

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@dataclass
class ExporterConfig:
    url: str
    username: str
    password: str
    insecure: bool = False
    timeout: float = netgear_router_client.DEFAULT_TIMEOUT
    client_debug: bool = False
    filter_collectors: str = ""
    calculate_delta: bool = False
    namespace: str = "netgear"
    listen_address: str = ":9192"
    metrics_path: str = "/metrics"
    auth_username: Optional[str] = None
    auth_password: Optional[str] = None
    tls_cert_file: Optional[str] = None
    tls_key_file: Optional[str] = None


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _LoggingRequestHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


def build_collectors(namespace: str,
                     client: netgear_router_client.RouterClient | None,
                     collectors_filter: CollectorsFilter,
                     calculate_delta: bool = False) -> list[RouterCollector]:
    collectors: list[RouterCollector] = []
    if collectors_filter.is_enabled(CLIENT_COLLECTOR):
        collectors.append(ClientCollector(namespace, client))
    if collectors_filter.is_enabled(SYSTEM_INFO_COLLECTOR):
        collectors.append(SystemInfoCollector(namespace, client))
    if collectors_filter.is_enabled(TRAFFIC_COLLECTOR):
        collectors.append(TrafficCollector(namespace, client, calculate_delta))
    return collectors


def build_registry(namespace: str, collectors: list[RouterCollector]) -> CollectorRegistry:
    registry = CollectorRegistry()
    build_info = Info(
        "exporter_build",
        "Netgear exporter build information",
        namespace=namespace,
        registry=registry,
    )
    build_info.info({"version": __version__})
    for collector in collectors:
        registry.register(collector)
    return registry


def print_metrics(namespace: str, out=None):
    """Print the name and help of every metric the exporter can expose."""
    out = out or sys.stdout
    all_enabled = CollectorsFilter()
    collectors = build_collectors(namespace, None, all_enabled, calculate_delta=True)
    for name, collector in zip(SUPPORTED_COLLECTORS, collectors):
        print(name, file=out)
        for metric in collector.describe():
            # counter families are described without the exposed suffix
            metric_name = f"{metric.name}_total" if metric.type == "counter" else metric.name
            print(f"  {metric_name} - {metric.documentation}", file=out)


def basic_auth_middleware(app, username: str, password: str):
    """Wrap a WSGI app so it requires HTTP basic auth with the given credentials."""
    expected = f"{username}:{password}".encode("utf-8")

    def _authenticated(environ) -> bool:
        header = environ.get("HTTP_AUTHORIZATION", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "basic" or not token:
            return False
        try:
            supplied = base64.b64decode(token.strip(), validate=True)
        except (binascii.Error, ValueError):
            return False
        return hmac.compare_digest(supplied, expected)

    def wrapper(environ, start_response):
        if not _authenticated(environ):
            logger.error(f"Invalid HTTP auth from `{environ.get('REMOTE_ADDR', '?')}`")
            start_response("401 Unauthorized", [
                ("WWW-Authenticate", 'Basic realm="metrics"'),
                ("Content-Type", "text/plain; charset=utf-8"),
            ])
            return [b"Invalid username or password\n"]
        return app(environ, start_response)

    return wrapper


def create_wsgi_app(registry: CollectorRegistry, metrics_path: str = "/metrics",
                    auth_username: str | None = None, auth_password: str | None = None):
    metrics_app = make_wsgi_app(registry)
    if auth_username and auth_password:
        metrics_app = basic_auth_middleware(metrics_app, auth_username, auth_password)

    landing_page = LANDING_PAGE.format(metrics_path=metrics_path).encode("utf-8")

    def app(environ, start_response):
        if environ.get("PATH_INFO", "/") == metrics_path:
            return metrics_app(environ, start_response)
        start_response("200 OK", [("Content-Type", "text/html; charset=utf-8")])
        return [landing_page]

    return app


def parse_listen_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigException(f"Invalid listen address `{address}`, expected [host]:port")
    return host.strip("[]"), int(port)


def create_app(config: ExporterConfig):
    """
    Create and configure the Prometheus metrics exporter.

    Args:
        config: Exporter configuration

    Returns:
        Callable that starts the exporter

    Raises:
        ConfigException: invalid router URL, missing password, unknown collector
    """
    client = netgear_router_client.RouterClient(
        url=config.url,
        username=config.username,
        password=config.password,
        insecure=config.insecure,
        timeout=config.timeout,
        debug=config.client_debug,
    )
    collectors_filter = CollectorsFilter.from_string(config.filter_collectors)
    collectors = build_collectors(config.namespace, client, collectors_filter, config.calculate_delta)
    registry = build_registry(config.namespace, collectors)
    host, port = parse_listen_address(config.listen_address)
    wsgi_app = create_wsgi_app(registry, config.metrics_path, config.auth_username, config.auth_password)

    def app():
        logger.info(f"Starting netgear exporter {__version__}")
        logger.info(f"Connecting to router at {client.url}")
        logger.info(f"Enabled collectors: {', '.join(type(c).__name__ for c in collectors)}")

        httpd = make_server(host, port, wsgi_app,
                            server_class=_ThreadingWSGIServer,
                            handler_class=_LoggingRequestHandler)
        if config.tls_cert_file and config.tls_key_file:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            context.load_cert_chain(config.tls_cert_file, config.tls_key_file)
            httpd.socket = context.wrap_socket(httpd.socket, server_side=True)
            logger.info(f"Listening TLS on {config.listen_address}")
        else:
            logger.info(f"Listening on {config.listen_address}")
        logger.info(f"Metrics available at {config.metrics_path}")

        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutting down exporter")
        finally:
            httpd.server_close()

    return app


def _env(name: str, default=None):
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Prometheus exporter for Netgear router metrics",
        epilog="Every option can also be set through the environment variable shown in brackets. "
               "The router password is only read from NETGEAR_EXPORTER_PASSWORD."
    )
    parser.add_argument(
        "--url",
        default=_env("URL", netgear_router_client.DEFAULT_URL),
        help="URL of the Netgear router (default: https://www.routerlogin.com) [env: NETGEAR_EXPORTER_URL]"
    )
    parser.add_argument(
        "--username",
        default=_env("USERNAME", netgear_router_client.DEFAULT_USERNAME),
        help="Username to use (default: admin) [env: NETGEAR_EXPORTER_USERNAME]"
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        default=to_bool(_env("INSECURE", "false")),
        help="Disable TLS validation of the router. Needed when connecting by IP or a custom host name "
             "[env: NETGEAR_EXPORTER_INSECURE]"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=_env("TIMEOUT", str(netgear_router_client.DEFAULT_TIMEOUT)),
        help="Timeout in seconds for communication with the router (default: 2) [env: NETGEAR_EXPORTER_TIMEOUT]"
    )
    parser.add_argument(
        "--client-debug",
        action="store_true",
        default=to_bool(_env("CLIENT_DEBUG", "false")),
        help="Log requests and responses exchanged with the router [env: NETGEAR_EXPORTER_CLIENT_DEBUG]"
    )
    parser.add_argument(
        "--filter-collectors",
        default=_env("FILTER_COLLECTORS", ""),
        help=f"Comma separated collectors to enable ({','.join(SUPPORTED_COLLECTORS)}); empty enables all "
             f"[env: NETGEAR_EXPORTER_FILTER_COLLECTORS]"
    )
    parser.add_argument(
        "--traffic-calculate-delta",
        action="store_true",
        default=to_bool(_env("CALCULATE_DELTA", "false")),
        help="Publish download/upload deltas between scrapes [env: NETGEAR_EXPORTER_CALCULATE_DELTA]"
    )
    parser.add_argument(
        "--metrics-namespace",
        default=_env("METRICS_NAMESPACE", "netgear"),
        help="Metrics namespace (default: netgear) [env: NETGEAR_EXPORTER_METRICS_NAMESPACE]"
    )
    parser.add_argument(
        "--web-listen-address",
        default=_env("WEB_LISTEN_ADDRESS", ":9192"),
        help="Address to listen on for web interface and telemetry (default: :9192) "
             "[env: NETGEAR_EXPORTER_WEB_LISTEN_ADDRESS]"
    )
    parser.add_argument(
        "--web-telemetry-path",
        default=_env("WEB_TELEMETRY_PATH", "/metrics"),
        help="Path under which to expose metrics (default: /metrics) [env: NETGEAR_EXPORTER_WEB_TELEMETRY_PATH]"
    )
    parser.add_argument(
        "--web-auth-username",
        default=_env("WEB_AUTH_USERNAME"),
        help="Username for web interface basic auth [env: NETGEAR_EXPORTER_WEB_AUTH_USERNAME]"
    )
    parser.add_argument(
        "--web-auth-password",
        default=_env("WEB_AUTH_PASSWORD"),
        help="Password for web interface basic auth [env: NETGEAR_EXPORTER_WEB_AUTH_PASSWORD]"
    )
    parser.add_argument(
        "--web-tls-cert-file",
        default=_env("WEB_TLS_CERTFILE"),
        help="Path to the TLS certificate (PEM) [env: NETGEAR_EXPORTER_WEB_TLS_CERTFILE]"
    )
    parser.add_argument(
        "--web-tls-key-file",
        default=_env("WEB_TLS_KEYFILE"),
        help="Path to the TLS private key (PEM) [env: NETGEAR_EXPORTER_WEB_TLS_KEYFILE]"
    )
    parser.add_argument(
        "--log-level",
        default=_env("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO) [env: NETGEAR_EXPORTER_LOG_LEVEL]"
    )
    parser.add_argument(
        "--print-metrics",
        action="store_true",
        default=to_bool(_env("PRINT_METRICS", "false")),
        help="Print the metrics this exporter exposes and exit [env: NETGEAR_EXPORTER_PRINT_METRICS]"
    )
    return parser


def config_from_args(args: argparse.Namespace, password: str | None) -> ExporterConfig:
    for path in (args.web_tls_cert_file, args.web_tls_key_file):
        if path and not os.path.isfile(path):
            raise ConfigException(f"TLS file `{path}` does not exist")

    return ExporterConfig(
        url=args.url,
        username=args.username,
        password=password or "",
        insecure=args.insecure,
        timeout=args.timeout,
        client_debug=args.client_debug,
        filter_collectors=args.filter_collectors,
        calculate_delta=args.traffic_calculate_delta,
        namespace=args.metrics_namespace,
        listen_address=args.web_listen_address,
        metrics_path=args.web_telemetry_path,
        auth_username=args.web_auth_username,
        auth_password=args.web_auth_password,
        tls_cert_file=args.web_tls_cert_file,
        tls_key_file=args.web_tls_key_file,
    )


def main(argv=None):
    """Main entry point for the Prometheus exporter."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set logging level
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    if args.print_metrics:
        print_metrics(args.metrics_namespace)
        return 0

    password = _env("PASSWORD")
    if not password:
        logger.error("The password for the SOAP API must be set in the environment variable "
                     "NETGEAR_EXPORTER_PASSWORD")
        return 1

    try:
        app = create_app(config_from_args(args, password))
    except (ConfigException, ValueError) as e:
        logger.error(f"Error creating Netgear exporter: {e}")
        return 1

    app()
    return 0


if __name__ == "__main__":
    sys.exit(main())
