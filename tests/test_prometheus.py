import base64
import io
from unittest.mock import Mock
from wsgiref.util import setup_testing_defaults

import pytest
from prometheus_client import CollectorRegistry

import netgear_router_prometheus as exporter
from netgear_router_client import RouterClient
from netgear_router_client_exceptions import ConfigException
from netgear_router_collectors import ClientCollector, SystemInfoCollector, TrafficCollector
from netgear_router_filters import CollectorsFilter


def _call(app, path="/", authorization=None):
    environ = {"PATH_INFO": path}
    if authorization:
        environ["HTTP_AUTHORIZATION"] = authorization
    setup_testing_defaults(environ)
    status = {}

    def start_response(code, headers):
        status["code"] = code
        status["headers"] = dict(headers)

    body = b"".join(app(environ, start_response))
    return status["code"], status["headers"], body


def _basic(username, password):
    return "Basic " + base64.b64encode(f"{username}:{password}".encode()).decode()


@pytest.fixture
def registry():
    return exporter.build_registry("netgear", [])


class TestWsgiApp:

    def test_landing_page(self, registry):
        code, _, body = _call(exporter.create_wsgi_app(registry, "/metrics"))

        assert code.startswith("200")
        assert b"<a href='/metrics'>Metrics</a>" in body

    def test_metrics(self, registry):
        code, _, body = _call(exporter.create_wsgi_app(registry, "/metrics"), "/metrics")

        assert code.startswith("200")
        assert b'netgear_exporter_build_info{version="' in body

    def test_basic_auth_required(self, registry):
        app = exporter.create_wsgi_app(registry, "/metrics", "prom", "s3cret")

        code, headers, _ = _call(app, "/metrics")
        assert code.startswith("401")
        assert headers["WWW-Authenticate"] == 'Basic realm="metrics"'

        assert _call(app, "/metrics", _basic("prom", "wrong"))[0].startswith("401")
        assert _call(app, "/metrics", "Basic !!notbase64")[0].startswith("401")
        assert _call(app, "/metrics", _basic("prom", "s3cret"))[0].startswith("200")

    def test_landing_page_is_not_protected(self, registry):
        app = exporter.create_wsgi_app(registry, "/metrics", "prom", "s3cret")

        assert _call(app, "/")[0].startswith("200")

    def test_auth_needs_both_credentials(self, registry):
        app = exporter.create_wsgi_app(registry, "/metrics", "prom", None)

        assert _call(app, "/metrics")[0].startswith("200")


class TestCollectorsSetup:

    def test_build_collectors_honours_filter(self):
        client = Mock(spec=RouterClient)

        collectors = exporter.build_collectors("netgear", client, CollectorsFilter(["Traffic"]), True)

        assert len(collectors) == 1
        assert isinstance(collectors[0], TrafficCollector)
        assert collectors[0].calculate_delta

    def test_all_collectors_register_without_conflicts(self):
        collectors = exporter.build_collectors("netgear", Mock(spec=RouterClient), CollectorsFilter(), True)

        registry = exporter.build_registry("netgear", collectors)

        assert isinstance(registry, CollectorRegistry)
        assert [type(c) for c in collectors] == [ClientCollector, SystemInfoCollector, TrafficCollector]

    def test_print_metrics(self):
        out = io.StringIO()

        exporter.print_metrics("netgear", out)

        text = out.getvalue()
        assert "Traffic\n" in text
        assert "  netgear_traffic_download - Value downloaded since previous check" in text
        assert "netgear_client_info" in text
        assert "netgear_last_system_info_scrape_error" in text
        assert "  netgear_client_scrapes_total - " in text
        assert "  netgear_traffic_scrape_errors_total - " in text
        assert "  netgear_client_scrapes - " not in text


class TestConfiguration:

    @pytest.mark.parametrize("address, expected", [(":9192", ("", 9192)), ("127.0.0.1:80", ("127.0.0.1", 80)),
                                                   ("[::1]:9000", ("::1", 9000))])
    def test_parse_listen_address(self, address, expected):
        assert exporter.parse_listen_address(address) == expected

    @pytest.mark.parametrize("address", ["9192", "host:port"])
    def test_parse_listen_address_invalid(self, address):
        with pytest.raises(ConfigException):
            exporter.parse_listen_address(address)

    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("NETGEAR_EXPORTER_URL", "10.0.0.1")
        monkeypatch.setenv("NETGEAR_EXPORTER_INSECURE", "true")
        monkeypatch.setenv("NETGEAR_EXPORTER_FILTER_COLLECTORS", "Client")

        args = exporter.build_parser().parse_args([])
        config = exporter.config_from_args(args, "pw")

        assert config.url == "10.0.0.1"
        assert config.insecure is True
        assert config.filter_collectors == "Client"
        assert config.password == "pw"
        assert config.namespace == "netgear"

    def test_timeout_from_environment(self, monkeypatch):
        monkeypatch.setenv("NETGEAR_EXPORTER_TIMEOUT", "7.5")

        assert exporter.build_parser().parse_args([]).timeout == 7.5

    def test_invalid_timeout_is_a_usage_error(self, monkeypatch):
        monkeypatch.setenv("NETGEAR_EXPORTER_TIMEOUT", "soon")
        parser = exporter.build_parser()

        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args([])

        assert exc_info.value.code == 2

    def test_password_is_not_a_flag(self):
        with pytest.raises(SystemExit):
            exporter.build_parser().parse_args(["--password", "pw"])

    def test_missing_tls_file(self):
        args = exporter.build_parser().parse_args(["--web-tls-cert-file", "/nonexistent/cert.pem"])

        with pytest.raises(ConfigException):
            exporter.config_from_args(args, "pw")

    def test_create_app_rejects_unknown_collector(self):
        config = exporter.ExporterConfig(url="10.0.0.1", username="admin", password="pw", filter_collectors="Foo")

        with pytest.raises(ConfigException):
            exporter.create_app(config)

    def test_create_app_requires_password(self):
        config = exporter.ExporterConfig(url="10.0.0.1", username="admin", password="")

        with pytest.raises(ConfigException):
            exporter.create_app(config)


class TestMain:

    def test_print_metrics_exits_cleanly(self, capsys):
        assert exporter.main(["--print-metrics"]) == 0
        assert "netgear_system_info_cpuutilization" in capsys.readouterr().out

    def test_missing_password(self, monkeypatch, caplog):
        monkeypatch.delenv("NETGEAR_EXPORTER_PASSWORD", raising=False)

        assert exporter.main([]) == 1
        assert "NETGEAR_EXPORTER_PASSWORD" in caplog.text

    def test_invalid_configuration_returns_error(self, monkeypatch):
        monkeypatch.setenv("NETGEAR_EXPORTER_PASSWORD", "pw")

        assert exporter.main(["--filter-collectors", "Bogus"]) == 1
