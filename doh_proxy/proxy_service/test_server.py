from unittest.mock import patch

from starlette.testclient import TestClient

from doh_proxy.proxy_service import server
from doh_proxy.proxy_service.server import create_app
from doh_proxy.proxy_service.upstream.http.transport import AiohttpUpstreamTransport
from doh_proxy.shared.config import Settings
from doh_proxy.utils_tests.fake_transport import RecordingTransport

SETTINGS = Settings(upstream_base_url="https://dns.example.net")


def test_lifespan_opens_and_closes_upstream_session():
    app = create_app(SETTINGS)

    with TestClient(app):
        transport = app.state.upstream_transport
        assert isinstance(transport, AiohttpUpstreamTransport)

    assert app.state.upstream_transport is None


def test_lifespan_keeps_injected_transport():
    transport = RecordingTransport()
    app = create_app(SETTINGS, transport=transport)

    with TestClient(app) as client:
        response = client.get("/dns-query")

    assert response.status_code == 200
    assert app.state.upstream_transport is transport


def test_settings_are_exposed_on_state():
    app = create_app(SETTINGS)
    assert app.state.settings is SETTINGS


def test_independent_apps_use_their_own_upstream():
    first, second = RecordingTransport(), RecordingTransport()
    client_a = TestClient(create_app(Settings(upstream_base_url="https://a.example"), transport=first))
    client_b = TestClient(
        create_app(Settings(upstream_base_url="https://b.example", path_policy="fixed"), transport=second)
    )

    client_a.get("/resolve?name=x")
    client_b.get("/resolve?name=x")

    assert first.requests[0].url == "https://a.example/resolve?name=x"
    assert second.requests[0].url == "https://b.example/dns-query?name=x"


def test_main_runs_uvicorn(monkeypatch):
    monkeypatch.setattr(server, "get_settings", lambda: SETTINGS)

    with patch.object(server.uvicorn, "run") as run, patch.object(server, "setup_logging") as setup_logging:
        server.main()

    setup_logging.assert_called_once_with("INFO")
    _, kwargs = run.call_args
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 8053
    assert kwargs["loop"] == "uvloop"
    assert kwargs["log_config"] is None
