"""Tests for the demo server wiring."""

import pytest

from accesslog.app import build_app
from accesslog.config import Config
from accesslog.guard import ERROR_PAGE_SHORT
from accesslog.wsgi import wsgi_handler
from main import create_demo_app


@pytest.fixture
def served(tmp_path):
    flask_app = create_demo_app()
    config = Config(
        access_log=str(tmp_path / "access.log"),
        perf_log=str(tmp_path / "perf.log"),
        error_log=str(tmp_path / "error.log"),
    )
    access = build_app(wsgi_handler(flask_app.wsgi_app), config)
    flask_app.wsgi_app = access
    yield flask_app.test_client(), access, tmp_path
    access.close()


class TestDemoApp:
    def test_index(self, served):
        client, access, tmp_path = served
        resp = client.get("/", buffered=True)
        access.close()
        assert resp.status_code == 200
        assert '"GET / HTTP/1.1" 200 ' in (tmp_path / "access.log").read_text()

    def test_health(self, served):
        client, _, _ = served
        resp = client.get("/health", buffered=True)
        assert resp.get_json() == {"status": "ok"}

    def test_slow_shows_in_perf_log(self, served):
        client, access, tmp_path = served
        resp = client.get("/slow?ms=30", buffered=True)
        access.close()
        assert resp.get_json() == {"slept_ms": 30}
        line = (tmp_path / "perf.log").read_text().strip()
        elapsed = int(line.rsplit(" ", 1)[1].removesuffix("ms"))
        assert elapsed >= 30

    def test_panic_recovered(self, served):
        client, access, tmp_path = served
        resp = client.get("/panic", buffered=True)
        access.close()
        assert resp.status_code == 500
        assert resp.data == ERROR_PAGE_SHORT.encode()
        report = (tmp_path / "error.log").read_text()
        assert "[panic] RuntimeError: demo fault requested by client" in report
