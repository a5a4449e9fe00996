import asyncio

import pytest
import requests
from fastapi.testclient import TestClient

from webpilot import cli
from webpilot.src import browser_host
from webpilot.src.actionlog.store import ActionLog, ActionLogRecord
from webpilot.src.host_client import HostClient
from webpilot.src.utils.config import HostConfig
from webpilot.src.utils.errors import HostUnavailableError


class _StubController:
    def __init__(self, running: bool):
        self.is_running = running
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(browser_host, "action_log", ActionLog(tmp_path / "actions.log"))
    return TestClient(browser_host.app)


class TestHostEndpoints:
    def test_root_reports_sessions(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "webpilot host is running."

    def test_logs_round_trip(self, client):
        browser_host.action_log.log_action(ActionLogRecord(action="type", selector="#pwd", value="x"))
        browser_host.action_log.log_action(ActionLogRecord(action="click", selector="#go"))

        logs = client.get("/logs", params={"limit": 1}).json()["logs"]
        assert [entry["selector"] for entry in logs] == ["#go"]
        assert client.get("/logs").json()["logs"][0]["value"] == "REDACTED"

        assert client.delete("/logs").json() == {"success": True}
        assert client.get("/logs").json()["logs"] == []

    def test_stop_unknown_session(self, client):
        body = client.post("/stop", json={"session_id": "ghost"}).json()
        assert body["success"] is False

    def test_stop_cancels_running_controller(self, client, monkeypatch):
        session = browser_host.BrowserSession("tab-1")
        session.controller = _StubController(running=True)
        monkeypatch.setitem(browser_host.active_sessions, "tab-1", session)

        body = client.post("/stop", json={"session_id": "tab-1"}).json()
        assert body == {"success": True, "was_running": True}
        assert session.controller.cancelled

    def test_execute_command_requires_a_command(self, client):
        assert client.post("/execute-command", json={"command": ""}).status_code == 422

    def test_close_unknown_session(self, client):
        assert client.post("/close-session", json={"session_id": "ghost"}).json()["success"] is False


class _FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status
        self.content = b"{}"

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class _FakeHttp:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response


class TestHostClient:
    def test_execute_command_payload(self):
        http = _FakeHttp(_FakeResponse({"status": "satisfied"}))
        client = HostClient(HostConfig(host_url="http://host:9000/", request_timeout=5), session=http)

        assert client.execute_command("search docs", session_id="s1", max_steps=3)["status"] == "satisfied"
        method, url, kwargs = http.requests[0]
        assert (method, url) == ("POST", "http://host:9000/execute-command")
        assert kwargs["json"] == {"command": "search docs", "session_id": "s1", "max_steps": 3}
        assert kwargs["timeout"] == 5

    def test_connection_errors_are_wrapped(self):
        http = _FakeHttp(error=requests.ConnectionError("refused"))
        with pytest.raises(HostUnavailableError):
            HostClient(HostConfig(host_url="http://host:9000"), session=http).stop()

    def test_http_errors_are_wrapped(self):
        http = _FakeHttp(_FakeResponse({"detail": "busy"}, status=409))
        with pytest.raises(HostUnavailableError):
            HostClient(HostConfig(host_url="http://host:9000"), session=http).execute_command("x")


class TestCli:
    def test_logs_subcommand_prints_recent(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(cli.CONFIG.action_log, "path", tmp_path / "actions.log")
        ActionLog().log_action(ActionLogRecord(action="click", selector="#go"))

        assert cli.main(["logs", "--limit", "5"]) == 0
        assert '"selector":"#go"' in capsys.readouterr().out
        assert cli.main(["logs", "--clear"]) == 0
        assert ActionLog().recent() == []

    def test_unreachable_host_exits_with_error(self, monkeypatch, capsys):
        class DownClient:
            def stop(self, session_id):
                raise HostUnavailableError("POST /stop failed")

        monkeypatch.setattr(cli, "_host_client", lambda: DownClient())
        assert cli.main(["stop"]) == 2
        assert "failed" in capsys.readouterr().err


class _FakePage:
    def on(self, event, handler):
        pass


class _FakeBrowser:
    async def new_page(self):
        await asyncio.sleep(0)
        return _FakePage()


class _FakeChromium:
    def __init__(self):
        self.launches = 0

    async def launch(self, headless=True):
        self.launches += 1
        await asyncio.sleep(0.01)
        return _FakeBrowser()


class _FakePlaywright:
    def __init__(self):
        self.chromium = _FakeChromium()


class TestBrowserSessions:
    def test_concurrent_first_requests_launch_one_browser(self, monkeypatch):
        fake = _FakePlaywright()
        monkeypatch.setattr(browser_host, "playwright_instance", fake)
        monkeypatch.setattr(browser_host, "active_sessions", {})

        async def scenario():
            return await asyncio.gather(
                browser_host._get_session("s"),
                browser_host._get_session("s"),
            )

        first, second = asyncio.run(scenario())
        assert first is second
        assert fake.chromium.launches == 1
        assert first.controller is not None
