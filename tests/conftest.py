import pytest
from fastapi.testclient import TestClient

import license_store.main as store
from botkit_extension import db
from botkit_extension.main import app


class _Resp:
    def __init__(self, payload):
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeStore:
    """Stands in for ``httpx.post`` against the remote license store."""

    def __init__(self):
        self.replies: dict[str, object] = {}
        self.calls: list[dict] = []

    def __call__(self, url, data=None, timeout=None, **kwargs):
        self.calls.append(dict(data or {}))
        reply = self.replies.get(data["edd_action"], {"success": False})
        if isinstance(reply, Exception) and not isinstance(reply, ValueError):
            raise reply
        return _Resp(reply)


class FakeSchedule:
    def __init__(self):
        self.running = False
        self.starts = 0

    def start(self, check) -> None:
        self.running = True
        self.starts += 1

    def stop(self) -> None:
        self.running = False


@pytest.fixture()
def panel_db(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_PATH", tmp_path / "panel.db")
    db.init_db()
    return tmp_path / "panel.db"


@pytest.fixture()
def fake_store(monkeypatch):
    fake = FakeStore()
    monkeypatch.setattr("botkit_extension.services.license.httpx.post", fake)
    return fake


@pytest.fixture()
def panel_client(panel_db, fake_store, monkeypatch):
    monkeypatch.setattr("botkit_extension.main.schedule", FakeSchedule())
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def store_client(tmp_path, monkeypatch):
    monkeypatch.setattr(store, "DB_PATH", tmp_path / "store.db")
    with TestClient(store.app) as client:
        yield client
