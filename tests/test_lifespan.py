"""Startup loads persisted state; shutdown flushes pending changes."""
import contextlib

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine

from app import main
from application.persistence import StateFlusher
from infrastructure.llm_client import ChatCompletionClient


def test_state_survives_restart(tmp_path, monkeypatch):
    monkeypatch.setenv("APP__DB_DSN", f"sqlite+aiosqlite:///{tmp_path / 'state.db'}")
    monkeypatch.setenv("APP__FLUSH_DELAY_S", "60")

    with TestClient(main.app) as client:
        customer_id = client.post("/customers", json={"name": "王记"}).json()["id"]
        client.post("/draft", json={"customer_id": customer_id})
        client.patch("/draft/items/0", json={"field": "name", "value": "番茄"})
        client.patch("/draft/items/0", json={"field": "price", "value": 5})
        assert client.post("/draft/save").status_code == 201
        assert main.flusher.dirty is True

    with TestClient(main.app) as client:
        names = [c["name"] for c in client.get("/customers").json()]
        orders = client.get("/orders").json()
        # the draft slot is not persisted
        assert client.get("/draft").status_code == 409

    assert names == ["默认厂家", "王记"]
    assert orders["total"] == 5.0
    assert orders["orders"][0]["items"][0]["name"] == "番茄"


def test_shutdown_releases_resources_when_final_flush_fails(tmp_path, monkeypatch):
    monkeypatch.setenv("APP__DB_DSN", f"sqlite+aiosqlite:///{tmp_path / 'state.db'}")
    monkeypatch.setenv("APP__LLM_API_KEY", "sk-test")
    closed = []

    async def failing_flush(self):
        raise OSError("disk full")

    original_aclose = ChatCompletionClient.aclose
    original_dispose = AsyncEngine.dispose

    async def recording_aclose(self):
        closed.append("llm")
        await original_aclose(self)

    async def recording_dispose(self, *args, **kwargs):
        closed.append("engine")
        await original_dispose(self, *args, **kwargs)

    monkeypatch.setattr(StateFlusher, "flush", failing_flush)
    monkeypatch.setattr(ChatCompletionClient, "aclose", recording_aclose)
    monkeypatch.setattr(AsyncEngine, "dispose", recording_dispose)

    with contextlib.suppress(OSError):
        with TestClient(main.app) as client:
            assert client.get("/health").json()["llm"] is True

    assert closed == ["llm", "engine"]
