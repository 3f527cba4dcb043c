"""
Service-level tests for the transcription service.

Large-span tests: a real vault on disk, the real queue, pipeline, imaging,
note creation and history, the admin API in front of them, and the
configured provider talking to a mocked HTTP endpoint. Assertions are made
on observable outcomes (files in the vault, state on disk, API responses).
"""

import asyncio
import json
import time

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from PIL import Image

from app.api import admin, health
from app.utils.config import Settings
from domains.image_transcription.history import HISTORY_KEY
from domains.image_transcription.job import JobStatus
from domains.image_transcription.paths import VaultPath
from domains.image_transcription.service import build_transcription_service
from scripts.transcribe_watcher import build_settings, main, parse_args, run_once

TRANSCRIPT = "# Standup 12 March\n\n- ship the release\n- review queue metrics"


class OpenAIStub:
    """Answers chat completion requests with a fixed transcript."""

    def __init__(self, text=TRANSCRIPT):
        self.text = text
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        body = json.loads(request.content)
        assert body["messages"][1]["content"][1]["image_url"]["url"].startswith("data:image/jpeg;base64,")
        return httpx.Response(200, json={"choices": [{"message": {"content": self.text}}]})


@pytest.fixture
def vault(tmp_path):
    root = tmp_path / "vault"
    (root / "Notes").mkdir(parents=True)
    Image.new("RGB", (320, 240), color=(240, 240, 230)).save(root / "Notes" / "a.jpg", "JPEG")
    return root


@pytest.fixture
def settings(vault):
    return Settings(vault_root=vault, openai_api_key="sk-test", max_concurrent_jobs=2)


@pytest.fixture
def stub():
    return OpenAIStub()


@pytest.fixture
def service(settings, stub):
    return build_transcription_service(settings, transport=httpx.MockTransport(stub))


@pytest.fixture
def client(service):
    app = FastAPI()
    app.include_router(health.router)
    app.include_router(admin.router, prefix="/admin")
    app.state.service = service
    with TestClient(app) as test_client:
        yield test_client


def wait_for_finished(client, count=1, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        status = client.get("/admin/queue").json()
        if len(status["finished"]) >= count and not status["jobs"]:
            return status
        time.sleep(0.05)
    raise AssertionError("queue did not drain in time")


def test_enqueued_image_becomes_note(client, vault, stub):
    """When an image is queued, it is moved, transcribed, noted and remembered."""
    response = client.post("/admin/queue", json={"path": "Notes/a.jpg"})
    assert response.status_code == 202
    assert response.json()["initial_file"] == "Notes/a.jpg"

    status = wait_for_finished(client)
    [job] = status["finished"]
    assert job["status"] == "done", job["error"]
    assert job["working_file"] == "Notes/Images/a.jpg"

    assert (vault / "Notes" / "Images" / "a.jpg").is_file()
    note = vault / "Notes" / "Standup 12 March.md"
    assert note.read_text(encoding="utf-8").endswith("![[Notes/Images/a.jpg]]\n")
    assert stub.calls == 1

    state = json.loads((vault / ".image-transcriber" / "state.json").read_text())
    assert state[HISTORY_KEY] == ["Notes/Images/a.jpg"]

    history = client.get("/admin/history").json()
    assert history == {"count": 1, "paths": ["Notes/Images/a.jpg"]}

    messages = [n["message"] for n in client.get("/admin/notifications").json()]
    assert "Processing a.jpg..." in messages
    assert "Note created: Standup 12 March" in messages


def test_processed_image_is_not_transcribed_again(client, vault, stub):
    client.post("/admin/queue", json={"path": "Notes/a.jpg"})
    wait_for_finished(client)

    response = client.post("/admin/queue", json={"path": "Notes/Images/a.jpg"})
    assert response.status_code == 202
    status = wait_for_finished(client, count=2)

    assert [job["status"] for job in status["finished"]] == ["done", "done"]
    assert stub.calls == 1
    assert len(list((vault / "Notes").glob("*.md"))) == 1


def test_clearing_history_allows_retranscription(client, vault, stub):
    client.post("/admin/queue", json={"path": "Notes/a.jpg"})
    wait_for_finished(client)

    cleared = client.delete("/admin/history").json()
    assert cleared == {"status": "cleared", "cleared": 1}
    assert client.get("/admin/history").json()["count"] == 0

    client.post("/admin/queue", json={"path": "Notes/Images/a.jpg"})
    wait_for_finished(client, count=2)

    assert stub.calls == 2
    assert sorted(p.name for p in (vault / "Notes").glob("*.md")) == [
        "Standup 12 March.md",
        "Standup 12 March_1.md",
    ]


def test_enqueue_rejections(client):
    assert client.post("/admin/queue", json={"path": "Notes/readme.md"}).status_code == 422
    assert client.post("/admin/queue", json={"path": "Notes/missing.jpg"}).status_code == 409
    assert client.post("/admin/queue", json={"path": ""}).status_code == 422


def test_provider_error_is_reported(settings, vault):
    def unauthorized(request):
        return httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})

    service = build_transcription_service(settings, transport=httpx.MockTransport(unauthorized))

    async def scenario():
        job = await service.submit("Notes/a.jpg")
        await service.queue.join()
        return job

    job = asyncio.run(scenario())

    assert job.status is JobStatus.ERROR
    assert job.error == "transcription failed"
    assert (vault / "Notes" / "Images" / "a.jpg").is_file()
    assert not list((vault / "Notes").glob("*.md"))
    errors = [n for n in service.notifier.recent() if n["level"] == "error"]
    assert [n["message"] for n in errors] == ["Error: Failed to process a.jpg: transcription failed"]


def test_concurrency_and_health_endpoints(client):
    assert client.put("/admin/queue/concurrency", json={"limit": 9}).json() == {"limit": 5}
    assert client.put("/admin/queue/concurrency", json={"limit": 0}).status_code == 422

    health_status = client.get("/health").json()
    assert health_status["status"] == "degraded"
    assert health_status["watcher_running"] is False
    assert health_status["active_jobs"] == 0


def test_endpoints_need_a_started_service():
    app = FastAPI()
    app.include_router(admin.router, prefix="/admin")

    with TestClient(app) as test_client:
        assert test_client.get("/admin/queue").status_code == 503


def test_cli_once_processes_files(service, vault, stub):
    assert asyncio.run(run_once(service, ["Notes/a.jpg"])) == 0
    assert (vault / "Notes" / "Standup 12 March.md").is_file()
    assert stub.calls == 1


def test_cli_once_reports_unqueued_files(vault):
    state_file = vault / ".image-transcriber" / "state.json"
    state_file.parent.mkdir()
    state_file.write_text(json.dumps({HISTORY_KEY: ["Old/Images/x.jpg"]}))

    exit_code = main(["--vault", str(vault), "--clear-history", "--once", "Notes/missing.jpg"])

    assert exit_code == 1
    assert json.loads(state_file.read_text())[HISTORY_KEY] == []


def test_cli_overrides(vault):
    settings = build_settings(parse_args(["--vault", str(vault), "--concurrency", "8", "--log-level", "debug"]))

    assert settings.vault_root == vault
    assert settings.max_concurrent_jobs == 5
    assert settings.log_level == "debug"


def test_watched_vault_picks_up_new_images(tmp_path, stub):
    """When a file is dropped into the watched vault, a note appears."""
    vault = tmp_path / "watched"
    settings = Settings(vault_root=vault, openai_api_key="sk-test", ready_delay=0)
    service = build_transcription_service(settings, transport=httpx.MockTransport(stub))

    inbox = vault / "Inbox"
    inbox.mkdir(parents=True)

    async def scenario():
        await service.start()
        try:
            partial = inbox / "photo.jpg.part"
            Image.new("RGB", (64, 64), color=(10, 10, 10)).save(partial, "JPEG")
            partial.replace(inbox / "photo.jpg")

            deadline = time.monotonic() + 10
            while time.monotonic() < deadline:
                if service.history.contains(VaultPath("Inbox/Images/photo.jpg")):
                    break
                await asyncio.sleep(0.05)
            await service.queue.join()
        finally:
            await service.stop()

    asyncio.run(scenario())

    assert (vault / "Inbox" / "Images" / "photo.jpg").is_file()
    assert (vault / "Inbox" / "Standup 12 March.md").is_file()
    assert stub.calls == 1
    assert not service.watcher.is_running


def test_enqueue_refuses_paths_outside_or_hidden(client, vault, tmp_path, stub):
    outside = tmp_path / "outside" / "a.jpg"
    outside.parent.mkdir()
    outside.write_bytes(b"outside")
    hidden = vault / ".image-transcriber" / "x.jpg"
    hidden.parent.mkdir()
    hidden.write_bytes(b"hidden")

    for path in ("../outside/a.jpg", "Notes/../../outside/a.jpg", ".image-transcriber/x.jpg"):
        assert client.post("/admin/queue", json={"path": path}).status_code == 422

    assert client.get("/admin/queue").json()["finished"] == []
    assert outside.read_bytes() == b"outside"
    assert not (tmp_path / "outside" / "Images").exists()
    assert hidden.read_bytes() == b"hidden"
    assert stub.calls == 0


def test_cli_once_skips_paths_outside_the_vault(service, vault, tmp_path, stub):
    outside = tmp_path / "outside" / "a.jpg"
    outside.parent.mkdir()
    outside.write_bytes(b"outside")

    exit_code = asyncio.run(run_once(service, ["../outside/a.jpg", str(outside), "Notes/a.jpg"]))

    assert exit_code == 1
    assert outside.read_bytes() == b"outside"
    assert list((tmp_path / "outside").iterdir()) == [outside]
    assert (vault / "Notes" / "Images" / "a.jpg").is_file()
    assert stub.calls == 1
