"""HTTP tests for the transcription server."""

from __future__ import annotations

import re
import sys
from contextlib import ExitStack
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from autochar.shared.config import STTConfig
from autochar.shared.models import StrategyName
from autochar.stt_service import strategies
from autochar.stt_service.main import create_app
from autochar.stt_service.strategies import TranscriptionOrchestrator

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="fake engines are /bin/sh scripts")


@pytest.fixture
def client_for(make_locator, stt_settings: STTConfig):
    """Factory yielding a started TestClient for a given engine binary."""
    stack = ExitStack()

    def _make(binary: Path | None = None, config: STTConfig | None = None) -> TestClient:
        settings = config or stt_settings
        locator = make_locator(binary_candidates=[binary] if binary else [], config=settings)
        return stack.enter_context(TestClient(create_app(config=settings, locator=locator)))

    with stack:
        yield _make


class TestHealth:
    """Tests for GET /api/health."""

    def test_ok_without_resources(self, client_for) -> None:
        response = client_for().get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "message": "AutoChar Studio Server is running"}

    def test_cors_headers(self, client_for) -> None:
        response = client_for().get("/api/health", headers={"Origin": "http://localhost:5173"})

        assert response.headers["access-control-allow-origin"] in ("*", "http://localhost:5173")


class TestResources:
    """Tests for GET /api/resources and /info."""

    def test_reports_missing(self, client_for) -> None:
        body = client_for().get("/api/resources").json()

        assert body["all_found"] is False
        assert [r["kind"] for r in body["resources"]] == ["binary", "model"]

    def test_reports_found(self, client_for, fake_engine, model_file: Path) -> None:
        body = client_for(fake_engine()).get("/api/resources").json()

        assert body["all_found"] is True
        assert body["resources"][0]["executable"] is True

    def test_info(self, client_for, stt_settings: STTConfig) -> None:
        body = client_for().get("/info").json()

        assert body["paths"]["uploads_dir"] == str(stt_settings.uploads_dir)
        assert body["engine"]["binary_name"] == "whisper-cli"


class TestTranscribe:
    """Tests for POST /api/transcribe."""

    def test_missing_file_is_rejected(self, client_for) -> None:
        response = client_for().post("/api/transcribe")

        assert response.status_code == 400
        assert response.json() == {"error": "No audio file provided"}

    def test_text_field_is_rejected(self, client_for) -> None:
        response = client_for().post("/api/transcribe", data={"audio": "not a file"})

        assert response.status_code == 400
        assert response.json() == {"error": "No audio file provided"}

    def test_wrong_field_name_is_rejected(self, client_for, wav_bytes: bytes) -> None:
        response = client_for().post(
            "/api/transcribe", files={"file": ("clip.wav", wav_bytes, "audio/wav")}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "No audio file provided"}

    def test_transcribes_upload(
        self, client_for, fake_engine, model_file: Path, wav_bytes: bytes, stt_settings: STTConfig
    ) -> None:
        response = client_for(fake_engine("writes_txt")).post(
            "/api/transcribe", files={"audio": ("clip.wav", wav_bytes, "audio/wav")}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["transcription"] == "hello from file\n"
        assert re.fullmatch(r"\d+-clip\.wav", body["audioFile"])

        stored = stt_settings.uploads_dir / body["audioFile"]
        assert stored.read_bytes() == wav_bytes
        assert Path(f"{stored}.txt").exists()

    def test_stored_upload_is_served(
        self, client_for, fake_engine, model_file: Path, wav_bytes: bytes
    ) -> None:
        client = client_for(fake_engine("stdout_only"))
        body = client.post(
            "/api/transcribe", files={"audio": ("clip.wav", wav_bytes, "audio/wav")}
        ).json()

        response = client.get(f"/uploads/{body['audioFile']}")

        assert response.status_code == 200
        assert response.content == wav_bytes

    def test_malformed_wav_is_quarantined_and_transcribed(
        self, client_for, fake_engine, model_file: Path, stt_settings: STTConfig
    ) -> None:
        response = client_for(fake_engine("writes_txt")).post(
            "/api/transcribe", files={"audio": ("clip.wav", b"ID3 definitely an mp3", "audio/wav")}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["transcription"] == "hello from file\n"

        stored = stt_settings.uploads_dir / body["audioFile"]
        assert not stored.exists()
        assert Path(f"{stored}.original").exists()

    def test_path_components_are_stripped(
        self, client_for, fake_engine, model_file: Path, wav_bytes: bytes, stt_settings: STTConfig
    ) -> None:
        response = client_for(fake_engine("stdout_only")).post(
            "/api/transcribe", files={"audio": ("../../escape.wav", wav_bytes, "audio/wav")}
        )

        assert response.status_code == 200
        assert re.fullmatch(r"\d+-escape\.wav", response.json()["audioFile"])
        assert list(stt_settings.uploads_dir.glob("*-escape.wav"))

    def test_all_strategies_failing(
        self, client_for, fake_engine, model_file: Path, wav_bytes: bytes
    ) -> None:
        response = client_for(fake_engine("fails")).post(
            "/api/transcribe", files={"audio": ("clip.wav", wav_bytes, "audio/wav")}
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"].startswith(
            "Failed to transcribe audio: Transcription failed with all available methods:"
        )
        assert "model is corrupted" in body["error"]
        assert "AllStrategiesExhaustedError" in body["details"]

    def test_missing_engine(self, client_for, model_file: Path, wav_bytes: bytes) -> None:
        response = client_for().post(
            "/api/transcribe", files={"audio": ("clip.wav", wav_bytes, "audio/wav")}
        )

        assert response.status_code == 500
        assert "whisper-cli binary not found in any location" in response.json()["error"]

    def test_upload_deleted_when_configured(
        self, client_for, fake_engine, model_file: Path, wav_bytes: bytes, stt_settings: STTConfig
    ) -> None:
        settings = stt_settings.model_copy(update={"delete_audio_file": True})
        response = client_for(fake_engine("writes_txt"), config=settings).post(
            "/api/transcribe", files={"audio": ("clip.wav", wav_bytes, "audio/wav")}
        )

        assert response.status_code == 200
        assert list(settings.uploads_dir.iterdir()) == []


async def _refuse_spawn(*args, **kwargs):
    raise OSError("spawn refused")


class TestLifespan:
    """Tests for startup and shutdown of the orchestrator."""

    def test_restarted_app_can_use_simple_strategy(
        self, make_locator, fake_engine, model_file: Path, wav_bytes: bytes, stt_settings: STTConfig
    ) -> None:
        locator = make_locator(binary_candidates=[fake_engine("stdout_only")])
        app = create_app(config=stt_settings, locator=locator)

        with TestClient(app):
            first = app.state.orchestrator
        assert app.state.orchestrator is None

        # Direct cannot spawn, so the request depends on the Simple worker pool
        with patch.object(strategies.asyncio, "create_subprocess_exec", side_effect=_refuse_spawn):
            with TestClient(app) as client:
                assert app.state.orchestrator is not first
                response = client.post(
                    "/api/transcribe", files={"audio": ("clip.wav", wav_bytes, "audio/wav")}
                )

        assert response.status_code == 200
        assert response.json()["transcription"] == "hello from stdout\n"

    def test_injected_orchestrator_is_not_closed(self, make_locator, stt_settings: STTConfig) -> None:
        orchestrator = TranscriptionOrchestrator.create(make_locator(), stt_settings)
        app = create_app(config=stt_settings, locator=make_locator(), orchestrator=orchestrator)

        try:
            for _ in range(2):
                with TestClient(app):
                    assert app.state.orchestrator is orchestrator

            assert orchestrator._executor is not None
            assert [s.name for s in orchestrator.strategies][:2] == [StrategyName.DIRECT, StrategyName.SIMPLE]
        finally:
            orchestrator.close()
