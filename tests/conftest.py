"""Shared fixtures: isolated settings and fake whisper-cli engines."""

from __future__ import annotations

import io
import wave
from pathlib import Path
from typing import Callable

import pytest

from autochar.shared.config import STTConfig
from autochar.stt_service.resources import ResourceLocator


# Writes <input>.txt like whisper-cli -otxt and prints a timestamped line
ENGINE_WRITES_TXT = """\
input=""
while [ $# -gt 0 ]; do
  if [ "$1" = "-f" ]; then input="$2"; fi
  shift
done
if [ ! -f "$input" ]; then
  echo "error: failed to open '$input'" >&2
  exit 2
fi
echo "[00:00:00.000 --> 00:00:01.500]   hello from stdout"
printf 'hello from file\\n' > "$input.txt"
"""

ENGINE_STDOUT_ONLY = """\
echo "hello from stdout"
"""

ENGINE_SILENT = """\
exit 0
"""

ENGINE_FAILS = """\
echo "error: model is corrupted" >&2
exit 3
"""

ENGINE_HANGS = """\
exec sleep 10
"""


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[[str, str], Path]:
    """Factory writing an executable /bin/sh script under tmp_path."""

    def _make(name: str, body: str) -> Path:
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(0o755)
        return path

    return _make


@pytest.fixture
def stt_settings(tmp_path: Path) -> STTConfig:
    """Settings pointing every directory into tmp_path."""
    return STTConfig(
        uploads_dir=tmp_path / "uploads",
        models_dir=tmp_path / "models",
        resources_dir=tmp_path / "resources",
        locator_config_path=tmp_path / "missing-resources.yaml",
        attempt_timeout_seconds=30,
        library_fallback_enabled=False,
    )


@pytest.fixture
def model_file(stt_settings: STTConfig) -> Path:
    """A fake model already in the canonical models directory."""
    stt_settings.models_dir.mkdir(parents=True, exist_ok=True)
    path = stt_settings.canonical_model_path
    path.write_bytes(b"ggml fake model")
    return path


@pytest.fixture
def make_locator(stt_settings: STTConfig) -> Callable[..., ResourceLocator]:
    """Factory for locators with explicit candidates and no PATH lookup."""

    def _make(
        binary_candidates: list[Path] | None = None,
        model_candidates: list[Path] | None = None,
        config: STTConfig | None = None,
    ) -> ResourceLocator:
        return ResourceLocator(
            config or stt_settings,
            locator_config={
                "binary": {
                    "candidates": [str(p) for p in binary_candidates or []],
                    "search_path": False,
                },
                "model": {
                    "candidates": [str(p) for p in model_candidates or []],
                },
            },
        )

    return _make


@pytest.fixture
def wav_bytes() -> bytes:
    """Half a second of 16 kHz mono silence as a real WAV file."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(16000)
        wav_file.writeframes(b"\x00\x00" * 8000)
    return buffer.getvalue()


ENGINE_BODIES = {
    "writes_txt": ENGINE_WRITES_TXT,
    "stdout_only": ENGINE_STDOUT_ONLY,
    "silent": ENGINE_SILENT,
    "fails": ENGINE_FAILS,
    "hangs": ENGINE_HANGS,
}


@pytest.fixture
def fake_engine(make_script: Callable[[str, str], Path]) -> Callable[..., Path]:
    """Factory for fake whisper-cli binaries with a given behaviour."""

    def _make(behaviour: str = "writes_txt", name: str = "whisper-cli") -> Path:
        return make_script(name, ENGINE_BODIES[behaviour])

    return _make
