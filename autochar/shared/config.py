"""
Shared configuration management for the AutoChar backend.
Centralizes environment variables, directory layout and locator candidates.
"""
import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root (the directory holding pyproject.toml and resources.yaml)
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
ENV_FILE_PATH = PROJECT_ROOT / ".env"


class BaseServiceConfig(BaseSettings):
    """Base configuration shared by every service"""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        extra="ignore",
        case_sensitive=False,
    )

    # Service identification
    service_name: str = "autochar-stt"
    service_version: str = "1.0.0"
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class STTConfig(BaseSettings):
    """Transcription service configuration"""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_prefix="AUTOCHAR_",
        extra="ignore",
        case_sensitive=False,
        protected_namespaces=(),
    )

    host: str = "0.0.0.0"
    port: int = 3001

    # Filesystem layout
    uploads_dir: Path = PROJECT_ROOT / "uploads"
    models_dir: Path = PROJECT_ROOT / "models"
    resources_dir: Path = PROJECT_ROOT / "resources"
    locator_config_path: Path = PROJECT_ROOT / "resources.yaml"

    # Engine
    binary_name: str = "whisper-cli"
    model_filename: str = "ggml-base.bin"
    model_name: str = "base"
    language: str = "auto"

    # Execution
    attempt_timeout_seconds: float = 600.0
    simple_max_workers: int = 1
    library_fallback_enabled: bool = True
    runtime_executable_env: str = "AUTOCHAR_RUNTIME_EXECUTABLE"

    # Uploads
    quarantine_suffix: str = ".original"
    delete_audio_file: bool = False

    @property
    def canonical_model_path(self) -> Path:
        """Location the model is materialized into on first success"""
        return self.models_dir / self.model_filename


DEFAULT_LOCATOR_CONFIG: Dict[str, Any] = {
    "binary": {
        "candidates": [
            "{cwd}/whisper.cpp/build/bin/{binary_name}",
            "{resources_dir}/{binary_name}",
            "{project_root}/resources/{binary_name}",
        ],
        "search_path": True,
    },
    "model": {
        "candidates": [
            "{cwd}/whisper.cpp/models/{model_filename}",
            "{resources_dir}/models/{model_filename}",
            "{project_root}/resources/models/{model_filename}",
        ],
    },
}


def get_locator_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load resource locator candidates from resources.yaml.

    Args:
        config_path: Override for the YAML file location

    Returns:
        Dictionary with ``binary`` and ``model`` sections
    """
    config_path = Path(config_path or stt_config.locator_config_path)

    if not config_path.exists():
        return copy.deepcopy(DEFAULT_LOCATOR_CONFIG)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError("top-level mapping expected")
    except Exception as e:
        from .logging import ServiceLogger
        logger = ServiceLogger("config")
        logger.error(f"Failed to load locator config from {config_path}", e)
        return copy.deepcopy(DEFAULT_LOCATOR_CONFIG)

    config = copy.deepcopy(DEFAULT_LOCATOR_CONFIG)
    for section in ("binary", "model"):
        overrides = loaded.get(section)
        if isinstance(overrides, dict):
            config[section].update(overrides)
    return config


# Global configuration instances
base_config = BaseServiceConfig()
stt_config = STTConfig()
