"""
Engine resource discovery.
Locates the whisper-cli binary and the ggml model across deployment layouts
(source checkout, packaged resources, copied application directory) and
materializes the model into the canonical models directory.
"""
import os
import shutil
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..shared.config import PROJECT_ROOT, STTConfig, get_locator_config, stt_config
from ..shared.logging import ServiceLogger
from ..shared.models import ResourceKind, ResourceLocation, ResourceStatus
from ..shared.utils import file_size_mb

logger = ServiceLogger("stt-resources")


class PathCandidate:
    """Filesystem path template, expanded against the locator context"""

    def __init__(self, template: str):
        self.template = template

    def expand(self, context: Dict[str, str]) -> Path:
        return Path(self.template.format(**context)).expanduser()

    def __repr__(self) -> str:
        return f"PathCandidate({self.template!r})"


class ResourceLocator:
    """
    Resolves engine resources from an ordered candidate list.
    First existing candidate wins; absence is reported as ``None``, never raised.
    """

    # Serialises model copies within the process; the copy itself is
    # overwrite-or-skip so concurrent processes are also safe.
    _copy_lock = threading.Lock()

    def __init__(
        self,
        config: STTConfig = stt_config,
        locator_config: Optional[Dict[str, Any]] = None,
        cwd: Optional[Path] = None,
    ):
        self.config = config
        self.locator_config = locator_config or get_locator_config(config.locator_config_path)
        self.cwd = Path(cwd) if cwd else None
        self.binary_candidates = [
            PathCandidate(t) for t in self.locator_config["binary"].get("candidates", [])
        ]
        self.search_path = bool(self.locator_config["binary"].get("search_path", False))
        self.model_candidates = [
            PathCandidate(t) for t in self.locator_config["model"].get("candidates", [])
        ]
        self.model_location = ResourceLocation(kind=ResourceKind.MODEL, candidate_paths=[])

    def _context(self) -> Dict[str, str]:
        return {
            "project_root": str(PROJECT_ROOT),
            "cwd": str(self.cwd or Path.cwd()),
            "resources_dir": str(self.config.resources_dir),
            "models_dir": str(self.config.models_dir),
            "binary_name": self.config.binary_name,
            "model_filename": self.config.model_filename,
        }

    def binary_location(self) -> ResourceLocation:
        """Expanded binary candidates, in evaluation order"""
        context = self._context()
        return ResourceLocation(
            kind=ResourceKind.BINARY,
            candidate_paths=[c.expand(context) for c in self.binary_candidates],
        )

    def model_location_candidates(self) -> ResourceLocation:
        """Expanded model candidates, in evaluation order"""
        context = self._context()
        return ResourceLocation(
            kind=ResourceKind.MODEL,
            candidate_paths=[c.expand(context) for c in self.model_candidates],
        )

    @staticmethod
    def _first_existing(paths: List[Path]) -> Optional[Path]:
        for path in paths:
            logger.debug(f"Checking for resource at: {path}")
            if path.exists():
                return path
        return None

    def resolve_binary(self) -> Optional[Path]:
        """
        Locate the engine binary. Re-run on every request; never copies.

        Returns:
            Path of the first existing candidate, or None
        """
        location = self.binary_location()
        found = self._first_existing(location.candidate_paths)

        if found is None and self.search_path:
            on_path = shutil.which(self.config.binary_name)
            if on_path:
                found = Path(on_path)

        if found is None:
            logger.warning(
                f"{self.config.binary_name} binary not found in any location: "
                + ", ".join(str(p) for p in location.candidate_paths)
            )
            return None

        logger.debug(f"Found {self.config.binary_name} at: {found}")
        return found

    def resolve_model(self) -> Optional[Path]:
        """
        Locate the model, copying it into the canonical models directory
        the first time it is found elsewhere.

        Returns:
            Canonical model path, the source path if the copy failed, or None
        """
        canonical = self.config.canonical_model_path
        if canonical.exists():
            self.model_location.resolved_path = canonical
            return canonical

        location = self.model_location_candidates()
        self.model_location.candidate_paths = location.candidate_paths
        source = self._first_existing(location.candidate_paths)

        if source is None:
            logger.warning(
                f"Model {self.config.model_filename} not found in any location; "
                "transcription will rely on auto-download"
            )
            return None

        logger.info(f"Found model at: {source}")
        resolved = self._materialize(source, canonical)
        self.model_location.resolved_path = resolved
        return resolved

    def _materialize(self, source: Path, destination: Path) -> Path:
        with self._copy_lock:
            if destination.exists():
                return destination

            temp_path = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.tmp")
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(source, temp_path)
                os.replace(temp_path, destination)
            except OSError as e:
                logger.error(f"Failed to copy model to {destination}, using {source}", e)
                temp_path.unlink(missing_ok=True)
                return source

        logger.success(f"Copied model file to app directory: {destination}")
        return destination

    def check_resources(self) -> List[ResourceStatus]:
        """
        Report found/missing for every tracked resource.
        Diagnostic only: does not copy and does not gate startup.
        """
        statuses: List[ResourceStatus] = []

        binary = self.resolve_binary()
        statuses.append(ResourceStatus(
            name=self.config.binary_name,
            kind=ResourceKind.BINARY,
            path=str(binary) if binary else None,
            exists=binary is not None,
            executable=os.access(binary, os.X_OK) if binary else None,
        ))

        canonical = self.config.canonical_model_path
        model_exists = canonical.exists()
        statuses.append(ResourceStatus(
            name=f"{self.config.model_filename} model",
            kind=ResourceKind.MODEL,
            path=str(canonical),
            exists=model_exists,
            size_mb=file_size_mb(canonical) if model_exists else None,
        ))

        for status in statuses:
            state = "FOUND ✓" if status.exists else "MISSING ✗"
            logger.info(f"- {status.name}: {state} at {status.path}")

        if all(status.exists for status in statuses):
            logger.success("All required binaries and models are available")
        else:
            logger.warning("Some required binaries or models are missing! Transcription may fail.")

        return statuses


# Global locator instance
resource_locator = ResourceLocator()
