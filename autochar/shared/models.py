"""
Shared data models used across the backend.
Defines the structures passed between the locator, validator and orchestrator.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class ResourceKind(str, Enum):
    """Kind of engine resource"""
    BINARY = "binary"
    MODEL = "model"


class StrategyName(str, Enum):
    """Transcription strategies, in fallback order"""
    DIRECT = "direct"
    SIMPLE = "simple"
    LIBRARY_FALLBACK = "library_fallback"


class AttemptStatus(str, Enum):
    """Outcome of a single strategy attempt"""
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class ResourceLocation:
    """Ordered candidates for one resource and where it was found"""
    kind: ResourceKind
    candidate_paths: List[Path]
    resolved_path: Optional[Path] = None

    @property
    def exists(self) -> bool:
        return self.resolved_path is not None and self.resolved_path.exists()


@dataclass
class ResourceStatus:
    """Diagnostic entry reported by the resource check"""
    name: str
    kind: ResourceKind
    path: Optional[str]
    exists: bool
    executable: Optional[bool] = None
    size_mb: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "path": self.path,
            "exists": self.exists,
            "executable": self.executable,
            "size_mb": self.size_mb,
        }


@dataclass
class UploadedAudio:
    """Audio file received by the transcription endpoint"""
    path: Path
    declared_extension: str
    original_name: str
    stored_name: str

    @classmethod
    def from_stored_file(cls, path: Path, original_name: str) -> "UploadedAudio":
        return cls(
            path=path,
            declared_extension=Path(original_name).suffix.lower(),
            original_name=original_name,
            stored_name=path.name,
        )


@dataclass
class TranscriptionAttempt:
    """Record of one strategy run"""
    strategy: StrategyName
    status: AttemptStatus
    output: Any = None
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == AttemptStatus.SUCCESS


@dataclass(frozen=True)
class TranscriptionResult:
    """Final normalized transcription"""
    text: str
    source_strategy: StrategyName
    attempts: Tuple[TranscriptionAttempt, ...] = field(default_factory=tuple)
