"""
Exception types for the transcription pipeline.
Only AllStrategiesExhaustedError is expected to reach the HTTP layer.
"""
from typing import List, Optional, Sequence

from .models import StrategyName, TranscriptionAttempt


class AutoCharError(Exception):
    """Base class for backend errors"""
    pass


class StrategyFailure(AutoCharError):
    """A single transcription strategy failed"""

    def __init__(
        self,
        strategy: StrategyName,
        message: str,
        command: Optional[List[str]] = None,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ):
        self.strategy = strategy
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message)

    def describe(self) -> str:
        """Full context for logging"""
        parts = [f"[{self.strategy.value}] {self}"]
        if self.command:
            parts.append(f"command: {' '.join(self.command)}")
        if self.exit_code is not None:
            parts.append(f"exit code: {self.exit_code}")
        if self.stdout:
            parts.append(f"stdout: {self.stdout.strip()}")
        if self.stderr:
            parts.append(f"stderr: {self.stderr.strip()}")
        return "\n".join(parts)


class ResourceMissingError(StrategyFailure):
    """Engine binary or model absent when a strategy needed it; nothing was spawned"""

    def __init__(self, strategy: StrategyName, resource: str, message: str):
        self.resource = resource
        super().__init__(strategy, message)


class AllStrategiesExhaustedError(AutoCharError):
    """Every transcription strategy failed for a request"""

    def __init__(self, attempts: Sequence[TranscriptionAttempt]):
        self.attempts = list(attempts)
        last_error = self.attempts[-1].error if self.attempts else "no strategy was attempted"
        super().__init__(f"Transcription failed with all available methods: {last_error}")
