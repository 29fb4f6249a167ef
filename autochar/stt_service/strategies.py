"""
Transcription execution strategies and their orchestrator.

Strategies run in a fixed order, each exactly once:
1. direct: async spawn of whisper-cli with streamed output
2. simple: blocking whisper-cli call on a bounded worker pool
3. library_fallback: pywhispercpp in a child interpreter (auto-downloads models)
"""
import asyncio
import functools
import json
import os
import subprocess
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from ..shared.config import STTConfig, stt_config
from ..shared.errors import (
    AllStrategiesExhaustedError,
    ResourceMissingError,
    StrategyFailure,
)
from ..shared.logging import ServiceLogger
from ..shared.models import (
    AttemptStatus,
    StrategyName,
    TranscriptionAttempt,
    TranscriptionResult,
)
from .normalizer import normalize_transcription
from .resources import ResourceLocator, resource_locator

logger = ServiceLogger("stt-orchestrator")

EMPTY_OUTPUT_PLACEHOLDER = "Transcription completed, but no text was captured."
LIBRARY_WORKER_MODULE = "autochar.stt_service.library_worker"


class TranscriptionStrategy:
    """One self-contained way of invoking the engine"""

    name: StrategyName

    def __init__(self, locator: ResourceLocator, config: STTConfig = stt_config):
        self.locator = locator
        self.config = config

    @property
    def timeout(self) -> Optional[float]:
        return self.config.attempt_timeout_seconds or None

    def _resolve(self, model_dir: Path) -> Tuple[Path, Path]:
        """Resolve binary and model, failing before anything is spawned"""
        binary = self.locator.resolve_binary()
        if binary is None:
            raise ResourceMissingError(
                self.name, "binary", f"{self.config.binary_name} binary not found in any location"
            )

        model = Path(model_dir) / self.config.model_filename
        if not model.exists():
            raise ResourceMissingError(self.name, "model", f"Model file not found at: {model}")

        return binary, model

    async def run(self, audio_path: Path, model_dir: Path) -> Any:
        raise NotImplementedError


class DirectStrategy(TranscriptionStrategy):
    """Spawn whisper-cli without blocking the event loop"""

    name = StrategyName.DIRECT

    def build_command(self, binary: Path, model: Path, audio_path: Path) -> List[str]:
        return [
            str(binary),
            "-otxt",
            "-l", self.config.language,
            "-m", str(model),
            "-f", str(audio_path),
        ]

    async def _pump(self, stream: asyncio.StreamReader, chunks: List[bytes], label: str):
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            chunks.append(chunk)
            logger.debug(f"{self.config.binary_name} {label}: {chunk.decode('utf-8', errors='replace').rstrip()}")

    async def run(self, audio_path: Path, model_dir: Path) -> str:
        binary, model = self._resolve(model_dir)
        input_file = Path(audio_path).resolve()
        command = self.build_command(binary, model, input_file)
        logger.info(f"Running command: {' '.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise StrategyFailure(
                self.name, f"Failed to start {self.config.binary_name} process: {e}", command=command
            ) from e

        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    self._pump(process.stdout, stdout_chunks, "stdout"),
                    self._pump(process.stderr, stderr_chunks, "stderr"),
                    process.wait(),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise StrategyFailure(
                self.name,
                f"{self.config.binary_name} timed out after {self.timeout}s",
                command=command,
                stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace"),
                stderr=b"".join(stderr_chunks).decode("utf-8", errors="replace"),
            )

        stdout = b"".join(stdout_chunks).decode("utf-8", errors="replace")
        stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace")
        logger.info(f"{self.config.binary_name} process exited with code {process.returncode}")

        if process.returncode != 0:
            raise StrategyFailure(
                self.name,
                f"{self.config.binary_name} failed with code {process.returncode}: {stderr}",
                command=command,
                exit_code=process.returncode,
                stdout=stdout,
                stderr=stderr,
            )

        # whisper-cli -otxt writes <input>.txt next to the input
        txt_output = Path(f"{input_file}.txt")
        if txt_output.exists():
            try:
                content = txt_output.read_text(encoding="utf-8")
                logger.info("Found output text file, using its content")
                return content
            except OSError as e:
                logger.error("Error reading output file", e)

        return stdout or EMPTY_OUTPUT_PLACEHOLDER


def _run_blocking(command: List[str], timeout: Optional[float]) -> subprocess.CompletedProcess:
    return subprocess.run(
        command,
        capture_output=True,
        encoding="utf-8",
        errors="replace",
        check=True,
        timeout=timeout,
    )


class SimpleStrategy(TranscriptionStrategy):
    """Blocking whisper-cli call with minimal arguments, isolated on a worker pool"""

    name = StrategyName.SIMPLE

    def __init__(
        self,
        locator: ResourceLocator,
        executor: ThreadPoolExecutor,
        config: STTConfig = stt_config,
    ):
        super().__init__(locator, config)
        self.executor = executor

    def build_command(self, binary: Path, model: Path, audio_path: Path) -> List[str]:
        return [str(binary), "-m", str(model), "-f", str(audio_path), "-otxt"]

    async def run(self, audio_path: Path, model_dir: Path) -> str:
        binary, model = self._resolve(model_dir)
        command = self.build_command(binary, model, Path(audio_path))
        logger.info(f"Attempting with simpler parameters: {' '.join(command)}")

        loop = asyncio.get_running_loop()
        try:
            completed = await loop.run_in_executor(
                self.executor, functools.partial(_run_blocking, command, self.timeout)
            )
        except subprocess.CalledProcessError as e:
            raise StrategyFailure(
                self.name,
                f"{self.config.binary_name} failed with code {e.returncode}: {e.stderr or ''}",
                command=command,
                exit_code=e.returncode,
                stdout=e.stdout or "",
                stderr=e.stderr or "",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise StrategyFailure(
                self.name, f"{self.config.binary_name} timed out after {e.timeout}s", command=command
            ) from e
        except OSError as e:
            raise StrategyFailure(self.name, str(e), command=command) from e

        return completed.stdout


class LibraryFallbackStrategy(TranscriptionStrategy):
    """pywhispercpp in a child interpreter; downloads the model when absent"""

    name = StrategyName.LIBRARY_FALLBACK

    def runtime_executable(self) -> str:
        runtime = os.environ.get(self.config.runtime_executable_env)
        if not runtime:
            logger.warning(
                f"{self.config.runtime_executable_env} not set, using {sys.executable}"
            )
            runtime = sys.executable
        return runtime

    def build_command(self, audio_path: Path, model_dir: Path) -> List[str]:
        model_file = Path(model_dir) / self.config.model_filename
        model = str(model_file) if model_file.exists() else self.config.model_name
        return [
            self.runtime_executable(),
            "-m", LIBRARY_WORKER_MODULE,
            "--model", model,
            "--models-dir", str(model_dir),
            "--language", self.config.language,
            str(Path(audio_path).resolve()),
        ]

    async def run(self, audio_path: Path, model_dir: Path) -> Any:
        command = self.build_command(audio_path, model_dir)
        logger.info("Attempting fallback to pywhispercpp library...")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise StrategyFailure(self.name, f"Failed to start library worker: {e}", command=command) from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise StrategyFailure(
                self.name, f"Library worker timed out after {self.timeout}s", command=command
            )

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")

        if process.returncode != 0:
            raise StrategyFailure(
                self.name,
                f"Library worker failed with code {process.returncode}: {stderr.strip()}",
                command=command,
                exit_code=process.returncode,
                stdout=stdout,
                stderr=stderr,
            )

        lines = stdout.strip().splitlines()
        try:
            return json.loads(lines[-1])
        except (IndexError, json.JSONDecodeError) as e:
            raise StrategyFailure(
                self.name,
                f"Library worker returned unreadable output: {e}",
                command=command,
                exit_code=process.returncode,
                stdout=stdout,
                stderr=stderr,
            ) from e


class TranscriptionOrchestrator:
    """
    Runs strategies in fixed priority order. No retries, no back-off.
    The first success wins; if all fail an AllStrategiesExhaustedError
    carrying every attempt is raised.
    """

    def __init__(
        self,
        strategies: Sequence[TranscriptionStrategy],
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.strategies = list(strategies)
        self._executor = executor

    @classmethod
    def create(
        cls,
        locator: ResourceLocator = resource_locator,
        config: STTConfig = stt_config,
    ) -> "TranscriptionOrchestrator":
        """Build the default direct → simple → library_fallback chain"""
        executor = ThreadPoolExecutor(
            max_workers=config.simple_max_workers,
            thread_name_prefix="whisper-simple",
        )
        strategies: List[TranscriptionStrategy] = [
            DirectStrategy(locator, config),
            SimpleStrategy(locator, executor, config),
        ]
        if config.library_fallback_enabled:
            strategies.append(LibraryFallbackStrategy(locator, config))
        return cls(strategies, executor=executor)

    def close(self):
        """Release the worker pool"""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    async def transcribe(self, audio_path: Path, model_dir: Path) -> TranscriptionResult:
        """
        Transcribe an audio file.

        Args:
            audio_path: File to transcribe
            model_dir: Directory holding the model file

        Returns:
            TranscriptionResult from the first successful strategy

        Raises:
            AllStrategiesExhaustedError: every strategy failed
        """
        attempts: List[TranscriptionAttempt] = []

        for strategy in self.strategies:
            start_time = time.time()
            try:
                output = await strategy.run(Path(audio_path), Path(model_dir))
            except StrategyFailure as e:
                logger.error(f"{strategy.name.value} strategy failed:\n{e.describe()}")
                attempts.append(TranscriptionAttempt(
                    strategy=strategy.name,
                    status=AttemptStatus.FAILURE,
                    error=str(e),
                    duration_ms=int((time.time() - start_time) * 1000),
                ))
                continue
            except Exception as e:
                logger.exception(f"{strategy.name.value} strategy raised unexpectedly")
                attempts.append(TranscriptionAttempt(
                    strategy=strategy.name,
                    status=AttemptStatus.FAILURE,
                    error=str(e) or e.__class__.__name__,
                    duration_ms=int((time.time() - start_time) * 1000),
                ))
                continue

            attempts.append(TranscriptionAttempt(
                strategy=strategy.name,
                status=AttemptStatus.SUCCESS,
                output=output,
                duration_ms=int((time.time() - start_time) * 1000),
            ))
            logger.success(f"{strategy.name.value} strategy succeeded")
            return TranscriptionResult(
                text=normalize_transcription(output),
                source_strategy=strategy.name,
                attempts=tuple(attempts),
            )

        logger.error("All transcription methods failed!")
        raise AllStrategiesExhaustedError(attempts)
