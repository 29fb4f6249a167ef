"""
STT Service Main Application

FastAPI server used by the AutoChar Studio desktop app.
Accepts an uploaded audio file and returns the whisper.cpp transcription.
"""
import asyncio
import os
import sys
import time
import traceback
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
project_root = Path(__file__).resolve().parent.parent.parent
load_dotenv(project_root / ".env")

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import UploadFile

from ..shared.config import STTConfig, base_config, stt_config
from ..shared.logging import ServiceLogger
from ..shared.models import UploadedAudio
from ..shared.utils import build_stored_filename, format_duration, timing_decorator
from .audio_validator import ensure_valid_audio_file
from .resources import ResourceLocator, resource_locator
from .strategies import TranscriptionOrchestrator

logger = ServiceLogger("stt-service")

HEALTH_MESSAGE = "AutoChar Studio Server is running"
NO_AUDIO_ERROR = "No audio file provided"
AUDIO_FIELD = "audio"

router = APIRouter(prefix="/api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage service lifecycle"""
    config: STTConfig = app.state.config
    locator: ResourceLocator = app.state.locator

    # Startup
    logger.service_start(config.port)
    config.uploads_dir.mkdir(parents=True, exist_ok=True)
    config.models_dir.mkdir(parents=True, exist_ok=True)

    # Missing resources degrade the strategy set but never block startup
    loop = asyncio.get_running_loop()
    logger.info("Ensuring whisper model is available...")
    model_path = await loop.run_in_executor(None, locator.resolve_model)
    await loop.run_in_executor(None, locator.check_resources)
    if model_path is None:
        logger.warning("No model found. Transcription may fail unless auto-download works.")

    # A fresh chain per startup; an injected orchestrator belongs to the caller
    injected: Optional[TranscriptionOrchestrator] = app.state.injected_orchestrator
    app.state.orchestrator = injected or TranscriptionOrchestrator.create(locator, config)

    logger.service_ready(config.port)

    yield

    # Shutdown
    if injected is None:
        app.state.orchestrator.close()
    app.state.orchestrator = None
    logger.service_stop()


async def _store_upload(audio: UploadFile, uploads_dir: Path) -> UploadedAudio:
    """Persist the upload as <epoch-millis>-<originalName>"""
    uploads_dir.mkdir(parents=True, exist_ok=True)
    stored_name = build_stored_filename(audio.filename)
    path = uploads_dir / stored_name

    content = await audio.read()
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, _write_bytes, path, content)

    return UploadedAudio.from_stored_file(path, audio.filename)


def _write_bytes(path: Path, content: bytes):
    with open(path, "wb") as f:
        f.write(content)


def _remove_upload(uploaded: UploadedAudio):
    for path in (uploaded.path, Path(f"{uploaded.path}.txt")):
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete file {path}: {e}")


@router.get("/health")
async def health_check() -> Dict[str, str]:
    """Process liveness; independent of engine resources"""
    return {"status": "ok", "message": HEALTH_MESSAGE}


@router.get("/resources")
async def resource_status(request: Request) -> Dict[str, Any]:
    """Found/missing report for the engine binary and model"""
    locator: ResourceLocator = request.app.state.locator
    loop = asyncio.get_running_loop()
    statuses = await loop.run_in_executor(None, locator.check_resources)
    return {
        "resources": [s.to_dict() for s in statuses],
        "all_found": all(s.exists for s in statuses),
    }


@router.post("/transcribe")
@timing_decorator
async def transcribe_audio(request: Request):
    """
    Transcribe an uploaded audio file.

    The multipart field ``audio`` is read from the form directly so that a
    missing field and a plain-text field both get the same 400 response.

    Returns:
        ``{transcription, audioFile}`` on success, ``{error, details}`` on failure
    """
    form = await request.form()
    audio = form.get(AUDIO_FIELD)
    if not isinstance(audio, UploadFile) or not audio.filename:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": NO_AUDIO_ERROR},
        )

    config: STTConfig = request.app.state.config
    locator: ResourceLocator = request.app.state.locator
    orchestrator: TranscriptionOrchestrator = request.app.state.orchestrator
    uploaded: Optional[UploadedAudio] = None

    try:
        uploaded = await _store_upload(audio, config.uploads_dir)
        logger.info(f"Processing audio file: {uploaded.path} ({uploaded.declared_extension or 'no extension'})")

        # Interpreter used by the library fallback to launch its worker
        os.environ[config.runtime_executable_env] = sys.executable

        if not uploaded.path.exists():
            raise FileNotFoundError(f"Audio file not found: {uploaded.path}")

        uploaded.path = ensure_valid_audio_file(uploaded.path, config.quarantine_suffix)

        loop = asyncio.get_running_loop()
        model_path = await loop.run_in_executor(None, locator.resolve_model)
        if model_path is None:
            logger.warning("Model not found, attempting to use auto-download as last resort...")
            model_dir = config.models_dir
        else:
            model_dir = model_path.parent

        logger.info("Starting transcription process...")
        result = await orchestrator.transcribe(uploaded.path, model_dir)
        logger.success(f"Transcription completed via {result.source_strategy.value}")

        return {
            "transcription": result.text,
            "audioFile": uploaded.stored_name,
        }

    except Exception as e:
        logger.exception("Transcription error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": f"Failed to transcribe audio: {e}",
                "details": traceback.format_exc(),
            },
        )

    finally:
        if uploaded is not None and config.delete_audio_file:
            _remove_upload(uploaded)


def create_app(
    config: STTConfig = stt_config,
    locator: Optional[ResourceLocator] = None,
    orchestrator: Optional[TranscriptionOrchestrator] = None,
) -> FastAPI:
    """Build the FastAPI application"""
    app = FastAPI(
        title="AutoChar Studio STT Service",
        description="Speech-to-text server backed by whisper.cpp",
        version=base_config.service_version,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.locator = locator or (resource_locator if config is stt_config else ResourceLocator(config))
    app.state.injected_orchestrator = orchestrator
    app.state.orchestrator = None
    app.state.start_time = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(f"Unhandled exception in {request.method} {request.url}", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "details": str(exc),
            },
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests with timing"""
        start_time = time.time()
        request_id = f"{int(start_time)}_{hash(str(request.url)) % 1000:03d}"

        response = await call_next(request)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.request_completed(
            request.method, request.url.path, response.status_code, duration_ms, request_id
        )
        return response

    @app.get("/info")
    async def service_info() -> Dict[str, Any]:
        """Get detailed service information"""
        uptime = time.time() - app.state.start_time
        return {
            "service": {
                "name": base_config.service_name,
                "version": base_config.service_version,
                "uptime_seconds": int(uptime),
                "uptime": format_duration(uptime),
                "environment": base_config.environment,
            },
            "paths": {
                "uploads_dir": str(config.uploads_dir),
                "models_dir": str(config.models_dir),
                "resources_dir": str(config.resources_dir),
            },
            "engine": {
                "binary_name": config.binary_name,
                "model_filename": config.model_filename,
                "attempt_timeout_seconds": config.attempt_timeout_seconds,
            },
        }

    app.include_router(router)
    app.mount("/uploads", StaticFiles(directory=str(config.uploads_dir), check_dir=False), name="uploads")

    return app


app = create_app()


def run():
    """Start the server with uvicorn"""
    import uvicorn

    uvicorn.run(
        app,
        host=stt_config.host,
        port=stt_config.port,
        log_level=base_config.log_level.lower(),
    )


if __name__ == "__main__":
    run()
