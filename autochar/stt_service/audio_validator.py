"""
WAV header validation for uploaded audio.

Only files that claim to be WAV are inspected. A ``.wav`` file without the
RIFF/WAVE markers is quarantined by renaming it, and the caller continues
with the new path so the format-tolerant strategies can convert it.
"""
from pathlib import Path

from ..shared.config import stt_config
from ..shared.logging import ServiceLogger

logger = ServiceLogger("audio-validator")

WAV_EXTENSION = ".wav"
HEADER_SIZE = 12


def has_wav_header(header: bytes) -> bool:
    """Check the RIFF chunk id and WAVE format tag"""
    return header[0:4] == b"RIFF" and header[8:12] == b"WAVE"


def ensure_valid_audio_file(path: Path, quarantine_suffix: str = None) -> Path:
    """
    Validate a stored upload, quarantining malformed WAV files.

    Never raises: read or rename errors are logged and the input path
    is returned unchanged.

    Args:
        path: Stored upload
        quarantine_suffix: Appended to the path of a malformed WAV file

    Returns:
        The path the engine should read
    """
    path = Path(path)
    suffix = quarantine_suffix or stt_config.quarantine_suffix

    if path.suffix.lower() != WAV_EXTENSION:
        logger.info(f"File {path.name} is not a WAV file, leaving conversion to the engine")
        return path

    try:
        with open(path, "rb") as f:
            header = f.read(HEADER_SIZE)

        if has_wav_header(header):
            logger.debug(f"File {path.name} is a valid WAV file")
            return path

        logger.warning(f"File {path.name} has .wav extension but invalid WAV header")
        quarantined = path.with_name(path.name + suffix)
        path.rename(quarantined)
        logger.info(f"Renamed problematic file to {quarantined.name}")
        return quarantined

    except OSError as e:
        logger.error(f"Error validating audio file {path}", e)
        return path
