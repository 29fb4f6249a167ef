"""
Child-process transcription with pywhispercpp.

Launched by the library_fallback strategy through the runtime executable.
pywhispercpp ships its own whisper.cpp build, downloads missing models into
``--models-dir`` and converts non-WAV input through ffmpeg. The result is
printed to stdout as a single JSON line: ``{"text": ..., "segments": [...]}``.
"""
import contextlib
import json
import os
import sys

import click


@contextlib.contextmanager
def _stdout_to_stderr():
    """Route C-level stdout to stderr so only the JSON result reaches stdout.

    whisper.cpp prints init/progress messages directly via C fprintf,
    bypassing Python's sys.stdout.
    """
    sys.stdout.flush()
    saved_stdout = os.dup(1)
    try:
        os.dup2(2, 1)
        yield
    finally:
        sys.stdout.flush()
        os.dup2(saved_stdout, 1)
        os.close(saved_stdout)


def transcribe_file(audio_path: str, model: str, models_dir: str, language: str) -> dict:
    from pywhispercpp.model import Model

    with _stdout_to_stderr():
        whisper = Model(
            model,
            models_dir=models_dir,
            print_progress=False,
            print_realtime=False,
        )
        raw_segments = whisper.transcribe(audio_path, language=language)

    segments = []
    for seg in raw_segments:
        text = seg.text.strip()
        if text:
            segments.append({
                "start": seg.t0 / 100.0,
                "end": seg.t1 / 100.0,
                "text": text,
            })

    return {
        "text": " ".join(s["text"] for s in segments),
        "segments": segments,
    }


@click.command()
@click.option("--model", default="base", help="Model name to auto-download, or a model file path.")
@click.option("--models-dir", required=True, type=click.Path(file_okay=False), help="Model download directory.")
@click.option("--language", default="auto", help="Spoken language, or 'auto'.")
@click.argument("audio_path", type=click.Path(exists=True, dir_okay=False))
def main(model, models_dir, language, audio_path):
    """Transcribe AUDIO_PATH and print the result as JSON."""
    os.makedirs(models_dir, exist_ok=True)
    result = transcribe_file(audio_path, model, models_dir, language)
    click.echo(json.dumps(result, ensure_ascii=False))


if __name__ == "__main__":
    main()
