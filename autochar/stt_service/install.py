"""
Resource installation for packaged deployments.

Copies the whisper-cli binary into the resources directory and the model
into the canonical models directory so they ship with the application.
Existing destinations are left untouched.
"""
import os
import shutil
import sys
from pathlib import Path
from typing import Iterable, Optional

import click

from ..shared.config import STTConfig, stt_config
from ..shared.logging import ServiceLogger
from .resources import ResourceLocator

logger = ServiceLogger("stt-install")


def make_executable(path: Path) -> bool:
    """Mark a file rwxr-xr-x; no-op on Windows"""
    if sys.platform == "win32":
        return True
    try:
        os.chmod(path, 0o755)
        logger.success(f"Made file executable: {path}")
        return True
    except OSError as e:
        logger.error(f"Failed to make file executable: {path}", e)
        return False


def copy_resource(source: Path, destination: Path) -> bool:
    """Copy source to destination unless the destination already exists"""
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        if destination.exists():
            logger.info(f"File already exists, skipping: {destination}")
            return True
        shutil.copy2(source, destination)
        logger.success(f"Copied file: {source} -> {destination}")
        return True
    except OSError as e:
        logger.error(f"Failed to copy file: {source} -> {destination}", e)
        return False


def _first_source(candidates: Iterable[Path], destination: Path) -> Optional[Path]:
    for candidate in candidates:
        if candidate.exists() and candidate.resolve() != destination.resolve():
            return candidate
    return None


def install_binary(locator: ResourceLocator, config: STTConfig = stt_config) -> bool:
    """Install whisper-cli into the resources directory"""
    destination = config.resources_dir / config.binary_name
    candidates = list(locator.binary_location().candidate_paths)
    if locator.search_path:
        on_path = shutil.which(config.binary_name)
        if on_path:
            candidates.append(Path(on_path))

    source = _first_source(candidates, destination)
    if source is None:
        if destination.exists():
            logger.info(f"Binary already installed at: {destination}")
            return make_executable(destination)
        logger.error(f"Could not find {config.binary_name} binary")
        logger.warning("Looked in: " + ", ".join(str(c) for c in candidates))
        return False

    logger.info(f"Found {config.binary_name} at: {source}")
    return copy_resource(source, destination) and make_executable(destination)


def install_model(locator: ResourceLocator, config: STTConfig = stt_config) -> bool:
    """Install the model into the canonical models directory"""
    destination = config.canonical_model_path
    if destination.exists():
        logger.info(f"File already exists, skipping: {destination}")
        return True

    candidates = locator.model_location_candidates().candidate_paths
    source = _first_source(candidates, destination)
    if source is None:
        logger.error(f"Could not find model file {config.model_filename}")
        logger.warning(
            "The model should download automatically on first run, "
            "but it's recommended to install it manually"
        )
        return False

    logger.info(f"Found model at: {source}")
    return copy_resource(source, destination)


def install_resources(locator: Optional[ResourceLocator] = None, config: STTConfig = stt_config) -> bool:
    """
    Install binary and model.

    Returns:
        True when both resources are in place
    """
    locator = locator or ResourceLocator(config)

    logger.info(f"Installing {config.binary_name} binary...")
    binary_ok = install_binary(locator, config)

    logger.info("Installing whisper model files...")
    model_ok = install_model(locator, config)

    success = binary_ok and model_ok
    if success:
        logger.success("Installation COMPLETED")
    else:
        logger.warning(
            "Installation FAILED: some components could not be installed. "
            "The app may still work with auto-download features."
        )
    return success


@click.command()
@click.option("--resources-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Destination for the engine binary.")
@click.option("--models-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Destination for the model file.")
def main(resources_dir, models_dir):
    """Copy the whisper-cli binary and model into the application directories."""
    overrides = {}
    if resources_dir:
        overrides["resources_dir"] = resources_dir
    if models_dir:
        overrides["models_dir"] = models_dir
    config = stt_config.model_copy(update=overrides) if overrides else stt_config

    # A missing resource is not an error exit: auto-download may still work
    install_resources(config=config)


if __name__ == "__main__":
    main()
