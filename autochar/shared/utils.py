"""
Shared utility functions.
"""
import asyncio
import time
from functools import wraps
from pathlib import Path
from typing import Optional

from .logging import get_logger

logger = get_logger(__name__)


def timing_decorator(func):
    """Decorator to measure function execution time"""
    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = await func(*args, **kwargs)
            duration_ms = int((time.time() - start_time) * 1000)
            logger.debug(f"Function {func.__name__} completed in {duration_ms}ms")
            return result
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Function {func.__name__} failed after {duration_ms}ms: {e}")
            raise

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
            duration_ms = int((time.time() - start_time) * 1000)
            logger.debug(f"Function {func.__name__} completed in {duration_ms}ms")
            return result
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Function {func.__name__} failed after {duration_ms}ms: {e}")
            raise

    return async_wrapper if asyncio.iscoroutinefunction(func) else sync_wrapper


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human readable string"""
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        remaining_seconds = int(seconds % 60)
        return f"{minutes}m {remaining_seconds}s"
    else:
        hours = int(seconds // 3600)
        remaining_minutes = int((seconds % 3600) // 60)
        return f"{hours}h {remaining_minutes}m"


def build_stored_filename(original_name: Optional[str], timestamp_ms: Optional[int] = None) -> str:
    """
    Name an upload as ``<epoch-millis>-<originalName>``.

    Directory components of the client-supplied name are dropped.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    name = Path(original_name or "").name or "upload"
    return f"{timestamp_ms}-{name}"


def file_size_mb(path: Path) -> float:
    """Size of a file in megabytes, rounded for display"""
    return round(path.stat().st_size / (1024 * 1024), 2)
