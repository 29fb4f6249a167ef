"""
Result normalization.
Reduces raw strategy output (text, mappings, segment lists) to plain text.
"""
import json
from collections.abc import Mapping
from typing import Any

from ..shared.logging import get_logger

logger = get_logger(__name__)


def normalize_transcription(raw: Any) -> str:
    """
    Convert any strategy result into a string. Never raises.

    - mapping with ``text``: that field
    - other mapping or a sequence (e.g. segments): sorted JSON dump
    - str: unchanged
    """
    try:
        if raw is None:
            return ""
        if isinstance(raw, str):
            return raw
        if isinstance(raw, bytes):
            return raw.decode("utf-8", errors="replace")
        if isinstance(raw, Mapping) and "text" in raw:
            return str(raw["text"])
        if isinstance(raw, (Mapping, list, tuple)):
            return json.dumps(raw, sort_keys=True, default=str)
        text = getattr(raw, "text", None)
        if isinstance(text, str):
            return text
        return str(raw)
    except Exception as e:
        logger.warning(f"Falling back to repr for transcription result: {e}")
        return object.__repr__(raw)
