"""
Duration labels for video records, from Dropbox ``media_info``.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional


def format_duration(total_seconds: float | None) -> str:
    """``95.4`` → ``"1:35"``; anything unusable → ``"0:00"``."""
    if not total_seconds or math.isnan(total_seconds) or total_seconds <= 0:
        return "0:00"
    minutes = int(total_seconds // 60)
    seconds = int(total_seconds % 60)
    return f"{minutes}:{seconds:02d}"


def duration_from_media_info(media_info: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Dropbox reports durations in milliseconds, either directly on
    ``media_info`` or nested under ``media_info.metadata`` (optionally
    ``.video``).  Returns None when no duration is present.
    """
    if not media_info:
        return None

    candidates = [media_info.get("duration")]
    metadata = media_info.get("metadata")
    if isinstance(metadata, dict):
        candidates.append(metadata.get("duration"))
        video = metadata.get("video")
        if isinstance(video, dict):
            candidates.append(video.get("duration"))

    for value in candidates:
        if isinstance(value, (int, float)) and value > 0:
            return format_duration(value / 1000)
    return None
