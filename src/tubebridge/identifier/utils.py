"""Conversions between library paths/playlist names and archive ids."""

import logging
import re
from typing import List, Optional

logger = logging.getLogger(__name__)

_PLAYLIST_ID_RE = re.compile(r"^(.*)\((.*)\)$")
_REGULAR_TITLE_RE = re.compile(r"^(.*)\s\-\s(.*)\s\((.*)\)$")
_CUSTOM_TITLE_RE = re.compile(r"^(.*)\s\((.*)\)$")


class MalformedPathError(ValueError):
    """Raised when an archive id cannot be derived from a file path."""
    pass


def _path_segments(path: Optional[str]) -> List[str]:
    if not path:
        raise MalformedPathError("Empty path")

    # Whichever separator shows up more often wins
    separator = "\\" if path.count("\\") > path.count("/") else "/"
    segments = [segment for segment in path.split(separator) if segment]
    if not segments:
        raise MalformedPathError(f"No segments in path: {path!r}")
    return segments


def video_id_from_path(path: Optional[str]) -> str:
    """Return the archive video id encoded in a video file path.

    The id is the file name up to its first dot, so
    ``/data/Channel1/video123.mkv`` yields ``video123``.

    Args:
        path: File path using either ``/`` or ``\\`` separators

    Returns:
        The video id

    Raises:
        MalformedPathError: If the path is empty or has no usable file name
    """
    filename = _path_segments(path)[-1]
    video_id = filename.split(".", 1)[0]
    if not video_id:
        raise MalformedPathError(f"No video id in path: {path!r}")
    return video_id


def channel_id_from_path(path: Optional[str]) -> str:
    """Return the archive channel id, i.e. the last segment of a channel folder path."""
    return _path_segments(path)[-1]


def playlist_id_from_display_name(name: Optional[str]) -> Optional[str]:
    """Extract the archive playlist id from ``"<title> (<id>)"``, or None."""
    if not name:
        return None
    match = _PLAYLIST_ID_RE.match(name)
    if not match or not match.group(2):
        return None
    return match.group(2)


def playlist_title_from_display_name(name: Optional[str]) -> Optional[str]:
    """Extract the playlist title from a display name.

    Tries ``"<title> - <channel> (<id>)"`` first and falls back to
    ``"<title> (<id>)"``. Titles which themselves contain ``" ("`` can be
    split in the wrong place.
    """
    if not name:
        return None

    match = _REGULAR_TITLE_RE.match(name)
    if match and match.group(1):
        return match.group(1)

    match = _CUSTOM_TITLE_RE.match(name)
    if match and match.group(1):
        return match.group(1)

    return None


def compose_updated_display_name(old_name: str, new_id: str) -> str:
    """Swap the trailing ``" (<id>)"`` of a display name for ``new_id``, or append one."""
    index = old_name.rfind(" (")
    if index < 0:
        return f"{old_name} ({new_id})"
    return f"{old_name[:index]} ({new_id})"


def regular_display_name(name: str, channel: Optional[str], playlist_id: str) -> str:
    return f"{name} - {channel} ({playlist_id})"


def custom_display_name(name: str, playlist_id: str) -> str:
    return f"{name} ({playlist_id})"
