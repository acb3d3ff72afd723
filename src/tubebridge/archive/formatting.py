"""Helpers for presenting archive metadata in the library."""

from datetime import datetime
from typing import Optional, Tuple

from tubebridge.config import NumberingScheme


def format_description(description: Optional[str], max_length: int = 500) -> str:
    """Truncate a description to ``max_length`` characters.

    Newlines become ``<br>`` once the text has been cut.
    """
    if not description:
        return ""
    if max_length <= 0 or len(description) <= max_length:
        return description
    return description[:max_length].replace("\n", "<br>")


def episode_numbering(published: Optional[datetime],
                      scheme: NumberingScheme) -> Tuple[Optional[int], Optional[int]]:
    """Return the (season, episode) numbers for a video published at ``published``.

    Seasons are publication years. Episodes are only numbered under the
    ``YYYYMMDD`` scheme.
    """
    if published is None:
        return None, None

    if scheme == NumberingScheme.YYYYMMDD:
        index = published.year * 10000 + published.month * 100 + published.day
    else:
        index = None
    return published.year, index
