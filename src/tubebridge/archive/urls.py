"""URL helpers for the archive API."""

import re

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_SEPARATOR_RUN_RE = re.compile(r"[/\s]+")
_QUERY_OR_FRAGMENT_RE = re.compile(r"[?#]")


def ensure_scheme(url: str) -> str:
    """Prefix ``http://`` when the URL carries no scheme."""
    url = url.strip()
    if url and "://" not in url:
        return f"http://{url}"
    return url


def sanitize_url(url: str) -> str:
    """Normalize an API URL.

    Runs of slashes and whitespace after the scheme collapse to a single
    slash, a leading slash is dropped and the path ends with exactly one
    slash. No trailing slash is forced when a query or fragment is present.

    >>> sanitize_url("http://archive:8000//api/ video//abc")
    'http://archive:8000/api/video/abc/'
    """
    match = _SCHEME_RE.match(url)
    scheme = match.group(0) if match else ""
    rest = url[len(scheme):]

    split = _QUERY_OR_FRAGMENT_RE.search(rest)
    if split:
        path, tail = rest[:split.start()], rest[split.start():]
    else:
        path, tail = rest, ""

    path = _SEPARATOR_RUN_RE.sub("/", path).lstrip("/")
    if not tail:
        path = path.rstrip("/") + "/"

    return f"{scheme}{path}{tail}"
