"""Bridge between a TubeArchivist video archive and a Jellyfin media library."""

__version__ = "0.1.0"

PROVIDER_NAME = "TubeArchivist"
TICKS_PER_SECOND = 10_000_000
