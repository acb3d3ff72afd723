import logging
import threading
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

import yaml
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from tubebridge.archive.urls import ensure_scheme

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when a configuration file cannot be loaded"""
    pass


class NumberingScheme(Enum):
    """How episodes are numbered inside a year season."""
    DEFAULT = "Default"
    YYYYMMDD = "YYYYMMDD"


def parse_usernames(value: Any) -> Set[str]:
    """Turn ``"alice, bob"`` (or a YAML list) into a set of usernames."""
    if not value:
        return set()
    if isinstance(value, str):
        value = value.split(",")
    return {str(name).strip() for name in value if str(name).strip()}


@dataclass
class Config:
    archive_url: str
    archive_api_key: str = ""
    library_url: str = ""
    library_api_key: str = ""
    collection_title: str = "YouTube"
    max_description_length: int = 500
    push_sync_enabled: bool = False
    pull_sync_enabled: bool = False
    push_username: str = ""
    pull_usernames: Set[str] = field(default_factory=set)
    push_interval: int = 600
    pull_interval: int = 600
    playlist_push_enabled: bool = False
    playlist_pull_enabled: bool = False
    playlist_delete_orphans: bool = False
    numbering_scheme: NumberingScheme = NumberingScheme.DEFAULT
    history_db_path: Path = Path("tubebridge.db")
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 8099
    event_workers: int = 4

    def __post_init__(self):
        self.archive_url = ensure_scheme(self.archive_url or "")
        self.library_url = ensure_scheme(self.library_url or "")
        self.pull_usernames = parse_usernames(self.pull_usernames)
        if not isinstance(self.numbering_scheme, NumberingScheme):
            self.numbering_scheme = NumberingScheme(self.numbering_scheme)
        self.history_db_path = Path(self.history_db_path)

    @classmethod
    def from_dict(cls, config_data: Dict[str, Any]) -> 'Config':
        """Build a config from parsed YAML, accepting nested or flat layouts."""
        config_data = dict(config_data or {})

        # Nested structure
        archive = config_data.pop('archive', None) or {}
        library = config_data.pop('library', None) or {}
        sync = config_data.pop('sync', None) or {}
        webhook = config_data.pop('webhook', None) or {}

        values: Dict[str, Any] = {}
        if archive:
            values['archive_url'] = archive.get('url', '')
            values['archive_api_key'] = archive.get('api_key', '')
        if library:
            values['library_url'] = library.get('url', '')
            values['library_api_key'] = library.get('api_key', '')
        if webhook:
            values['webhook_host'] = webhook.get('host', cls.webhook_host)
            values['webhook_port'] = webhook.get('port', cls.webhook_port)
        values.update(sync)

        # Flat keys win over nested ones
        known = {f.name for f in fields(cls)}
        for key, value in config_data.items():
            if key in known:
                values[key] = value
            else:
                logger.warning(f"Ignoring unknown config key: {key}")

        values.setdefault('archive_url', '')
        return cls(**values)

    @classmethod
    def load_config(cls, config_path: Path) -> 'Config':
        """Load configuration from YAML file."""
        if not config_path.exists():
            raise ConfigError(f"Config file not found at {config_path}")

        try:
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
            return cls.from_dict(config_data)
        except (yaml.YAMLError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config file {config_path}: {e}") from e

    def save_config(self, config_path: Path):
        """Save configuration to YAML file."""
        config_data = {
            'archive': {'url': self.archive_url, 'api_key': self.archive_api_key},
            'library': {'url': self.library_url, 'api_key': self.library_api_key},
            'webhook': {'host': self.webhook_host, 'port': self.webhook_port},
            'collection_title': self.collection_title,
            'max_description_length': self.max_description_length,
            'push_sync_enabled': self.push_sync_enabled,
            'pull_sync_enabled': self.pull_sync_enabled,
            'push_username': self.push_username,
            'pull_usernames': ",".join(sorted(self.pull_usernames)),
            'push_interval': self.push_interval,
            'pull_interval': self.pull_interval,
            'playlist_push_enabled': self.playlist_push_enabled,
            'playlist_pull_enabled': self.playlist_pull_enabled,
            'playlist_delete_orphans': self.playlist_delete_orphans,
            'numbering_scheme': self.numbering_scheme.value,
            'history_db_path': str(self.history_db_path),
            'event_workers': self.event_workers,
        }

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w') as f:
            yaml.safe_dump(config_data, f, default_flow_style=False)


ConfigListener = Callable[[Config, Config], None]


class ConfigFileHandler(FileSystemEventHandler):
    """Reloads the config file whenever it is written."""

    def __init__(self, config_path: Path, watcher: 'ConfigWatcher'):
        self.config_path = config_path.resolve()
        self.watcher = watcher

    def on_modified(self, event):
        if not event.is_directory and Path(event.src_path).resolve() == self.config_path:
            self.watcher.reload()

    def on_created(self, event):
        self.on_modified(event)


class ConfigWatcher:
    """Holds the live configuration and notifies listeners when the file changes.

    Listeners are called with ``(old, new)`` from the watchdog thread.
    """

    def __init__(self, config_path: Path, config: Optional[Config] = None):
        self.config_path = Path(config_path)
        self.config = config or Config.load_config(self.config_path)
        self._listeners: List[ConfigListener] = []
        self._lock = threading.Lock()
        self._observer: Optional[Observer] = None

    def add_listener(self, listener: ConfigListener) -> None:
        self._listeners.append(listener)

    def reload(self) -> Optional[Config]:
        """Re-read the config file and notify listeners; keeps the old config on error."""
        try:
            new_config = Config.load_config(self.config_path)
        except ConfigError as e:
            logger.error(f"Failed to reload config: {e}")
            return None

        with self._lock:
            old_config, self.config = self.config, new_config

        logger.info(f"Reloaded configuration from {self.config_path}")
        for listener in self._listeners:
            try:
                listener(old_config, new_config)
            except Exception as e:
                logger.error(f"Config listener failed: {e}")
        return new_config

    def start(self) -> Observer:
        handler = ConfigFileHandler(self.config_path, self)
        self._observer = Observer()
        self._observer.schedule(handler, str(self.config_path.resolve().parent), recursive=False)
        self._observer.start()
        logger.info(f"Watching {self.config_path} for changes")
        return self._observer

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
