import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

from aiohttp import web
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from tubebridge.archive.formatting import episode_numbering, format_description
from tubebridge.config import Config, ConfigError, ConfigWatcher
from tubebridge.context import SyncContext
from tubebridge.sync.events import EventDispatcher
from tubebridge.sync.history import SyncHistory
from tubebridge.sync.models import SyncResult
from tubebridge.sync.playlists import PlaylistSync
from tubebridge.sync.progress import ProgressSync
from tubebridge.sync.scheduler import TaskScheduler
from tubebridge.webhook import create_webhook_app

logger = logging.getLogger(__name__)
console = Console()

DEFAULT_CONFIG_LOCATIONS = [
    Path.home() / '.config' / 'tubebridge' / 'config.yml',
    Path.home() / '.config' / 'tubebridge' / 'config.yaml',
    Path('config.yaml'),
]


def setup_logging(verbosity: int = 0):
    """Configure logging based on verbosity level."""
    log_level = logging.WARNING
    if verbosity == 1:
        log_level = logging.INFO
    elif verbosity >= 2:
        log_level = logging.DEBUG

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(Path.home() / 'tubebridge.log')
        ]
    )


def find_config(config_path: Optional[Path] = None) -> Path:
    """Return the first existing config file, preferring ``config_path``."""
    for path in [config_path] + DEFAULT_CONFIG_LOCATIONS:
        if path and path.exists():
            return path
    raise ConfigError("No configuration file found in standard locations")


def load_config(config_path: Optional[Path] = None) -> Config:
    path = find_config(config_path)
    config = Config.load_config(path)
    logger.info(f"Loaded configuration from {path}")
    return config


SyncRunner = Callable[[SyncContext, Callable[[int], None]], Awaitable[SyncResult]]


async def run_sync_async(args: argparse.Namespace, description: str, runner: SyncRunner):
    """Run one sync pass with a progress bar and record its outcome."""
    config = load_config(Path(args.config) if args.config else None)

    async with SyncContext.from_config(config) as context:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console,
        ) as progress:
            task = progress.add_task(description, total=100)
            result = await runner(context, lambda percent: progress.update(task, completed=percent))

        if context.history:
            await context.history.record_result(result)

    style = "green" if not result.failed else "yellow"
    console.print(f"[{style}]{result.summary()}[/{style}]")
    for error in result.errors[:20]:
        console.print(f"  [red]{error}[/red]")
    return result


def sync_command(description: str, runner: SyncRunner):
    """Build a sub-command handler running ``runner`` as a single pass."""
    def command(args: argparse.Namespace):
        setup_logging(args.verbose)
        try:
            result = asyncio.run(run_sync_async(args, description, runner))
        except ConfigError as e:
            logger.error(str(e))
            sys.exit(1)
        if result.aborted and result.errors:
            sys.exit(1)
    return command


push_progress_command = sync_command(
    "Pushing progress...", lambda context, progress: ProgressSync(context).push(progress))
pull_progress_command = sync_command(
    "Pulling progress...", lambda context, progress: ProgressSync(context).pull(progress))
push_playlists_command = sync_command(
    "Pushing playlists...", lambda context, progress: PlaylistSync(context).push(progress))
pull_playlists_command = sync_command(
    "Pulling playlists...", lambda context, progress: PlaylistSync(context).pull(progress))


async def ping_async(args: argparse.Namespace) -> bool:
    config = load_config(Path(args.config) if args.config else None)
    async with SyncContext.from_config(config) as context:
        response = await context.archive.ping()

    if response is None:
        console.print(f"[red]Could not reach TubeArchivist at {config.archive_url}[/red]")
        return False
    console.print(f"[green]{response.response}[/green] from TubeArchivist {response.version} "
                  f"(user {response.user})")
    return True


def ping_command(args: argparse.Namespace):
    """Check the archive connection."""
    setup_logging(args.verbose)
    try:
        if not asyncio.run(ping_async(args)):
            sys.exit(1)
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)


async def show_video_async(args: argparse.Namespace) -> bool:
    config = load_config(Path(args.config) if args.config else None)
    async with SyncContext.from_config(config) as context:
        video = await context.archive.get_video(args.video_id)

    if video is None:
        console.print(f"[red]Video {args.video_id} not found[/red]")
        return False

    season, episode = episode_numbering(video.published, config.numbering_scheme)
    table = Table(title=video.title, show_header=False)
    table.add_row("Id", video.youtube_id)
    table.add_row("Channel", video.channel.name if video.channel else "")
    table.add_row("Published", video.published.isoformat() if video.published else "")
    table.add_row("Season / episode", f"{season} / {episode if episode is not None else '-'}")
    table.add_row("Watched", "yes" if video.player.is_watched else "no")
    table.add_row("Position", f"{video.player.position:.0f}s of {video.player.duration:.0f}s")
    table.add_row("Tags", ", ".join(video.tags))
    table.add_row("Description", format_description(video.description, config.max_description_length))
    console.print(table)
    return True


def show_video_command(args: argparse.Namespace):
    """Show archive metadata of one video."""
    setup_logging(args.verbose)
    try:
        if not asyncio.run(show_video_async(args)):
            sys.exit(1)
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)


async def history_async(args: argparse.Namespace):
    config = load_config(Path(args.config) if args.config else None)
    history = SyncHistory(config.history_db_path)
    await history.initialize()
    entries = await history.get_history(task=args.task, limit=args.limit)

    table = Table(title="Sync history")
    for column in ("Time", "Task", "Status", "Processed", "Failed", "Details"):
        table.add_column(column)
    for entry in entries:
        table.add_row(entry.sync_time.strftime('%Y-%m-%d %H:%M:%S'), entry.task, entry.status,
                      str(entry.processed), str(entry.failed), entry.details or "")
    console.print(table)


def history_command(args: argparse.Namespace):
    """Show recent sync outcomes."""
    setup_logging(args.verbose)
    try:
        asyncio.run(history_async(args))
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)


async def check_archive(context: SyncContext) -> bool:
    """Log whether the archive answers; serving continues either way."""
    response = await context.archive.ping()
    if response is None:
        logger.warning(f"TubeArchivist at {context.config.archive_url} did not answer the ping")
        return False
    logger.info(f"Connected to TubeArchivist {response.version} at {context.config.archive_url}")
    return True


async def serve_async(args: argparse.Namespace):
    """Run scheduled passes, the webhook receiver and the config watcher until interrupted."""
    config_path = find_config(Path(args.config) if args.config else None)
    watcher = ConfigWatcher(config_path)
    config = watcher.config

    async with SyncContext.from_config(config) as context:
        await check_archive(context)
        progress_sync = ProgressSync(context)
        playlist_sync = PlaylistSync(context)

        scheduler = TaskScheduler(context.history)
        scheduler.add_task("push-progress", lambda cancel: progress_sync.push(cancel=cancel),
                           config.push_interval)
        scheduler.add_task("pull-progress", lambda cancel: progress_sync.pull(cancel=cancel),
                           config.pull_interval)
        scheduler.add_task("push-playlists", lambda cancel: playlist_sync.push(cancel=cancel),
                           config.push_interval)
        scheduler.add_task("pull-playlists", lambda cancel: playlist_sync.pull(cancel=cancel),
                           config.pull_interval)

        dispatcher = EventDispatcher(context, workers=config.event_workers)
        await dispatcher.start()

        runner = web.AppRunner(create_webhook_app(dispatcher))
        await runner.setup()
        site = web.TCPSite(runner, config.webhook_host, config.webhook_port)
        await site.start()
        console.print(f"Listening for webhooks on {config.webhook_host}:{config.webhook_port}")

        watcher.add_listener(context.on_config_changed)
        watcher.start()
        scheduler.start()

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass

        try:
            await stop.wait()
        finally:
            logger.info("Shutting down")
            watcher.stop()
            await scheduler.stop()
            await dispatcher.stop()
            await runner.cleanup()


def serve_command(args: argparse.Namespace):
    setup_logging(args.verbose)
    try:
        asyncio.run(serve_async(args))
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(
        description='Sync progress, watch status and playlists between TubeArchivist and Jellyfin'
    )
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase verbosity (can be used multiple times)')
    parser.add_argument('-c', '--config', help='Path to config file')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    ping_parser = subparsers.add_parser('ping', help='Check the TubeArchivist connection')
    ping_parser.set_defaults(func=ping_command)

    push_progress_parser = subparsers.add_parser(
        'push-progress', help='Push Jellyfin progress and watched status to TubeArchivist')
    push_progress_parser.set_defaults(func=push_progress_command)

    pull_progress_parser = subparsers.add_parser(
        'pull-progress', help='Pull progress and watched status from TubeArchivist')
    pull_progress_parser.set_defaults(func=pull_progress_command)

    push_playlists_parser = subparsers.add_parser(
        'push-playlists', help='Push Jellyfin playlists to TubeArchivist')
    push_playlists_parser.set_defaults(func=push_playlists_command)

    pull_playlists_parser = subparsers.add_parser(
        'pull-playlists', help='Rebuild Jellyfin playlists from TubeArchivist')
    pull_playlists_parser.set_defaults(func=pull_playlists_command)

    video_parser = subparsers.add_parser('show-video', help='Show TubeArchivist metadata of a video')
    video_parser.add_argument('video_id', help='YouTube id of the video')
    video_parser.set_defaults(func=show_video_command)

    history_parser = subparsers.add_parser('history', help='Show recent sync outcomes')
    history_parser.add_argument('--task', help='Only show this task')
    history_parser.add_argument('--limit', type=int, default=20, help='Number of entries')
    history_parser.set_defaults(func=history_command)

    serve_parser = subparsers.add_parser(
        'serve', help='Run scheduled syncs and the webhook receiver')
    serve_parser.set_defaults(func=serve_command)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == '__main__':
    main()
