#!/usr/bin/env python3
"""
Telecast - Podcast & Video Feed Catalogue
=========================================

Main application entry point with CLI interface for management and testing.

Usage:
    python main.py --help                          # Show all commands
    python main.py check-config                    # Validate configuration
    python main.py init-db                         # Initialize database
    python main.py add-channel URL                 # Fetch a feed and start tracking it
    python main.py parse-feed SOURCE               # Preview a feed file or URL
    python main.py refresh --batch-size 250        # Run one refresh batch
    python main.py list-channels --min-quality 50  # Show tracked channels
    python main.py stats                           # Catalogue statistics
"""

import sys
import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from telecast.config.settings import get_settings
from telecast.database.schema import DatabaseSchema
from telecast.database.connection import get_db_manager
from telecast.ingestion.normalizer import parse_channel, parse_episodes
from telecast.refresh.feed_fetcher import FeedFetcher
from telecast.refresh.pipeline import RefreshPipeline
from telecast.storage.channel_repository import ChannelRepository
from telecast.storage.episode_repository import EpisodeRepository
from telecast.utils.logging import configure_application_logging
from telecast.utils.exceptions import TelecastError

console = Console()
logger = logging.getLogger(__name__)


def _truncate(value, length: int = 60) -> str:
    if value is None:
        return "-"
    text = str(value)
    return text if len(text) <= length else text[:length - 3] + "..."


def _setup_logging(ctx, settings) -> None:
    configure_application_logging(
        settings.logging,
        level="DEBUG" if ctx.obj.get('debug') else settings.get_effective_log_level(),
    )


def _open_database(settings):
    """Create the schema if needed and return the pooled connection manager."""
    DatabaseSchema(settings.database.path).create_tables()
    return get_db_manager(settings.database.path, pool_size=settings.database.pool_size)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, debug):
    """Telecast - podcast and video feed ingestion and refresh engine."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.pass_context
def check_config(ctx):
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking Telecast Configuration[/bold blue]")

    try:
        settings = get_settings()

        table = Table(title="Configuration Status")
        table.add_column("Component", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Details")

        checks = [
            ("Database", _check_database_config, settings),
            ("Logging", _check_logging_config, settings),
            ("Refresh", _check_refresh_config, settings),
        ]

        all_passed = True
        for name, check_func, config in checks:
            status, details = check_func(config)
            table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
            if not status:
                all_passed = False

        console.print(table)

        if all_passed:
            console.print("[bold green]✅ All configuration checks passed![/bold green]")
            sys.exit(0)
        else:
            console.print("[bold red]❌ Configuration validation failed[/bold red]")
            sys.exit(1)

    except TelecastError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.pass_context
def init_db(ctx):
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing Telecast Database[/bold blue]")

    try:
        settings = get_settings()
        schema = DatabaseSchema(settings.database.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Database schema verification failed[/bold red]")
            sys.exit(1)

        console.print("[bold green]✅ Database initialized successfully![/bold green]")

        info = get_db_manager(settings.database.path).get_database_info()

        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")

        info_table.add_row("Database Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        info_table.add_row("Journal Mode", str(info['journal_mode']).upper())
        info_table.add_row("Connection Pool", f"{info['open_connections']}/{info['pool_size']} open")

        console.print(info_table)

    except Exception as e:
        console.print(f"[bold red]❌ Database initialization error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('url')
@click.pass_context
def add_channel(ctx, url):
    """Fetch a feed once and start tracking it."""
    console.print(f"[bold blue]📡 Adding channel: {url}[/bold blue]")

    async def run_seed():
        settings = get_settings()
        _setup_logging(ctx, settings)
        pipeline = RefreshPipeline(_open_database(settings), settings=settings)
        return await pipeline.seed_channel(url)

    try:
        channel = asyncio.run(run_seed())
    except TelecastError as e:
        console.print(f"[bold red]❌ {e.user_message}[/bold red]")
        sys.exit(1)

    table = Table(title="Channel")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Channel ID", channel.channel_id)
    table.add_row("Title", channel.title or "Unknown")
    table.add_row("Feed URL", channel.rss)
    table.add_row("Tags", ", ".join(channel.tags) or "-")
    console.print(table)
    console.print("[bold green]✅ Channel is tracked and will be refreshed in the next batch[/bold green]")


@cli.command()
@click.argument('source')
@click.option('--limit', default=10, show_default=True, help='Episodes to display')
@click.pass_context
def parse_feed(ctx, source, limit):
    """Parse a feed file or URL and preview the normalized records (nothing is stored)."""
    console.print(f"[bold blue]🔍 Parsing feed: {source}[/bold blue]")

    async def download(url: str) -> bytes:
        fetcher = FeedFetcher()
        async with fetcher.get_session() as session:
            result = await fetcher.fetch(url, session)
        return result.content

    try:
        path = Path(source)
        if path.is_file():
            content = path.read_bytes()
            feed_url = None
        else:
            content = asyncio.run(download(source))
            feed_url = source

        channel = parse_channel(content, feed_url=feed_url)
        episodes = parse_episodes(content, channel.channel_id)

    except TelecastError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        sys.exit(1)

    info_table = Table(title="Channel")
    info_table.add_column("Property", style="cyan")
    info_table.add_column("Value", style="green")

    info_table.add_row("Channel ID", channel.channel_id)
    info_table.add_row("Feed URL", channel.rss)
    info_table.add_row("Title", channel.title or "Unknown")
    info_table.add_row("Description", _truncate(channel.description, 100))
    info_table.add_row("Thumbnail", channel.thumb or "-")
    info_table.add_row("Author", channel.author or "-")
    info_table.add_row("Language", channel.language or "-")
    info_table.add_row("Explicit", "-" if channel.explicit is None else str(channel.explicit))
    info_table.add_row("Categories", ", ".join(channel.categories or []) or "-")
    info_table.add_row("Platform Tags", ", ".join(channel.tags) or "-")
    info_table.add_row("Episodes", str(len(episodes)))
    console.print(info_table)

    if episodes:
        episode_table = Table(title=f"Episodes (first {min(limit, len(episodes))})")
        episode_table.add_column("ID", style="cyan")
        episode_table.add_column("Title")
        episode_table.add_column("Published")
        episode_table.add_column("Duration", justify="right")
        episode_table.add_column("Media")

        for episode in episodes[:limit]:
            episode_table.add_row(
                episode.episode_id,
                _truncate(episode.title, 50),
                episode.published_at.strftime('%Y-%m-%d') if episode.published_at else "-",
                str(episode.duration_seconds) if episode.duration_seconds is not None else "-",
                episode.src_type or "-",
            )
        console.print(episode_table)


@cli.command()
@click.option('--batch-size', type=int, default=None, help='Channels to refresh (default from config)')
@click.pass_context
def refresh(ctx, batch_size):
    """Run one refresh batch and print the run summary."""
    console.print("[bold blue]🔄 Running refresh batch[/bold blue]")

    async def run_refresh():
        settings = get_settings()
        _setup_logging(ctx, settings)
        pipeline = RefreshPipeline(_open_database(settings), settings=settings)
        return await pipeline.run_batch(batch_size=batch_size)

    try:
        report = asyncio.run(run_refresh())
    except TelecastError as e:
        console.print(f"[bold red]❌ Refresh error: {e}[/bold red]")
        sys.exit(1)

    console.print(
        f"\n[bold]Done:[/bold] [green]{report.succeeded} succeeded[/green], "
        f"[red]{report.failed} failed[/red] "
        f"({report.rate_limited} rate limited, {report.episodes_parsed} episodes, "
        f"{report.duration_seconds:.1f}s)"
    )

    if report.failures:
        console.print("\n[bold red]Failed:[/bold red]")
        for outcome in report.failures:
            console.print(f"  • {outcome.short_url} → {outcome.error}")


@cli.command()
@click.option('--min-quality', type=int, default=None, help='Minimum quality score')
@click.option('--tag', default=None, help='Only channels with this tag')
@click.option('--max-errors', type=int, default=None, help='Maximum consecutive errors')
@click.option('--limit', type=int, default=50, show_default=True, help='Rows to display')
@click.pass_context
def list_channels(ctx, min_quality, tag, max_errors, limit):
    """List tracked channels, best quality first."""
    try:
        settings = get_settings()
        repo = ChannelRepository(_open_database(settings))
        channels = repo.list_channels(
            min_quality=min_quality, tag=tag, max_errors=max_errors, limit=limit
        )
    except TelecastError as e:
        console.print(f"[bold red]❌ Error listing channels: {e}[/bold red]")
        sys.exit(1)

    if not channels:
        console.print("[yellow]No channels match[/yellow]")
        return

    table = Table(title=f"Channels ({len(channels)})")
    table.add_column("Quality", justify="right", style="green")
    table.add_column("Title", style="cyan")
    table.add_column("Episodes", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Tags")
    table.add_column("Last Success")

    for channel in channels:
        table.add_row(
            str(channel.quality),
            _truncate(channel.title or channel.rss, 45),
            str(channel.episode_count),
            str(channel.consecutive_errors),
            ", ".join(channel.tags),
            channel.last_success_at.strftime('%Y-%m-%d %H:%M') if channel.last_success_at else "never",
        )

    console.print(table)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show catalogue statistics."""
    try:
        settings = get_settings()
        db = _open_database(settings)
        channel_count = ChannelRepository(db).count_channels()
        episode_count = EpisodeRepository(db).count_episodes()
        failing = db.execute_one(
            "SELECT COUNT(*) FROM channel WHERE consecutive_errors > 0"
        )[0]
        never = db.execute_one(
            "SELECT COUNT(*) FROM channel WHERE last_success_at IS NULL AND last_error_at IS NULL"
        )[0]
        avg_quality = db.execute_one("SELECT AVG(quality) FROM channel")[0]
        info = db.get_database_info()
    except Exception as e:
        console.print(f"[bold red]❌ Error reading statistics: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Telecast Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    table.add_row("Channels", str(channel_count))
    table.add_row("Episodes", str(episode_count))
    table.add_row("Never refreshed", str(never))
    table.add_row("Currently failing", str(failing))
    table.add_row("Average quality", f"{avg_quality:.1f}" if avg_quality is not None else "-")
    table.add_row("Database size", f"{info['database_size_mb']:.2f} MB")

    console.print(table)


# Helper functions for configuration checks
def _check_database_config(settings) -> tuple:
    try:
        db_path = Path(settings.database.path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return True, f"Path: {settings.database.path}, pool: {settings.database.pool_size}"
    except OSError as e:
        return False, str(e)


def _check_logging_config(settings) -> tuple:
    try:
        if settings.logging.file_path:
            Path(settings.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_refresh_config(settings) -> tuple:
    refresh_settings = settings.refresh
    return True, (
        f"Batch: {refresh_settings.batch_size}, timeout: {refresh_settings.fetch_timeout:g}s, "
        f"max episodes: {refresh_settings.max_episodes_per_crawl}"
    )


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 Telecast interrupted by user[/yellow]")
        sys.exit(130)
