"""
Typer CLI for the memoria-topics service.

Commands:
    memoria-topics next                 - Suggest the next topic to record about
    memoria-topics next -n 3 -c ID      - Suggest three topics from one category
    memoria-topics used TOPIC MEMORY    - Mark a suggested topic as used
    memoria-topics categories           - List topic categories
    memoria-topics history              - Show local topic history
    memoria-topics refresh              - Force-refresh catalog and resync history
    memoria-topics clear-cache          - Drop cached categories and topics
    memoria-topics status               - Show cache freshness and mirror status

Usage:
    memoria-topics --help
    memoria-topics -v next --count 3
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import Settings, get_settings
from src.topics.service import TopicsService

T = TypeVar("T")

app = typer.Typer(
    help="memoria-topics CLI: offline-first recording topic suggestions",
    no_args_is_help=True,
)

console = Console()


# ========================================
# Logging
# ========================================


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    """Route loguru output to stderr (and the optional log file)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation="5 MB",
            retention=3,
            encoding="utf-8",
        )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Offline-first recording topic suggestions."""
    configure_logging(get_settings(), verbose=verbose)


# ========================================
# Service Builder (Dependency Injection)
# ========================================


def _build_service() -> TopicsService:
    """Build the topics service from settings."""
    return TopicsService.from_settings(get_settings())


def _run(action: Callable[[TopicsService], Awaitable[T]]) -> T:
    """Run one service action and flush pending mirror writes before exiting."""

    async def runner() -> T:
        async with _build_service() as service:
            return await action(service)

    return asyncio.run(runner())


def _category_label(topic: Any) -> str:
    if topic.category is not None:
        icon = f"{topic.category.icon} " if topic.category.icon else ""
        return f"{icon}{topic.category.display_name}"
    return topic.category_id or "-"


# ========================================
# Topic Commands
# ========================================


@app.command("next")
def next_topic(
    count: int = typer.Option(1, "--count", "-n", min=1, help="Number of topics to suggest"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Category id filter"),
):
    """
    Suggest topics that were not shown in the last 30 days.

    Examples:
        memoria-topics next
        memoria-topics next -n 3 --category 7f1c...
    """
    topics = _run(lambda service: service.get_next_topics(count, category))

    if not topics:
        rprint("[yellow]No topics available[/yellow] (catalog empty or unreachable)")
        raise typer.Exit(code=1)

    table = Table(title="Next Topics", show_header=True)
    table.add_column("Topic ID", style="dim")
    table.add_column("Category", style="cyan")
    table.add_column("Difficulty", style="magenta")
    table.add_column("Prompt", style="white")
    for topic in topics:
        table.add_row(topic.id, _category_label(topic), topic.difficulty_level, topic.prompt)
    console.print(table)


@app.command("used")
def mark_used(
    topic_id: str = typer.Argument(..., help="Topic that was recorded about"),
    memory_id: str = typer.Argument(..., help="Memory created from the topic"),
):
    """Mark the latest suggestion of a topic as used by a memory."""
    updated = _run(lambda service: service.mark_topic_as_used(topic_id, memory_id))

    if updated:
        rprint(f"[green]✓[/green] Topic {topic_id} marked as used by memory {memory_id}")
    else:
        rprint(f"[yellow]⚠[/yellow] No unclaimed suggestion of topic {topic_id} - nothing changed")


@app.command("categories")
def list_categories(
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Bypass the cache"),
):
    """List topic categories in display order."""
    categories = _run(lambda service: service.get_categories(force_refresh=refresh))

    if not categories:
        rprint("[yellow]No categories available[/yellow]")
        return

    table = Table(title="Topic Categories", show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("ID", style="dim")
    for category in categories:
        icon = f"{category.icon} " if category.icon else ""
        table.add_row(
            str(category.sort_order),
            f"{icon}{category.display_name}",
            category.description or "",
            category.id,
        )
    console.print(table)


@app.command("history")
def show_history(
    limit: int = typer.Option(20, "--limit", "-l", min=1, help="Entries to show"),
):
    """Show local topic history, newest first."""
    history = _run(lambda service: service.get_topic_history())

    if not history:
        rprint("[dim]No topic history (sign in by setting TOPICS_USER_ID)[/dim]")
        return

    table = Table(title=f"Topic History ({len(history)} entries)", show_header=True)
    table.add_column("Shown At", style="cyan")
    table.add_column("Topic ID")
    table.add_column("Used", justify="center")
    table.add_column("Memory ID", style="dim")
    for entry in history[:limit]:
        table.add_row(
            entry.shown_at.strftime("%Y-%m-%d %H:%M"),
            entry.topic_id,
            "[green]✓[/green]" if entry.was_used else "",
            entry.memory_id or "",
        )
    console.print(table)


# ========================================
# Maintenance Commands
# ========================================


@app.command("refresh")
def refresh_all():
    """Force-refresh categories and topics and resync history from the remote."""
    stats = _run(lambda service: service.refresh_all_data())

    rprint("\n[bold green]✓ Refresh complete![/bold green]")
    rprint(f"  Categories: {stats['categories']}")
    rprint(f"  Topics: {stats['topics']}")
    if stats["history"] is None:
        rprint("  History: [yellow]not synced[/yellow]")
    else:
        rprint(f"  History: {stats['history']}")


@app.command("clear-cache")
def clear_cache():
    """Drop cached categories and topics (history is kept)."""
    _run(lambda service: service.clear_cache())
    rprint("[green]✓[/green] Topic cache cleared")


@app.command("status")
def show_status():
    """Show freshness of each cached family and mirror delivery status."""
    status = _run(lambda service: service.cache_status())

    table = Table(title="Topic Cache", show_header=True)
    table.add_column("Family", style="cyan")
    table.add_column("Freshness")
    table.add_column("Records", justify="right")
    table.add_column("Last Sync", style="dim")
    colors = {"fresh": "green", "stale": "yellow", "empty": "red"}
    for family in ("categories", "topics", "history"):
        info = status[family]
        color = colors.get(info["freshness"], "white")
        last_sync = info["last_sync"].strftime("%Y-%m-%d %H:%M") if info["last_sync"] else "-"
        table.add_row(
            family,
            f"[{color}]{info['freshness']}[/{color}]",
            str(info["records"]),
            last_sync,
        )
    console.print(table)

    mirror = status["mirror"]
    rprint(
        f"\nMirror: delivered={mirror.delivered} retried={mirror.retried} "
        f"failed={mirror.failed} pending={status['mirror_pending']}"
    )
    if mirror.last_error:
        rprint(f"  Last error: [red]{mirror.last_error}[/red]")


def run() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
