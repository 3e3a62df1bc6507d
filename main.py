#!/usr/bin/env python3
"""
StyleCrawl - Blog Feed Crawler for Style Analysis
=================================================

Main application entry point with CLI interface for operators.

Usage:
    python main.py --help                               # Show all commands
    python main.py check-config                         # Validate configuration
    python main.py crawl https://rss.blog.naver.com/ID.xml --max-posts 10
"""

import sys
import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from stylecrawl.config.settings import get_settings
from stylecrawl.processing.pipeline import crawl as run_crawl
from stylecrawl.utils.logging import configure_application_logging
from stylecrawl.utils.exceptions import StyleCrawlError, get_user_friendly_message

console = Console()
logger = logging.getLogger(__name__)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """StyleCrawl - blog feed crawler producing style-analysis corpora."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        # Show help if no subcommand provided
        click.echo(ctx.get_help())


@cli.command()
@click.pass_context
def check_config(ctx):
    """Validate configuration and show the effective values."""
    console.print("[bold blue]🔧 Checking StyleCrawl Configuration[/bold blue]")

    try:
        settings = get_settings()

        table = Table(title="Configuration Status")
        table.add_column("Component", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Details")

        checks = [
            ("Environment", _check_environment_config),
            ("Logging", _check_logging_config),
            ("Crawl", _check_crawl_config),
            ("Transport", _check_transport_config),
            ("Security", _check_security_config),
        ]

        all_passed = True
        for name, check_func in checks:
            status, details = check_func(settings)
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

    except StyleCrawlError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('feed_url')
@click.option('--max-posts', type=int, default=None, help='Posts to crawl (default from config, max 50)')
@click.option('--debug', 'debug_mode', is_flag=True, help='Selector diagnostics and raw HTML capture')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write the result as JSON')
@click.pass_context
def crawl(ctx, feed_url, max_posts, debug_mode, output):
    """Crawl a blog feed and summarize the extracted corpus."""
    console.print(f"[bold blue]📡 Crawling feed: {feed_url}[/bold blue]")

    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if ctx.obj.get('debug') else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )

    try:
        result = asyncio.run(run_crawl(feed_url, max_posts=max_posts, debug=debug_mode, settings=settings))
    except StyleCrawlError as e:
        logger.debug(f"Crawl failed: {e}")
        console.print(f"[bold red]❌ {get_user_friendly_message(e)}[/bold red]")
        sys.exit(1)

    console.print("[bold green]✅ Crawl complete![/bold green]")

    table = Table(title="Crawl Result")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Posts kept", f"{result.post_count} / {result.requested_posts}")
    table.add_row("Samples", str(len(result.samples)))
    table.add_row("Merged text", f"{len(result.merged_text):,} chars")
    table.add_row("Approx. tokens", f"{result.approximate_tokens:,}")
    console.print(table)

    if result.samples:
        preview = result.samples[0]
        if len(preview) > 200:
            preview = preview[:197] + "..."
        console.print(f"\n[bold blue]📝 Sample preview:[/bold blue] {preview}")

    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            json.dumps(result.model_dump(), ensure_ascii=False, indent=2), encoding="utf-8"
        )
        console.print(f"💾 Result written to {output_path}")


# Helper functions for configuration checks
def _check_environment_config(settings) -> tuple[bool, str]:
    """Check deployment environment."""
    debug_state = "allowed" if settings.debug_allowed() else "disabled"
    return True, f"{settings.environment.value}, debug capture {debug_state}"


def _check_logging_config(settings) -> tuple[bool, str]:
    """Check logging configuration."""
    try:
        if settings.logging.file_path:
            log_path = Path(settings.logging.file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_crawl_config(settings) -> tuple[bool, str]:
    """Check crawl limits and thresholds."""
    crawl_settings = settings.crawl
    return True, (
        f"Posts: {crawl_settings.default_max_posts} (max {crawl_settings.max_posts_limit}), "
        f"thresholds {crawl_settings.min_text_length}/{crawl_settings.min_post_length}"
    )


def _check_transport_config(settings) -> tuple[bool, str]:
    """Check retry budgets."""
    transport = settings.transport
    return True, (
        f"Feed: {transport.feed_retry.max_attempts}x{transport.feed_retry.timeout:g}s, "
        f"Page: {transport.page_retry.max_attempts}x{transport.page_retry.timeout:g}s, "
        f"Redirects: {transport.max_redirects}"
    )


def _check_security_config(settings) -> tuple[bool, str]:
    """Check feed policy."""
    hosts = settings.security.allowed_feed_hosts
    if not hosts:
        return False, "No allowed feed hosts"
    return True, f"Hosts: {', '.join(hosts)}, suffix {settings.security.feed_path_suffix}"


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 StyleCrawl interrupted by user[/yellow]")
        sys.exit(130)
