"""Command line entry point for ClawHub Skills."""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from clawhub_skills.cache import CACHE_ONLY, FORCE_REFRESH, CachePolicy
from clawhub_skills.config import Config, set_config
from clawhub_skills.exceptions import ClawHubError
from clawhub_skills.logging import configure_logging
from clawhub_skills.service import ClawHubContext

T = TypeVar("T")

console = Console()

app = typer.Typer(help="ClawHub Skills - discover, install and use registry skills")

ConfigOption = typer.Option("", "-c", "--config", help="Path to config file")
VerboseOption = typer.Option(False, "-v", "--verbose", help="Debug logging")


def _load_config(config: str, verbose: bool) -> Config:
    if verbose:
        os.environ["CLAWHUB_LOGGING__LEVEL"] = "DEBUG"

    if config:
        try:
            cfg = Config.from_yaml(Path(config))
        except Exception as e:
            console.print(f"[red]Failed to load config {config}: {e}[/red]")
            cfg = Config.load()
    else:
        cfg = Config.load()

    set_config(cfg)
    configure_logging(cfg)
    return cfg


def _run(cfg: Config, work: Callable[[ClawHubContext], Awaitable[T]]) -> T:
    """Bring a context up without background sync, run ``work``, tear it down."""

    async def _main() -> T:
        ctx = ClawHubContext.create(cfg)
        await ctx.initialize(start_sync=False)
        try:
            return await work(ctx)
        finally:
            await ctx.shutdown()

    try:
        return asyncio.run(_main())
    except KeyboardInterrupt:
        sys.exit(130)
    except ClawHubError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


def _format_time(seconds: float | None) -> str:
    if not seconds:
        return "-"
    # Registry timestamps are milliseconds, local ones seconds.
    if seconds > 1e11:
        seconds /= 1000
    return datetime.fromtimestamp(seconds).strftime("%Y-%m-%d %H:%M")


@app.command()
def sync(config: str = ConfigOption, verbose: bool = VerboseOption) -> None:
    """Refresh the cached catalog from the registry now."""
    cfg = _load_config(config, verbose)

    async def _work(ctx: ClawHubContext) -> None:
        result = await ctx.sync_now()
        stats = ctx.catalog.stats(installed=len(ctx.store.get_loaded_skills()))
        console.print(
            f"Catalog synced: [bold]{result.updated}[/bold] skills "
            f"({result.added} new, {stats.installed} installed)"
        )

    _run(cfg, _work)


@app.command()
def catalog(
    offline: bool = typer.Option(False, "--offline", help="Only use the cached snapshot"),
    limit: int = typer.Option(50, "-n", "--limit", help="Rows to show"),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """List skills available on the registry."""
    cfg = _load_config(config, verbose)
    policy: CachePolicy | None = CACHE_ONLY if offline else None

    async def _work(ctx: ClawHubContext) -> None:
        entries = await ctx.catalog.get_catalog(policy)
        stats = ctx.catalog.stats(installed=len(ctx.store.get_loaded_skills()))
        table = Table(title=f"ClawHub Catalog ({stats.total} skills)", show_header=True, header_style="bold cyan")
        table.add_column("Slug")
        table.add_column("Name")
        table.add_column("Version")
        table.add_column("Downloads", justify="right")
        table.add_column("Summary")
        for entry in entries[: max(0, limit)]:
            table.add_row(
                entry.slug,
                entry.display_name,
                entry.version,
                str(entry.downloads),
                entry.summary or "",
            )
        console.print(table)
        if stats.categories:
            console.print(f"Categories: {', '.join(stats.categories)}")

    _run(cfg, _work)


@app.command()
def search(
    query: str = typer.Argument(..., help="What to look for"),
    limit: int = typer.Option(10, "-n", "--limit", help="Maximum results"),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Search the registry."""
    cfg = _load_config(config, verbose)

    async def _work(ctx: ClawHubContext) -> None:
        results = await ctx.registry.search(query, limit)
        if not results:
            console.print(f'No skills found for "{query}".')
            return
        table = Table(title=f'Results for "{query}"', show_header=True, header_style="bold cyan")
        table.add_column("Score", justify="right")
        table.add_column("Slug")
        table.add_column("Name")
        table.add_column("Installed")
        table.add_column("Summary")
        for result in results:
            table.add_row(
                f"{result.score:.2f}",
                result.slug,
                result.display_name,
                "yes" if ctx.store.is_installed(result.slug) else "",
                result.summary,
            )
        console.print(table)

    _run(cfg, _work)


@app.command()
def details(
    slug: str = typer.Argument(..., help="Skill slug"),
    refresh: bool = typer.Option(False, "--refresh", help="Bypass the details cache"),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show registry details for one skill."""
    from clawhub_skills.providers import describe_skill

    cfg = _load_config(config, verbose)

    async def _work(ctx: ClawHubContext) -> None:
        if refresh:
            await ctx.registry.get_skill_details(slug, FORCE_REFRESH)
        card = await describe_skill(ctx, slug)
        if card is None:
            console.print(f'[yellow]Skill "{slug}" not found.[/yellow]')
            raise typer.Exit(code=1)
        console.print(card.text)

    _run(cfg, _work)


@app.command()
def install(
    slug: str = typer.Argument(..., help="Skill slug"),
    version: str = typer.Option("latest", "--version", help="Version to install"),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Download and install a skill into the skills directory."""
    cfg = _load_config(config, verbose)

    async def _work(ctx: ClawHubContext) -> bool:
        ok = await ctx.store.install(slug, version)
        if ok:
            skill = ctx.store.get_loaded_skill(slug)
            console.print(f"[green]Installed {slug}@{skill.version if skill else version}[/green]")
        else:
            console.print(f"[red]Could not install {slug}; see log for details.[/red]")
        return ok

    if not _run(cfg, _work):
        raise typer.Exit(code=1)


@app.command("list")
def list_installed(config: str = ConfigOption, verbose: bool = VerboseOption) -> None:
    """List installed skills."""
    cfg = _load_config(config, verbose)

    async def _work(ctx: ClawHubContext) -> None:
        skills = ctx.store.get_loaded_skills()
        if not skills:
            console.print(f"No skills installed in {ctx.skills_dir}")
            return
        table = Table(title=f"Installed Skills ({len(skills)})", show_header=True, header_style="bold cyan")
        table.add_column("Slug")
        table.add_column("Name")
        table.add_column("Version")
        table.add_column("Scripts")
        table.add_column("Loaded")
        for skill in skills:
            table.add_row(
                skill.slug,
                skill.name,
                skill.version,
                ", ".join(skill.script_names),
                _format_time(skill.loaded_at),
            )
        console.print(table)

    _run(cfg, _work)


@app.command()
def guide(
    query: list[str] = typer.Argument(..., help="Task to find a skill for"),
    json_output: bool = typer.Option(False, "--json", help="Print the raw result"),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Find (and install if needed) the best skill for a task."""
    cfg = _load_config(config, verbose)

    async def _work(ctx: ClawHubContext) -> None:
        result = await ctx.resolve_guidance(" ".join(query))
        if json_output:
            console.print_json(data=result.to_dict())
        else:
            console.print(result.text)

    _run(cfg, _work)


@app.command()
def version() -> None:
    """Show version information."""
    from clawhub_skills import __version__

    console.print(f"ClawHub Skills v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
