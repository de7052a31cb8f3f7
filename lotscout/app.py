"""Typer CLI entrypoint for lotscout."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, ScheduleConfig, ScheduleType, SourceConfig
from .errors import CategoryError, ConfigError, FetchError, NotFoundError
from .infra import LotStore, SQLiteLotStore
from .logging_conf import available_source_logs, configure_logging, log_path, tail_log
from .models import CategorizationResult, Category
from .orchestrator import CategorizationService, CrawlService
from .scheduler import APSchedulerAdapter

app = typer.Typer(help="lotscout command line tool", no_args_is_help=True, rich_markup_mode=None)
source_app = typer.Typer(name="source", help="Source management", no_args_is_help=True)
category_app = typer.Typer(name="category", help="Category management", no_args_is_help=True)
categorize_app = typer.Typer(name="categorize", help="Run the classifier", no_args_is_help=True)
lot_app = typer.Typer(name="lot", help="Inspect stored lots", no_args_is_help=True)
schedule_app = typer.Typer(name="schedule", help="Periodic crawling", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Log viewing", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    store: LotStore
    scheduler: APSchedulerAdapter
    crawler: CrawlService
    categorizer: CategorizationService


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    global_config = repository.load_global_config()
    db_path = global_config.storage.resolved_path(repository.locator.project_root)
    store = SQLiteLotStore(db_path)
    return AppState(
        repository=repository,
        store=store,
        scheduler=APSchedulerAdapter(),
        crawler=CrawlService(repository, store),
        categorizer=CategorizationService(store, global_config),
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _fail(message: str) -> None:
    console.print(message, style="red")
    raise typer.Exit(code=1)


def _format_schedule(schedule: ScheduleConfig) -> str:
    value = schedule.value
    if schedule.type is ScheduleType.INTERVAL:
        if value is None:
            return "every default interval"
        if isinstance(value, dict):
            return "every " + ", ".join(f"{amount} {unit}" for unit, amount in value.items())
        return f"every {value} min"
    if schedule.type is ScheduleType.ONCE:
        return f"once at {value}" if value else "once, immediately"
    return f"cron {value}"


def _render_sources_table(sources: Sequence[SourceConfig]) -> Table:
    table = Table(title=f"Sources · {len(sources)} total", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("URL", style="green", overflow="fold")
    table.add_column("Profile", style="magenta")
    table.add_column("Enabled")
    table.add_column("Schedule", style="yellow", overflow="fold")
    for source in sources:
        table.add_row(
            source.source_name,
            source.target_url,
            source.site_profile().name if source.profile == "auto" else source.profile,
            "yes" if source.enabled else "no",
            _format_schedule(source.schedule),
        )
    return table


def _render_summaries_table(summaries: Iterable[dict]) -> Table:
    table = Table(title="Crawl summary", box=box.SIMPLE_HEAD)
    table.add_column("Source", style="cyan", no_wrap=True)
    table.add_column("Listings", justify="right")
    table.add_column("New listings", justify="right")
    table.add_column("Lots", justify="right")
    table.add_column("New lots", justify="right")
    table.add_column("Status")
    for summary in summaries:
        if summary.get("failed"):
            status = f"[red]failed[/red] {summary.get('error', '')}"
        elif summary.get("partial"):
            status = "[yellow]partial[/yellow]"
        else:
            status = "[green]ok[/green]"
        table.add_row(
            str(summary["source"]),
            str(summary["listings_found"]),
            str(summary["listings_created"]),
            str(summary["lots_found"]),
            str(summary["lots_created"]),
            status,
        )
    return table


def _render_categories_table(categories: Sequence[Category]) -> Table:
    table = Table(title=f"Categories · {len(categories)} total", box=box.SIMPLE_HEAD)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Description", overflow="fold")
    table.add_column("System")
    for category in categories:
        table.add_row(
            str(category.id),
            category.name,
            category.description or "",
            "yes" if category.is_system else "",
        )
    return table


def _render_results_table(
    results: Sequence[CategorizationResult], categories: Sequence[Category], threshold: float
) -> Table:
    names = {category.id: category.name for category in categories}
    table = Table(title="Categorization results", box=box.SIMPLE_HEAD)
    table.add_column("Lot", justify="right", style="cyan")
    table.add_column("Top category", style="green")
    table.add_column("Probability", justify="right")
    table.add_column("Main", justify="center")
    for result in results:
        if not result.probabilities:
            table.add_row(str(result.lot_id), "[dim]none[/dim]", "-", "")
            continue
        top = result.probabilities[0]
        table.add_row(
            str(result.lot_id),
            names.get(top.category_id, str(top.category_id)),
            f"{top.probability:.2f}",
            "✓" if top.probability >= threshold else "",
        )
    return table


app.add_typer(source_app, name="source")
app.add_typer(category_app, name="category")
app.add_typer(categorize_app, name="categorize")
app.add_typer(lot_app, name="lot")
app.add_typer(schedule_app, name="schedule")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    ctx.obj = build_state(verbose)


# sources -----------------------------------------------------------------
@source_app.command("list", help="List configured sources.")
def source_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    sources = state.repository.list_sources()
    if not sources:
        console.print("No sources configured, add one with `lotscout source add`.", style="yellow")
        raise typer.Exit(code=0)
    console.print(_render_sources_table(sources))


@source_app.command("add", help="Create a source configuration.")
def source_add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Source name"),
    url: str = typer.Argument(..., help="Entry page URL"),
    profile: str = typer.Option("auto", "--profile", help="Site profile (auto, bopa, generic)"),
    disabled: bool = typer.Option(False, "--disabled", help="Create the source disabled"),
) -> None:
    state = _get_state(ctx)
    if state.repository.source_path(name).exists():
        _fail(f"Source {name} already exists.")
    try:
        source = SourceConfig(source_name=name, target_url=url, profile=profile, enabled=not disabled)
    except ValueError as exc:
        _fail(f"Invalid source: {exc}")
    path = state.repository.save_source(source)
    console.print(f"Source {name} saved to {path}", style="green")


@source_app.command("run", help="Crawl one source now.")
def source_run(ctx: typer.Context, name: str = typer.Argument(..., help="Source name")) -> None:
    state = _get_state(ctx)
    try:
        summary = state.crawler.run_source(name)
    except (NotFoundError, ConfigError) as exc:
        _fail(str(exc))
    except FetchError as exc:
        _fail(f"Entry page of {name} could not be fetched: {exc}")
    console.print(_render_summaries_table([summary]))


@source_app.command("run-all", help="Crawl every enabled source in concurrent batches.")
def source_run_all(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    try:
        summaries = state.crawler.run_all()
    except ConfigError as exc:
        _fail(str(exc))
    if not summaries:
        console.print("No enabled sources.", style="yellow")
        raise typer.Exit(code=0)
    console.print(_render_summaries_table(summaries))


def _toggle(ctx: typer.Context, name: str, enabled: bool) -> None:
    state = _get_state(ctx)
    try:
        state.repository.set_enabled(name, enabled)
    except (NotFoundError, ConfigError) as exc:
        _fail(str(exc))
    console.print(f"Source {name} {'enabled' if enabled else 'disabled'}.", style="green")


@source_app.command("enable", help="Enable a source.")
def source_enable(ctx: typer.Context, name: str = typer.Argument(...)) -> None:
    _toggle(ctx, name, True)


@source_app.command("disable", help="Disable a source.")
def source_disable(ctx: typer.Context, name: str = typer.Argument(...)) -> None:
    _toggle(ctx, name, False)


# categories ------------------------------------------------------------------
@category_app.command("list", help="List categories.")
def category_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print(_render_categories_table(state.store.list_categories()))


@category_app.command("add", help="Create a category.")
def category_add(
    ctx: typer.Context,
    name: str = typer.Argument(...),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
) -> None:
    state = _get_state(ctx)
    try:
        category = state.store.create_category(name, description)
    except CategoryError as exc:
        _fail(str(exc))
    console.print(f"Category {category.name} created with id {category.id}.", style="green")


@category_app.command("remove", help="Delete a category.")
def category_remove(ctx: typer.Context, category_id: int = typer.Argument(...)) -> None:
    state = _get_state(ctx)
    try:
        state.store.delete_category(category_id)
    except (NotFoundError, CategoryError) as exc:
        _fail(str(exc))
    console.print(f"Category {category_id} deleted.", style="green")


# categorization ----------------------------------------------------------------
def _print_results(state: AppState, results: Sequence[CategorizationResult]) -> None:
    threshold = state.categorizer.assigner.threshold
    console.print(_render_results_table(results, state.store.list_categories(), threshold))
    failed = sum(1 for result in results if not result.probabilities)
    if failed:
        console.print(f"{failed} lot(s) got no probabilities.", style="yellow")


@categorize_app.command("listing", help="Categorize every lot of a listing.")
def categorize_listing(
    ctx: typer.Context,
    listing_id: int = typer.Argument(...),
    legacy: bool = typer.Option(False, "--legacy", help="One classifier call per lot"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Do not save results"),
) -> None:
    state = _get_state(ctx)
    try:
        results = state.categorizer.categorize_listing(
            listing_id, bulk=not legacy, save=not dry_run
        )
    except NotFoundError as exc:
        _fail(str(exc))
    _print_results(state, results)


@categorize_app.command("lots", help="Categorize specific lots.")
def categorize_lots(
    ctx: typer.Context,
    lot_ids: List[int] = typer.Argument(...),
    legacy: bool = typer.Option(False, "--legacy", help="One classifier call per lot"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Do not save results"),
) -> None:
    state = _get_state(ctx)
    try:
        results = state.categorizer.categorize_lot_ids(lot_ids, bulk=not legacy, save=not dry_run)
    except NotFoundError as exc:
        _fail(str(exc))
    _print_results(state, results)


# lots ---------------------------------------------------------------------------
@lot_app.command("show", help="Show a lot and its category probabilities.")
def lot_show(ctx: typer.Context, lot_id: int = typer.Argument(...)) -> None:
    state = _get_state(ctx)
    try:
        lot = state.store.get_lot(lot_id)
        probabilities = state.store.get_lot_probabilities(lot_id)
    except NotFoundError as exc:
        _fail(str(exc))
    names = {category.id: category.name for category in state.store.list_categories()}
    details = Table(box=box.MINIMAL_DOUBLE_HEAD, show_header=False, pad_edge=False)
    details.add_column("Field", style="dim")
    details.add_column("Value", overflow="fold")
    details.add_row("Title", lot.title)
    details.add_row("URL", lot.url)
    details.add_row("Price", "-" if lot.current_price is None else f"{lot.current_price:.2f}")
    details.add_row("Bids", "-" if lot.bid_count is None else str(lot.bid_count))
    details.add_row("Main category", names.get(lot.main_category_id, "-") if lot.main_category_id else "-")
    console.print(details)
    if not probabilities:
        console.print("No category probabilities.", style="dim")
        return
    table = Table(title="Category probabilities", box=box.SIMPLE_HEAD)
    table.add_column("Category", style="green")
    table.add_column("Probability", justify="right")
    for entry in probabilities:
        table.add_row(names.get(entry.category_id, str(entry.category_id)), f"{entry.probability:.2f}")
    console.print(table)


@lot_app.command("set-category", help="Override the main category of a lot.")
def lot_set_category(
    ctx: typer.Context,
    lot_id: int = typer.Argument(...),
    category_id: Optional[int] = typer.Argument(None, help="Category id, omit to clear"),
) -> None:
    state = _get_state(ctx)
    try:
        state.categorizer.set_main_category(lot_id, category_id)
    except NotFoundError as exc:
        _fail(str(exc))
    label = "cleared" if category_id is None else f"set to {category_id}"
    console.print(f"Main category of lot {lot_id} {label}.", style="green")


# scheduling ------------------------------------------------------------------------
def _wait_forever() -> None:
    while True:
        time.sleep(1)


@schedule_app.command("start", help="Crawl all enabled sources periodically.")
def schedule_start(
    ctx: typer.Context,
    run_now: bool = typer.Option(False, "--run-now", help="Start the first crawl immediately"),
    per_source: bool = typer.Option(
        False, "--per-source", help="Use each source's own schedule instead of one shared job"
    ),
) -> None:
    state = _get_state(ctx)
    interval = state.crawler.global_config.scraping.interval_minutes
    if per_source:
        for source in state.repository.list_sources(enabled_only=True):
            state.scheduler.schedule_source(
                source, lambda item: state.crawler.run_source(item.source_name), interval
            )
    else:
        state.scheduler.schedule_crawl_all(state.crawler.run_all, interval, run_now=run_now)
    state.scheduler.start()
    console.print(f"Scheduler running ({len(state.scheduler.list_jobs())} job(s)), Ctrl+C to stop.")
    try:
        _wait_forever()
    except KeyboardInterrupt:
        pass
    finally:
        state.scheduler.shutdown()
        console.print("Scheduler stopped.", style="dim")


# logs ------------------------------------------------------------------------------
@log_app.command("list", help="List per-source log files.")
def log_list() -> None:
    logs = list(available_source_logs())
    if not logs:
        console.print("No source logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the latest lines of a log.")
def log_show(
    name: Optional[str] = typer.Option(None, "--source", help="Source name, global log when empty"),
    tail: int = typer.Option(100, "--tail", help="Number of lines"),
) -> None:
    lines = tail_log(log_path(name), tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{'Source log' if name else 'Global log'} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
