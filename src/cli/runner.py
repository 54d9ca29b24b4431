# src/cli/runner.py

"""Headless CLI commands: run checks, manage the watchlist, report."""

import asyncio
import logging
from datetime import datetime, timedelta

from rich.console import Console
from rich.table import Table

from src.config.settings import Settings
from src.config.watchlist import (
    WatchItem,
    WatchlistError,
    add_url,
    load_watchlist,
    remove_url,
)
from src.models.alert import PriceAlert
from src.models.product import Product
from src.services.analyzer import PriceAnalyzer
from src.services.monitor import PriceMonitor, RunReport
from src.storage.file_manager import FileManager
from src.storage.product_store import ProductStore

logger = logging.getLogger("price_monitor.cli")

# Stderr console for status messages so stdout stays clean for output
_err = Console(stderr=True)


def format_price(price: float | None, currency: str) -> str:
    """Render a price for display, or N/A when unknown."""
    if price is None:
        return "N/A"
    return f"{currency} {price:,.2f}".strip()


def _stat_price(value: object, currency: str) -> str:
    """format_price for a loosely typed summary value."""
    if isinstance(value, (int, float)):
        return format_price(float(value), currency)
    return format_price(None, currency)


def _resolve_items(urls: list[str] | None) -> list[WatchItem] | None:
    """Use explicit URLs, else the watchlist. None means unusable."""
    if urls:
        return [WatchItem(url=u) for u in urls]
    try:
        return load_watchlist()
    except WatchlistError as exc:
        logger.error("Watchlist error: %s", exc)
        _err.print(f"[red]{exc}[/red]")
        return None


def _print_report(report: RunReport) -> None:
    """Render a Rich table for one monitoring pass."""
    table = Table(
        title="Price Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Status", justify="center")
    table.add_column("Title", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Change", justify="right")
    table.add_column("URL", overflow="fold", style="dim")

    for o in report.outcomes:
        if o.ok:
            status = "[green]OK[/green]"
        elif o.status == "retryable":
            status = "[yellow]SKIPPED[/yellow]"
        else:
            status = "[red]FAILED[/red]"
        product = o.product
        if product is None:
            table.add_row(status, o.error or "", "N/A", "", o.url)
            continue
        if o.created:
            change = "[cyan]new[/cyan]"
        elif o.price_changed and o.previous_price is not None:
            delta = (product.price or 0.0) - o.previous_price
            colour = "green" if delta < 0 else "red"
            change = f"[{colour}]{delta:+,.2f}[/{colour}]"
        else:
            change = "—"
        table.add_row(
            status,
            product.title[:50] or "—",
            format_price(product.price, product.currency),
            change,
            o.url,
        )

    Console().print(table)


def print_alerts(alerts: list[PriceAlert]) -> None:
    """Render a Rich table of price alerts to stdout."""
    table = Table(
        title="Price Alerts",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("When", style="dim")
    table.add_column("Title", max_width=50)
    table.add_column("Old", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Change", justify="right")

    for a in alerts:
        colour = "green" if a.direction == "drop" else "red"
        table.add_row(
            a.recorded_at.strftime("%Y-%m-%d %H:%M"),
            (a.title or a.product_url)[:50],
            format_price(a.old_price, a.currency),
            format_price(a.new_price, a.currency),
            f"[{colour}]{a.change_percent:+.1f}%[/{colour}]",
        )

    Console().print(table)


def _print_products(products: list[Product]) -> None:
    """Render a Rich table of tracked products to stdout."""
    table = Table(
        title="Tracked Products",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Availability")
    table.add_column("Site", style="magenta")
    table.add_column("Updated", style="dim")

    for idx, p in enumerate(products, 1):
        table.add_row(
            str(idx),
            p.title[:50] or p.url,
            format_price(p.price, p.currency),
            p.availability or "—",
            p.site,
            p.last_updated.strftime("%Y-%m-%d %H:%M")
            if p.last_updated
            else "—",
        )

    Console().print(table)


async def run_check(
    urls: list[str] | None,
    concurrent: bool = False,
    workers: int | None = None,
) -> int:
    """Check the given URLs (or the watchlist). 0=all ok, 1=failures."""
    items = _resolve_items(urls)
    if items is None:
        return 1
    if not items:
        _err.print(
            "[yellow]Nothing to check. Add URLs with "
            "'add URL' or pass them to 'run'.[/yellow]"
        )
        return 1

    mode = "concurrent" if concurrent else "sequential"
    _err.print(
        f"[bold]Checking {len(items)} product(s)[/bold] "
        f"[dim]({mode}, {Settings.REQUESTS_PER_MINUTE} req/min)[/dim]"
    )

    with ProductStore() as store:
        monitor = PriceMonitor(store)
        if concurrent:
            report = await monitor.run_concurrent(items, workers)
        else:
            report = await asyncio.to_thread(monitor.run, items)

    _print_report(report)
    if report.alerts:
        print_alerts(report.alerts)

    _err.print(
        f"[green]✓ {report.succeeded}/{report.checked} ok[/green]"
        f"  [dim]{report.price_changes} changed, "
        f"{report.new_products} new, {report.failed} failed[/dim]"
    )
    if report.missing_prices:
        _err.print(
            f"[yellow]{report.missing_prices} page(s) had no price[/yellow]"
        )
    return 0 if report.failed == 0 else 1


def run_add(url: str, label: str = "", site: str | None = None) -> int:
    """Add a URL to the watchlist."""
    try:
        added = add_url(url, label=label, site=site)
    except WatchlistError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    if added:
        _err.print(f"[green]Watching {url}[/green]")
    else:
        _err.print(f"[yellow]Already watching {url}[/yellow]")
    return 0


def run_remove(url: str) -> int:
    """Remove a URL from the watchlist."""
    try:
        removed = remove_url(url)
    except WatchlistError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    if not removed:
        _err.print(f"[yellow]Not in watchlist: {url}[/yellow]")
        return 1
    _err.print(f"[green]Removed {url}[/green]")
    return 0


def run_list() -> int:
    """Show the watchlist and what is known about each entry."""
    items = _resolve_items(None)
    if items is None:
        return 1
    with ProductStore() as store:
        if not items:
            _err.print("[dim]Watchlist is empty.[/dim]")
            products = store.list_products()
            if products:
                _print_products(products)
            return 0
        table = Table(title="Watchlist", title_style="bold cyan")
        table.add_column("Label")
        table.add_column("URL", overflow="fold")
        table.add_column("Price", justify="right", style="green")
        for item in items:
            known = store.get_product(item.url)
            table.add_row(
                item.label or (known.title[:40] if known else ""),
                item.url,
                format_price(known.price, known.currency)
                if known
                else "—",
            )
        Console().print(table)
    return 0


def run_history(url: str, chart: bool = False) -> int:
    """Print the price history of one product."""
    with ProductStore() as store:
        product = store.get_product(url)
        if product is None:
            _err.print(f"[red]Not tracked: {url}[/red]")
            return 1
        history = store.get_price_history(url)
        summary = store.get_trend_summary(url)

        table = Table(
            title=f"History: {product.title[:60] or url}",
            title_style="bold cyan",
        )
        table.add_column("Recorded", style="dim")
        table.add_column("Price", justify="right", style="green")
        for entry in history:
            table.add_row(
                entry.recorded_at.strftime("%Y-%m-%d %H:%M"),
                format_price(entry.price, entry.currency),
            )
        Console().print(table)
        if summary:
            _err.print(
                f"[dim]min {summary['min']}  max {summary['max']}  "
                f"avg {summary['avg']}  ({summary['count']} changes)[/dim]"
            )

        if chart:
            from src.storage.chart_exporter import export_price_chart

            path = export_price_chart(url, store)
            if path is None:
                _err.print("[yellow]Not enough history to chart.[/yellow]")
            else:
                _err.print(f"[dim]Chart → {path}[/dim]")
    return 0


def run_alerts(
    threshold: float | None = None,
    hours: float | None = None,
    drops_only: bool = False,
) -> int:
    """List price moves above the threshold, optionally recent only."""
    since = (
        datetime.now() - timedelta(hours=hours)
        if hours is not None
        else None
    )
    with ProductStore() as store:
        analyzer = PriceAnalyzer(store)
        alerts = (
            analyzer.price_drops(threshold, since)
            if drops_only
            else analyzer.scan_alerts(threshold, since)
        )
    if not alerts:
        _err.print("[dim]No price alerts.[/dim]")
        return 0
    print_alerts(alerts)
    return 0


def run_summary() -> int:
    """Current price with min / max / avg for every tracked product."""
    with ProductStore() as store:
        rows = PriceAnalyzer(store).summarize()
    if not rows:
        _err.print("[dim]No tracked products.[/dim]")
        return 0

    table = Table(title="Price Summary", title_style="bold cyan")
    table.add_column("Title", max_width=50)
    table.add_column("Now", justify="right", style="green")
    table.add_column("Min", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("Changes", justify="right", style="dim")
    for row in rows:
        currency = str(row["currency"] or "")
        table.add_row(
            str(row["title"] or row["url"])[:50],
            *(
                _stat_price(row[key], currency)
                for key in ("price", "min", "max", "avg")
            ),
            str(row["count"]),
        )
    Console().print(table)
    return 0


def run_export(fmt: str, include_history: bool = False) -> int:
    """Export tracked products (and optionally history) to disk."""
    with ProductStore() as store:
        products = store.list_products()
        history = store.get_all_history() if include_history else {}
    if not products:
        _err.print("[yellow]No tracked products to export.[/yellow]")
        return 1
    file_manager = FileManager()
    try:
        path = file_manager.export(products, fmt)
        _err.print(f"[green]Exported {len(products)} → {path}[/green]")
        if include_history:
            hpath = file_manager.export_history_csv(history)
            _err.print(f"[green]History → {hpath}[/green]")
    except (OSError, ValueError) as exc:
        logger.error("Export failed: %s", exc, exc_info=True)
        _err.print(f"[red]Export failed: {exc}[/red]")
        return 1
    return 0


def run_log(limit: int = 20) -> int:
    """Show the most recent scrape log entries."""
    with ProductStore() as store:
        entries = store.get_scrape_log(limit=limit)
        recent_failures = store.get_failure_count(
            since=datetime.now() - timedelta(hours=24),
        )
    table = Table(title="Scrape Log", title_style="bold cyan")
    table.add_column("When", style="dim")
    table.add_column("Status", justify="center")
    table.add_column("HTTP", justify="right")
    table.add_column("Tries", justify="right")
    table.add_column("Elapsed", justify="right")
    table.add_column("URL", overflow="fold")
    table.add_column("Error", style="red")
    for e in entries:
        table.add_row(
            e.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            e.status,
            str(e.status_code or "—"),
            str(e.attempts),
            f"{e.elapsed:.2f}s",
            e.url,
            e.error or "",
        )
    Console().print(table)
    colour = "red" if recent_failures else "dim"
    _err.print(
        f"[{colour}]{recent_failures} failed fetch(es) "
        f"in the last 24h[/{colour}]"
    )
    return 0


def run_chart(urls: list[str] | None) -> int:
    """Export a comparison chart for the given URLs or everything."""
    from src.storage.chart_exporter import (
        export_comparison_chart,
        export_dashboard,
    )

    with ProductStore() as store:
        path = (
            export_comparison_chart(urls, store)
            if urls
            else export_dashboard(store)
        )
    if path is None:
        _err.print("[yellow]Not enough history to chart.[/yellow]")
        return 1
    _err.print(f"[green]Chart → {path}[/green]")
    return 0
