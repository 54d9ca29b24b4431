# src/ui/app.py

"""Terminal dashboard for the price_monitor engine."""

import logging
import webbrowser
from typing import cast

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Header,
    Static,
)

from src.config.settings import Settings
from src.config.watchlist import WatchlistError, load_watchlist
from src.models.alert import PriceAlert
from src.models.product import Product
from src.services.analyzer import PriceAnalyzer
from src.scrapers.fetcher import HttpFetcher, shared_fetcher
from src.services.monitor import PriceMonitor
from src.storage.file_manager import FileManager
from src.storage.product_store import ProductStore

logger = logging.getLogger("price_monitor.ui")

_ALERT_ROWS = 20


def _price_text(price: float | None, currency: str) -> str:
    return "N/A" if price is None else f"{price:,.2f} {currency}"


class PriceMonitorApp(App[object]):
    """Terminal dashboard listing tracked products and recent alerts."""

    CSS_PATH = "styles.css"
    TITLE = "Price Monitor"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("c", "check", "Check Now"),
        Binding("r", "refresh", "Refresh"),
        Binding("e", "export", "Export CSV"),
        Binding("g", "chart", "Chart"),
    ]

    def __init__(
        self,
        store: ProductStore | None = None,
        fetcher: HttpFetcher | None = None,
    ) -> None:
        super().__init__()
        self._owns_store = store is None
        self.store = store or ProductStore()
        self.fetcher = fetcher or shared_fetcher()
        self.settings = Settings()
        self.products: list[Product] = []
        self.alerts: list[PriceAlert] = []
        self.checking = False

    def compose(self) -> ComposeResult:
        """Build the widget tree for the dashboard."""
        yield Header()
        yield Container(
            Static("📈 Price Monitor", id="title"),
            Horizontal(
                Button("Check now", variant="primary", id="check_btn"),
                Button("Refresh", id="refresh_btn"),
                id="actions",
            ),
            Static("Ready", id="status"),
            cast(
                DataTable[str | Text],
                DataTable(
                    id="products_table",
                    zebra_stripes=True,
                    cursor_type="row",
                ),
            ),
            Static("Recent alerts", id="alerts_title"),
            cast(
                DataTable[str | Text],
                DataTable(id="alerts_table", zebra_stripes=True),
            ),
            id="main_container",
        )
        yield Footer()

    def on_mount(self) -> None:
        """Configure table columns and load stored data."""
        products_table = cast(
            DataTable[str | Text],
            self.query_one("#products_table", DataTable),
        )
        products_table.add_columns(
            "Title", "Price", "Change", "Availability", "Site", "Updated",
        )
        alerts_table = cast(
            DataTable[str | Text],
            self.query_one("#alerts_table", DataTable),
        )
        alerts_table.add_columns("When", "Title", "Old", "New", "Change")
        self.refresh_data()

    def on_unmount(self) -> None:
        """Close the store if the app opened it."""
        if self._owns_store:
            self.store.close()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button click events."""
        if event.button.id == "check_btn":
            await self.action_check()
        elif event.button.id == "refresh_btn":
            self.action_refresh()

    # ── Data ─────────────────────────────────────────────

    def _last_change(self, product: Product) -> Text:
        """Delta between the last two recorded prices."""
        history = self.store.get_price_history(product.url)
        if len(history) < 2:
            return Text("—", style="dim")
        delta = history[-1].price - history[-2].price
        style = "bold green" if delta < 0 else "bold red"
        return Text(f"{delta:+,.2f}", style=style)

    def refresh_data(self) -> None:
        """Reload products and alerts from the store."""
        try:
            self.products = self.store.list_products()
            self.alerts = PriceAnalyzer(self.store).scan_alerts()
        except Exception as e:
            logger.error("Failed to load dashboard data", exc_info=True)
            self.notify(f"Load failed: {e}", severity="error")
            return
        self.populate_tables()

    def populate_tables(self) -> None:
        """Fill both DataTables from the current state."""
        products_table = cast(
            DataTable[str | Text],
            self.query_one("#products_table", DataTable),
        )
        products_table.clear()
        for p in self.products:
            products_table.add_row(
                (p.title or p.url)[:60],
                Text(_price_text(p.price, p.currency), style="green"),
                self._last_change(p),
                p.availability[:30],
                p.site,
                p.last_updated.strftime("%Y-%m-%d %H:%M")
                if p.last_updated
                else "",
            )

        alerts_table = cast(
            DataTable[str | Text],
            self.query_one("#alerts_table", DataTable),
        )
        alerts_table.clear()
        for a in self.alerts[:_ALERT_ROWS]:
            style = "green" if a.direction == "drop" else "red"
            alerts_table.add_row(
                a.recorded_at.strftime("%Y-%m-%d %H:%M"),
                (a.title or a.product_url)[:50],
                _price_text(a.old_price, a.currency),
                _price_text(a.new_price, a.currency),
                Text(f"{a.change_percent:+.1f}%", style=style),
            )

        status = self.query_one("#status", Static)
        status.update(
            f"{len(self.products)} products tracked, "
            f"{len(self.alerts)} alerts"
        )

    def _selected_product(self) -> Product | None:
        table = cast(
            DataTable[str | Text],
            self.query_one("#products_table", DataTable),
        )
        row = table.cursor_row
        if 0 <= row < len(self.products):
            return self.products[row]
        return None

    # ── Actions ──────────────────────────────────────────

    def action_refresh(self) -> None:
        """Reload data from the store."""
        self.refresh_data()

    async def action_check(self) -> None:
        """Run a concurrent monitoring pass over the watchlist."""
        if self.checking:
            self.notify("A check is already running", severity="warning")
            return
        try:
            items = load_watchlist()
        except WatchlistError as e:
            self.notify(str(e), severity="error")
            return
        if not items:
            self.notify(
                "Watchlist is empty, add URLs with the CLI",
                severity="warning",
            )
            return

        status = self.query_one("#status", Static)
        status.update(f"🔍 Checking {len(items)} products...")
        self.checking = True
        try:
            monitor = PriceMonitor(self.store, fetcher=self.fetcher)
            report = await monitor.run_concurrent(items)
        except Exception as e:
            logger.error("Monitoring pass failed", exc_info=True)
            self.notify(f"Check failed: {e}", severity="error")
            status.update("❌ Check failed")
            return
        finally:
            self.checking = False

        self.refresh_data()
        status.update(
            f"✅ {report.succeeded}/{report.checked} ok, "
            f"{report.price_changes} changed, {report.failed} failed"
        )
        if report.alerts:
            self.notify(f"{len(report.alerts)} new price alerts")

    def action_export(self) -> None:
        """Export tracked products to a CSV file."""
        if not self.products:
            self.notify("No products to export", severity="warning")
            return
        try:
            path = FileManager().export_csv(self.products)
            logger.info("Exported products to %s", path)
            self.notify(f"Exported to {path}")
        except Exception as e:
            logger.error("Failed to export products", exc_info=True)
            self.notify(f"Export failed: {e}", severity="error")

    def action_chart(self) -> None:
        """Open a price chart for the selected product."""
        from src.storage.chart_exporter import export_price_chart

        product = self._selected_product()
        if product is None:
            self.notify("Select a product first", severity="warning")
            return
        try:
            path = export_price_chart(product.url, self.store)
        except Exception as e:
            logger.error("Failed to export chart", exc_info=True)
            self.notify(f"Chart failed: {e}", severity="error")
            return
        if path is None:
            self.notify("Not enough history to chart", severity="warning")

    def on_data_table_row_selected(
        self, event: DataTable.RowSelected
    ) -> None:
        """Open the selected product's URL in the default browser."""
        if event.data_table.id != "products_table":
            return
        if 0 <= event.cursor_row < len(self.products):
            webbrowser.open(self.products[event.cursor_row].url)
