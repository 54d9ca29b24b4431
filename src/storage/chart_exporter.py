# src/storage/chart_exporter.py

"""Generate interactive Plotly HTML charts from price history."""

import importlib
import logging
import webbrowser
from datetime import datetime
from pathlib import Path
from types import ModuleType
from typing import Any

from src.config.settings import Settings
from src.storage.product_store import ProductStore

logger = logging.getLogger("price_monitor.chart")

_CHARTS_DIR: Path = Settings.CHARTS_DIR


def _get_plotly_go() -> ModuleType:
    """Import plotly.graph_objects lazily."""
    return importlib.import_module("plotly.graph_objects")


def _ensure_charts_dir() -> Path:
    """Create charts directory if it doesn't exist."""
    _CHARTS_DIR.mkdir(parents=True, exist_ok=True)
    return _CHARTS_DIR


def _series(
    product_url: str, store: ProductStore,
) -> tuple[str, str, list[datetime], list[float]] | None:
    """Return title, currency, dates and prices for one product.

    History only holds price changes, so the current price is
    carried forward to the last time the product was checked.
    """
    product = store.get_product(product_url)
    history = store.get_price_history(product_url)
    if product is None or not history:
        return None

    dates = [h.recorded_at for h in history]
    prices = [h.price for h in history]
    if (
        product.last_updated is not None
        and product.price is not None
        and product.last_updated > dates[-1]
    ):
        dates.append(product.last_updated)
        prices.append(product.price)

    title = product.title or product.url
    return title, history[-1].currency, dates, prices


def _write(fig: Any, filename: str, open_browser: bool) -> Path:
    charts_dir = _ensure_charts_dir()
    filepath = charts_dir / filename
    fig.write_html(str(filepath))
    logger.info("Chart saved to %s", filepath)
    if open_browser:
        webbrowser.open(filepath.as_uri())
    return filepath


def _build_single_chart(
    title: str,
    currency: str,
    dates: list[datetime],
    prices: list[float],
) -> Any:
    """Build a Plotly line chart for one product."""
    go = _get_plotly_go()

    fig: Any = go.Figure()
    fig.add_trace(go.Scatter(
        x=dates,
        y=prices,
        mode="lines+markers",
        line_shape="hv",
        name=title[:50],
        hovertemplate=(
            "%{x|%Y-%m-%d %H:%M}<br>"
            f"Price: %{{y:.2f}} {currency}"
            "<extra></extra>"
        ),
    ))

    min_price = min(prices)
    max_price = max(prices)
    min_idx = prices.index(min_price)
    max_idx = prices.index(max_price)

    fig.add_annotation(
        x=dates[min_idx], y=min_price,
        text=f"Min: {min_price:.2f}",
        showarrow=True, arrowhead=2,
    )
    fig.add_annotation(
        x=dates[max_idx], y=max_price,
        text=f"Max: {max_price:.2f}",
        showarrow=True, arrowhead=2,
    )

    fig.update_layout(
        title=f"Price History: {title[:60]}",
        xaxis_title="Date",
        yaxis_title=f"Price ({currency})",
        hovermode="x unified",
        template="plotly_white",
    )
    return fig


def export_price_chart(
    product_url: str,
    store: ProductStore,
    open_browser: bool = True,
) -> Path | None:
    """Export a single product's price chart as HTML."""
    series = _series(product_url, store)
    if series is None or len(series[2]) < 2:
        logger.warning(
            "Not enough data points for chart: %s",
            product_url[:60],
        )
        return None

    title, currency, dates, prices = series
    fig = _build_single_chart(title, currency, dates, prices)

    slug = title[:30].replace(" ", "_").replace("/", "_")
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return _write(fig, f"{slug}_{stamp}.html", open_browser)


def export_comparison_chart(
    product_urls: list[str],
    store: ProductStore,
    open_browser: bool = True,
) -> Path | None:
    """Export an overlay chart comparing multiple products."""
    go = _get_plotly_go()
    fig: Any = go.Figure()
    for url in product_urls:
        series = _series(url, store)
        if series is None or len(series[2]) < 2:
            continue
        title, currency, dates, prices = series
        fig.add_trace(go.Scatter(
            x=dates,
            y=prices,
            mode="lines+markers",
            line_shape="hv",
            name=f"{title[:40]} ({currency})",
            hovertemplate=(
                "%{x|%Y-%m-%d %H:%M}<br>"
                "Price: %{y:.2f}"
                "<extra></extra>"
            ),
        ))

    if not fig.data:
        logger.warning("No trend data for comparison chart")
        return None

    fig.update_layout(
        title="Price Comparison",
        xaxis_title="Date",
        yaxis_title="Price",
        hovermode="x unified",
        template="plotly_white",
        legend={"orientation": "h", "y": -0.15},
    )

    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return _write(fig, f"comparison_{stamp}.html", open_browser)


def export_dashboard(
    store: ProductStore,
    open_browser: bool = True,
) -> Path | None:
    """Export a comparison chart for every tracked product."""
    products = store.list_products()
    if not products:
        logger.warning("No tracked products for dashboard")
        return None

    return export_comparison_chart(
        [p.url for p in products], store, open_browser=open_browser,
    )
