# storefront_search/cli/runner.py

"""Headless CLI runners over a short-lived Storefront."""

import json
import logging
import sys
from dataclasses import asdict, is_dataclass

from rich.console import Console
from rich.table import Table

from storefront_search.models.product import Product
from storefront_search.services.health_checker import check_store
from storefront_search.services.product_loader import LoaderStatus
from storefront_search.services.storefront import Storefront, build_store
from storefront_search.stores.base_store import CollectionStoreError

logger = logging.getLogger("storefront_search.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def _make_storefront() -> Storefront | None:
    try:
        return Storefront(build_store())
    except CollectionStoreError as exc:
        logger.error("Cannot open collection store: %s", exc, exc_info=True)
        _err.print(f"[red]Cannot open store: {exc}[/red]")
        return None


def _jsonable(value: object) -> object:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return str(value)


def parse_csv(value: str | None) -> list[str]:
    """Split a comma-separated option into trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _print_table(products: list[Product], title: str) -> None:
    """Render a Rich table of products to stdout, in result order."""
    table = Table(title=title, show_lines=True, title_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Category", style="magenta")
    table.add_column("Vendor")
    table.add_column("ID", overflow="fold", style="dim")

    for idx, p in enumerate(products, 1):
        table.add_row(
            str(idx),
            p.title[:50],
            f"${p.price:,.2f}" if p.price > 0 else "N/A",
            p.category or "—",
            p.vendor or "—",
            p.id,
        )

    Console().print(table)


def _emit(products: list[Product], output_format: str, title: str) -> None:
    if output_format == "table":
        _print_table(products, title)
        return
    json.dump(
        [p.to_dict() for p in products],
        sys.stdout,
        ensure_ascii=False,
        indent=2,
    )
    sys.stdout.write("\n")


async def cli_search(
    query: str,
    category: str | None,
    limit: int | None,
    output_format: str,
) -> int:
    """Run one instant search and return an exit code (0=ok, 1=fail)."""
    _err.print(
        f"[bold]Searching:[/bold] {query}"
        + (f"  [dim]category={category}[/dim]" if category else "")
    )
    storefront = _make_storefront()
    if storefront is None:
        return 1
    try:
        response = await storefront.search_products_instant(
            query, category=category, limit=limit
        )
    except CollectionStoreError as exc:
        logger.error("Search failed: %s", exc, exc_info=True)
        _err.print(f"[red]Search index unavailable: {exc}[/red]")
        return 1

    if not response.products:
        _err.print("[yellow]No products matched.[/yellow]")
        return 1

    _err.print(
        f"[green]✓ {len(response.products)} of {response.total_found}"
        f" products in {response.load_time_ms:.2f}ms[/green]"
    )
    _emit(response.products, output_format, f"Search: {query}")
    return 0


async def cli_load_collection(handle: str, output_format: str) -> int:
    """Load one collection through a product loader."""
    storefront = _make_storefront()
    if storefront is None:
        return 1
    loader = storefront.create_loader(handle, auto_refresh=False)
    _err.print(f"[bold]Loading collection:[/bold] {handle}")
    await loader.load()

    if loader.status is LoaderStatus.ERROR:
        _err.print(f"[red]{loader.error}[/red]")
        return 1

    source = "cache" if loader.cached else "store"
    _err.print(
        f"[green]✓ {len(loader.products)} products from {source}[/green]"
    )
    _emit(loader.products, output_format, f"Collection: {handle}")
    return 0


async def run_preload(handles_csv: str) -> int:
    """Preload several collections sequentially and report coverage."""
    handles = parse_csv(handles_csv)
    if not handles:
        _err.print("[red]No collection handles given.[/red]")
        return 1

    storefront = _make_storefront()
    if storefront is None:
        return 1
    loaded = await storefront.preload_collections(handles)

    table = Table(
        title="Collection Preload", show_lines=True, title_style="bold cyan"
    )
    table.add_column("Handle", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Products", justify="right")
    for data in storefront.get_all_collections_data(handles):
        status = (
            "[green]✅ LOADED[/green]"
            if data.handle in loaded
            else "[red]❌ FAILED[/red]"
        )
        table.add_row(data.handle, status, str(len(data.products)))
    Console().print(table)
    return 0 if len(loaded) == len(handles) else 1


async def run_stats(handles_csv: str | None) -> int:
    """Warm the search index and print cache statistics as JSON."""
    storefront = _make_storefront()
    if storefront is None:
        return 1
    try:
        await storefront.search_service.warm_up()
    except CollectionStoreError as exc:
        _err.print(f"[red]Warm-up failed: {exc}[/red]")
        return 1

    handles = parse_csv(handles_csv)
    if handles:
        await storefront.preload_collections(handles)
    stats = storefront.performance_stats(handles)
    stats["search_latency"] = storefront.search_service.metrics.report()
    stats["smart_cache"] = storefront.search_service.smart_cache.stats()
    json.dump(stats, sys.stdout, indent=2, default=_jsonable)
    sys.stdout.write("\n")
    return 0


async def run_health_check() -> int:
    """Probe the configured collection store."""
    _err.print("[bold]Running collection store health check...[/bold]")
    try:
        store = build_store()
    except CollectionStoreError as exc:
        _err.print(f"[red]Cannot open store: {exc}[/red]")
        return 1
    result = await check_store(store)

    table = Table(
        title="Collection Store Health", show_lines=True, title_style="bold cyan"
    )
    table.add_column("Store", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Products", justify="right")
    table.add_column("Notes", style="dim")

    if result.status == "ok":
        status = "[green]✅ OK[/green]"
    elif result.status == "slow":
        status = "[yellow]⚠️  SLOW[/yellow]"
    else:
        status = "[red]❌ DOWN[/red]"

    table.add_row(
        result.store_name,
        status,
        f"{result.latency_ms:.0f}ms" if result.latency_ms > 0 else "—",
        str(result.product_count),
        result.message,
    )
    Console().print(table)
    return 1 if result.status == "down" else 0
