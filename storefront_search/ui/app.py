# storefront_search/ui/app.py

"""Terminal UI: instant search over the storefront catalog."""

import asyncio
import logging
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
    Input,
    Static,
)

from storefront_search.models.product import Product
from storefront_search.services.search_metrics import SearchMetrics
from storefront_search.services.storefront import Storefront
from storefront_search.stores.base_store import CollectionStoreError

logger = logging.getLogger("storefront_search.ui")


class StorefrontSearchApp(App[object]):
    """Search-as-you-type over the in-memory product index."""

    CSS_PATH = "styles.css"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("ctrl+r", "refresh_index", "Refresh Index"),
        Binding("ctrl+l", "clear_caches", "Clear Caches"),
    ]

    def __init__(self, storefront: Storefront | None = None) -> None:
        super().__init__()
        self._storefront = storefront
        self.products: list[Product] = []
        self.total_found: int = 0
        self._latest_query: str = ""

    @property
    def storefront(self) -> Storefront:
        if self._storefront is None:
            self._storefront = Storefront.from_settings()
        return self._storefront

    def compose(self) -> ComposeResult:
        """Build the widget tree for the TUI."""
        yield Header()
        yield Container(
            Static("🛍️  Storefront Search", id="title"),
            Horizontal(
                Input(placeholder="Search products...", id="search_input"),
                Input(placeholder="Category (optional)", id="category_input"),
                Button("Search", variant="primary", id="search_btn"),
                id="search_bar",
            ),
            Static("Ready", id="status"),
            cast(
                DataTable[str | Text],
                DataTable(
                    id="results_table",
                    zebra_stripes=True,
                    cursor_type="row",
                ),
            ),
            id="main_container",
        )
        yield Footer()

    async def on_mount(self) -> None:
        """Configure the table, start the storefront, warm the index."""
        table = cast(
            DataTable[str | Text],
            self.query_one("#results_table", DataTable),
        )
        table.add_columns("Title", "Price", "Category", "Vendor")
        try:
            await self.storefront.start()
        except CollectionStoreError as exc:
            logger.error("Storefront failed to start: %s", exc, exc_info=True)
            self._set_status(f"❌ Store unavailable: {exc}")
            return
        self.run_worker(self._warm_up(), exclusive=True, group="warmup")

    async def on_unmount(self) -> None:
        if self._storefront is not None:
            await self._storefront.stop()

    async def _warm_up(self) -> None:
        self._set_status("🔥 Warming up search index...")
        try:
            await self.storefront.search_service.warm_up()
        except CollectionStoreError as exc:
            logger.error("Index warm-up failed: %s", exc, exc_info=True)
            self._set_status(f"❌ Index warm-up failed: {exc}")
            return
        size = self.storefront.search_service.index.size
        self._set_status(f"✅ Index ready ({size} products)")

    def _set_status(self, message: str) -> None:
        self.query_one("#status", Static).update(message)

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        """Handle button click events."""
        if event.button.id == "search_btn":
            self.workers.cancel_group(self, "search")
            await self.perform_search()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        """Handle Enter key in either input."""
        self.workers.cancel_group(self, "search")
        await self.perform_search()

    def on_input_changed(self, event: Input.Changed) -> None:
        """Search as the user types, once the query settles."""
        if event.input.id == "search_input":
            # Each keystroke replaces the pending search
            self.run_worker(
                self._debounced_search(event.value.strip()),
                exclusive=True,
                group="search",
            )

    async def _debounced_search(self, query: str) -> None:
        delay_ms = SearchMetrics.recommended_debounce_ms(query)
        await asyncio.sleep(delay_ms / 1000)
        await self.perform_search()

    async def perform_search(self) -> None:
        """Run the current query against the local index."""
        query = self.query_one("#search_input", Input).value.strip()
        category = (
            self.query_one("#category_input", Input).value.strip() or None
        )
        self._latest_query = query
        if not query:
            self.products = []
            self.total_found = 0
            self.populate_table()
            self._set_status("Type to search")
            return

        if not self.storefront.search_service.is_ready:
            self._set_status("🔥 Warming up search index...")
        try:
            response = await self.storefront.search_products_instant(
                query, category=category
            )
        except CollectionStoreError as exc:
            logger.error("Search failed for '%s'", query, exc_info=True)
            self.notify(f"Search failed: {exc}", severity="error")
            self._set_status("❌ Search index unavailable")
            return

        if query != self._latest_query:
            return
        self.products = response.products
        self.total_found = response.total_found
        self.populate_table()

        if not response.products:
            self._set_status(f"❌ No products match '{query}'")
            return
        source = "cached" if response.from_cache else "indexed"
        self._set_status(
            f"✅ {len(response.products)} of {response.total_found} "
            f"({response.load_time_ms:.2f}ms, {source})"
        )

    def populate_table(self) -> None:
        """Fill the DataTable with current product results."""
        table = cast(
            DataTable[str | Text],
            self.query_one("#results_table", DataTable),
        )
        table.clear()
        for p in self.products:
            table.add_row(
                p.title[:60],
                Text(f"${p.price:,.2f}", style="bold green")
                if p.price > 0
                else Text("N/A", style="dim"),
                p.category,
                p.vendor,
            )

    async def action_refresh_index(self) -> None:
        """Rebuild the index now and rerun the current query."""
        self._set_status("🔄 Refreshing search index...")
        ok = await self.storefront.search_service.refresh_in_background()
        if not ok:
            self.notify("Index refresh failed", severity="error")
        await self.perform_search()

    async def action_clear_caches(self) -> None:
        """Drop every cache; the next search warms the index again."""
        self.storefront.clear_all_caches()
        self.notify("All caches cleared")
        self._set_status("Caches cleared")
