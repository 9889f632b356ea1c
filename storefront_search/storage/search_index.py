# storefront_search/storage/search_index.py

"""In-memory product index with hierarchical relevance scoring."""

import logging
import time
from dataclasses import dataclass, field

from storefront_search.config.settings import Settings
from storefront_search.models.product import Product

logger = logging.getLogger("storefront_search.index")

SCORE_EXACT_TITLE = 1000
SCORE_TITLE_PREFIX = 800
SCORE_TITLE_CONTAINS = 600
SCORE_CATEGORY = 400
SCORE_VENDOR = 200
SCORE_TEXT = 100


@dataclass(frozen=True)
class IndexEntry:
    """A product plus its precomputed lower-cased search fields."""

    product: Product
    title_lower: str
    category_lower: str
    vendor_lower: str
    searchable_text: str

    @classmethod
    def from_product(cls, product: Product) -> "IndexEntry":
        parts = [
            product.title,
            product.category,
            product.product_type,
            product.vendor,
            *product.collection_handles,
        ]
        return cls(
            product=product,
            title_lower=product.title.lower(),
            category_lower=product.category.lower(),
            vendor_lower=product.vendor.lower(),
            searchable_text=" ".join(p for p in parts if p).lower(),
        )

    def score(self, query: str) -> int:
        """Score against an already-normalised query (first rule wins)."""
        if self.title_lower == query:
            return SCORE_EXACT_TITLE
        if self.title_lower.startswith(query):
            return SCORE_TITLE_PREFIX
        if query in self.title_lower:
            return SCORE_TITLE_CONTAINS
        if query in self.category_lower:
            return SCORE_CATEGORY
        if query in self.vendor_lower:
            return SCORE_VENDOR
        if query in self.searchable_text:
            return SCORE_TEXT
        return 0

    def in_category(self, category: str) -> bool:
        return self.category_lower == category


@dataclass
class IndexSearchResult:
    """Ranked products and the match count before truncation."""

    products: list[Product] = field(default_factory=lambda: list[Product]())
    total_found: int = 0


def normalize_query(query: str) -> str:
    return query.strip().lower()


class LocalSearchIndex:
    """Linear-scan index over the whole catalog.

    Rebuilt wholesale by :meth:`build_index`, keyed by product id in
    catalog order.  Equal scores keep catalog order.
    """

    def __init__(self) -> None:
        self._entries: dict[str, IndexEntry] = {}
        self._built_at: float = 0.0

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def built_at(self) -> float:
        return self._built_at

    def is_fresh(self, ttl: float) -> bool:
        """True when the index was built less than *ttl* seconds ago."""
        if not self._built_at:
            return False
        return time.time() - self._built_at < ttl

    def build_index(self, products: list[Product]) -> None:
        """Replace the index contents with *products*."""
        self._entries.clear()
        for product in products:
            self._entries[product.id] = IndexEntry.from_product(product)
        self._built_at = time.time()
        logger.info("Local index built with %d products", len(self._entries))

    def clear(self) -> None:
        self._entries.clear()
        self._built_at = 0.0

    def search(
        self,
        query: str,
        category: str | None = None,
        limit: int | None = None,
    ) -> IndexSearchResult:
        """Score every entry against *query* and rank the matches.

        An empty query returns the first *limit* entries unscored.
        *category* keeps only entries whose category equals it,
        case-insensitively.
        """
        if limit is None:
            limit = Settings.DEFAULT_SEARCH_LIMIT
        needle = normalize_query(query)

        if not needle:
            everything = [e.product for e in self._entries.values()]
            return IndexSearchResult(
                products=everything[:limit],
                total_found=len(everything),
            )

        wanted = category.lower() if category else None
        scored: list[tuple[int, Product]] = []
        for entry in self._entries.values():
            if wanted is not None and not entry.in_category(wanted):
                continue
            score = entry.score(needle)
            if score:
                scored.append((score, entry.product))

        # list.sort is stable: ties keep catalog order
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return IndexSearchResult(
            products=[product for _, product in scored[:limit]],
            total_found=len(scored),
        )
