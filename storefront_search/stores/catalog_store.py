# storefront_search/stores/catalog_store.py

"""Offline collection store over a JSON catalog snapshot.

Snapshot layout::

    {
      "products": [{"id": "1", "title": "...", "sort_order": 3, ...}],
      "collections": [
        {"handle": "tailgate-beer", "title": "Tailgate Beer",
         "products": ["1", "7", ...]}
      ]
    }

Collection ``products`` may list product ids or full records.  A
collection request returns its products in the listed (merchandising)
order; the ``all`` sentinel returns every product ordered by
``sort_order`` then ``id``.

Every served record is annotated with its resolved membership:
``collection_handles`` names each collection that serves it, and
``collection_positions`` maps those handles to the record's index in
the collection, so the bulk view carries the same order as a
per-collection request.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from storefront_search.config.settings import Settings
from storefront_search.models.product import parse_handles
from storefront_search.stores.base_store import (
    BaseCollectionStore,
    CollectionFetchError,
    CollectionNotFoundError,
)


@dataclass
class CollectionSummary:
    """Handle, display title and size of one collection."""

    handle: str
    title: str
    product_count: int


def format_collection_title(handle: str) -> str:
    """Turn ``tailgate-beer`` into ``Tailgate Beer``."""
    return " ".join(part.capitalize() for part in handle.split("-") if part)


def _sort_key(record: dict[str, Any]) -> tuple[float, str]:
    order = record.get("sort_order")
    try:
        position = float(order) if order is not None else float("inf")
    except (TypeError, ValueError):
        position = float("inf")
    return position, str(record.get("id", ""))


class CatalogSnapshotStore(BaseCollectionStore):
    """Serves collections from an in-memory catalog snapshot."""

    def __init__(
        self,
        products: list[dict[str, Any]],
        collections: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__("catalog")
        self._products = list(products)
        self._by_id: dict[str, dict[str, Any]] = {
            str(p.get("id")): p for p in self._products if "id" in p
        }
        self._collections: dict[str, dict[str, Any]] = {
            str(c["handle"]): c
            for c in (collections or [])
            if c.get("handle")
        }
        self._memberships: dict[str, dict[str, int]] = {}
        for handle in sorted(self._all_handles()):
            try:
                members = self._collection_records(handle)
            except CollectionNotFoundError:
                continue
            for position, record in enumerate(members):
                self._memberships.setdefault(
                    str(record.get("id")), {}
                ).setdefault(handle, position)

    @classmethod
    def from_file(cls, path: Path) -> "CatalogSnapshotStore":
        """Load a snapshot written as JSON."""
        try:
            with open(path, encoding="utf-8") as f:
                data: Any = json.load(f)
        except (OSError, ValueError) as exc:
            raise CollectionFetchError(
                f"Cannot read catalog snapshot {path}: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise CollectionFetchError(
                f"Catalog snapshot {path} is not a JSON object"
            )
        return cls(
            data.get("products") or [],
            data.get("collections") or [],
        )

    def _collection_records(
        self, handle: str,
    ) -> list[dict[str, Any]]:
        """Resolve a collection's entries to records, in listed order."""
        collection = self._collections.get(handle)
        if collection is None:
            # Fall back to membership declared on the products themselves
            members = [
                p
                for p in self._products
                if handle in _declared_handles(p)
            ]
            if not members:
                raise CollectionNotFoundError(handle)
            return sorted(members, key=_sort_key)

        records: list[dict[str, Any]] = []
        for entry in collection.get("products") or []:
            if isinstance(entry, dict):
                records.append(entry)
                continue
            record = self._by_id.get(str(entry))
            if record is None:
                self.logger.debug(
                    "Collection '%s' lists unknown product %s",
                    handle,
                    entry,
                )
                continue
            records.append(record)
        return records

    def _all_handles(self) -> set[str]:
        handles = set(self._collections)
        for product in self._products:
            handles.update(_declared_handles(product))
        return handles

    def _annotate(self, record: dict[str, Any]) -> dict[str, Any]:
        """Copy *record* with its resolved memberships attached."""
        annotated = dict(record)
        positions = self._memberships.get(str(record.get("id")), {})
        declared = _declared_handles(record)
        # A listing is authoritative, so a declared handle it omits is dropped
        handles = [h for h in declared if h in positions]
        handles.extend(h for h in positions if h not in handles)
        annotated["collection_handles"] = handles
        annotated["collection_positions"] = dict(positions)
        annotated.pop("collectionHandles", None)
        return annotated

    def fetch_collection(
        self,
        handle: str,
        force_refresh: bool = False,
    ) -> list[dict[str, Any]]:
        """Return a copy of the requested records."""
        if handle == Settings.ALL_COLLECTIONS:
            records = sorted(self._products, key=_sort_key)
        else:
            records = self._collection_records(handle)
        self.logger.debug(
            "[%s] Served %d records for '%s'",
            self.store_name,
            len(records),
            handle,
        )
        return [self._annotate(r) for r in records]

    def list_collections(self) -> list[CollectionSummary]:
        """Summaries of every known collection, sorted by handle."""
        summaries: list[CollectionSummary] = []
        for handle in sorted(self._all_handles()):
            collection = self._collections.get(handle, {})
            title = collection.get("title") or format_collection_title(handle)
            count = len(self._collection_records(handle))
            summaries.append(CollectionSummary(handle, title, count))
        return summaries


def _declared_handles(record: dict[str, Any]) -> list[str]:
    return list(
        parse_handles(
            record.get("collection_handles", record.get("collectionHandles"))
        )
    )
