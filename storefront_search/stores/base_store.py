# storefront_search/stores/base_store.py

"""Abstract base class for collection stores and their errors."""

import logging
from abc import ABC, abstractmethod
from typing import Any


class CollectionStoreError(Exception):
    """Base class for collection store failures."""


class CollectionFetchError(CollectionStoreError):
    """A collection could not be fetched (network, HTTP or payload)."""


class CollectionNotFoundError(CollectionFetchError):
    """The store has no collection with the requested handle."""

    def __init__(self, handle: str) -> None:
        super().__init__(f"Collection '{handle}' not found")
        self.handle = handle


class BaseCollectionStore(ABC):
    """Durable source of collections and their ordered products.

    Implementations are synchronous; async callers run
    :meth:`fetch_collection` in a worker thread.
    """

    def __init__(self, store_name: str) -> None:
        self.store_name = store_name
        self.logger = logging.getLogger(
            f"storefront_search.store.{store_name}"
        )

    @abstractmethod
    def fetch_collection(
        self,
        handle: str,
        force_refresh: bool = False,
    ) -> list[dict[str, Any]]:
        """Return the raw product records of *handle*, in merchandising order.

        The sentinel handle ``"all"`` returns the whole catalog.

        Raises:
            CollectionNotFoundError: the handle is unknown.
            CollectionFetchError: any other failure.
        """
        ...
