# storefront_search/stores/edge_function_store.py

"""Collection store backed by the Supabase products edge function."""

import time
from typing import Any

from curl_cffi import requests as curl_requests

from storefront_search.config.settings import Settings
from storefront_search.stores.base_store import (
    BaseCollectionStore,
    CollectionFetchError,
    CollectionNotFoundError,
)

_RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


class EdgeFunctionStore(BaseCollectionStore):
    """POSTs ``{collection_handle, force_refresh}`` to the edge function."""

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
    ) -> None:
        super().__init__("edge_function")
        self.settings = Settings()
        self.endpoint = endpoint or Settings.products_endpoint()
        self.api_key = (
            api_key if api_key is not None else Settings.SUPABASE_ANON_KEY
        )
        self.session = curl_requests.Session()
        self._retry_delay: float = self.settings.REQUEST_DELAY
        self._failed_fetches: int = 0
        self._suspended_until: float = 0.0
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

    def _headers(self) -> dict[str, str]:
        headers = dict(self.settings.DEFAULT_HEADERS)
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _suspended(self, handle: str) -> bool:
        """Whether calls are suspended after repeated failed fetches.

        Once the suspension window has passed a single fetch goes
        through again; another failure suspends calls straight away.
        """
        if not self._suspended_until:
            return False
        remaining = self._suspended_until - time.time()
        if remaining > 0:
            self.logger.warning(
                "[%s] Edge function suspended for %.0fs more, "
                "not fetching '%s'",
                self.store_name,
                remaining,
                handle,
            )
            return True
        self.logger.info(
            "[%s] Suspension over, trying the edge function with '%s'",
            self.store_name,
            handle,
        )
        self._suspended_until = 0.0
        return False

    def _fetch_succeeded(self) -> None:
        self._failed_fetches = 0
        self._suspended_until = 0.0
        self._retry_delay = self.settings.REQUEST_DELAY

    def _fetch_failed(self, handle: str) -> None:
        self._failed_fetches += 1
        if self._failed_fetches < self.settings.EDGE_FAILURE_LIMIT:
            return
        suspend_for = self.settings.EDGE_SUSPEND_SECONDS
        self._suspended_until = time.time() + suspend_for
        self.logger.error(
            "[%s] %d fetches failed in a row (last '%s'), "
            "suspending edge function calls for %.0fs",
            self.store_name,
            self._failed_fetches,
            handle,
            suspend_for,
        )

    def _next_retry_delay(self, resp: curl_requests.Response) -> float:
        """Honour the function's Retry-After, otherwise double the delay."""
        ceiling = (
            self.settings.REQUEST_DELAY * self.settings.MAX_DELAY_MULTIPLIER
        )
        try:
            hinted = float(resp.headers.get("Retry-After", ""))
        except (TypeError, ValueError):
            hinted = self._retry_delay * 2
        self._retry_delay = min(max(hinted, 0.0), ceiling)
        self.logger.warning(
            "[%s] Edge function answered %d, retrying in %.1fs",
            self.store_name,
            resp.status_code,
            self._retry_delay,
        )
        return self._retry_delay

    def _post(
        self, payload: dict[str, Any],
    ) -> curl_requests.Response | None:
        """POST with retries, Retry-After aware backoff and suspension."""
        handle = str(payload.get("collection_handle"))
        if self._suspended(handle):
            return None
        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = self.session.post(
                    self.endpoint,
                    headers=self._headers(),
                    json=payload,
                    timeout=self._request_timeout,
                )
                if resp.status_code == 200:
                    self._fetch_succeeded()
                    return resp
                self.logger.warning(
                    "[%s] HTTP %d for '%s' on attempt %d",
                    self.store_name,
                    resp.status_code,
                    handle,
                    attempt + 1,
                )
                if resp.status_code == 404:
                    # The function returns its own JSON error body
                    self._fetch_succeeded()
                    return resp
                if resp.status_code in _RETRY_STATUSES:
                    time.sleep(self._next_retry_delay(resp))
            except Exception as exc:
                self.logger.warning(
                    "[%s] Request error for '%s' on attempt %d: %s",
                    self.store_name,
                    handle,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
                time.sleep(self._retry_delay * (attempt + 1))
        self._fetch_failed(handle)
        return None

    def fetch_collection(
        self,
        handle: str,
        force_refresh: bool = False,
    ) -> list[dict[str, Any]]:
        """Fetch one collection (or the ``all`` catalog) from the function."""
        if not self.endpoint.startswith(("http://", "https://")):
            raise CollectionFetchError(
                f"Edge function endpoint not configured: {self.endpoint!r}"
            )
        resp = self._post(
            {"collection_handle": handle, "force_refresh": force_refresh}
        )
        if resp is None:
            raise CollectionFetchError(
                f"Edge function unreachable for collection '{handle}'"
            )

        try:
            data: Any = resp.json()
        except ValueError as exc:
            raise CollectionFetchError(
                f"Invalid JSON for collection '{handle}'"
            ) from exc
        if not isinstance(data, dict):
            raise CollectionFetchError(
                f"Unexpected payload type for collection '{handle}'"
            )

        if data.get("success") is False:
            message = str(data.get("error") or "unknown error")
            if "not found" in message.lower():
                raise CollectionNotFoundError(handle)
            raise CollectionFetchError(message)

        products = data.get("products")
        if not isinstance(products, list):
            raise CollectionFetchError(
                f"Payload for collection '{handle}' has no product list"
            )

        self.logger.info(
            "[%s] Fetched %d products for '%s'",
            self.store_name,
            len(products),
            handle,
        )
        return products
