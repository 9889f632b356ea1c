# tests/test_edge_function_store.py

"""Tests for the edge function collection store (HTTP mocked)."""

import unittest
from typing import Any
from unittest.mock import MagicMock, patch

from storefront_search.stores.base_store import (
    CollectionFetchError,
    CollectionNotFoundError,
)
from storefront_search.stores.edge_function_store import EdgeFunctionStore

_ENDPOINT = "https://demo.supabase.co/functions/v1/instant-product-cache"


def _resp(
    status: int, payload: Any = None, headers: dict[str, str] | None = None,
) -> MagicMock:
    """Create a mock curl_cffi response."""
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


class TestEdgeFunctionStore(unittest.TestCase):
    """EdgeFunctionStore unit tests."""

    def setUp(self) -> None:
        self.store = EdgeFunctionStore(endpoint=_ENDPOINT, api_key="anon-key")
        self.post = MagicMock()
        self.store.session.post = self.post  # type: ignore[method-assign]

    def test_success_returns_products(self) -> None:
        self.post.return_value = _resp(
            200, {"success": True, "products": [{"id": "1", "title": "IPA"}]}
        )
        records = self.store.fetch_collection("beer", force_refresh=True)
        self.assertEqual(records, [{"id": "1", "title": "IPA"}])

        _, kwargs = self.post.call_args
        self.assertEqual(
            kwargs["json"], {"collection_handle": "beer", "force_refresh": True}
        )
        self.assertEqual(kwargs["headers"]["apikey"], "anon-key")
        self.assertEqual(
            kwargs["headers"]["Authorization"], "Bearer anon-key"
        )

    def test_not_found_error_body(self) -> None:
        self.post.return_value = _resp(
            404, {"success": False, "error": "Collection not found"}
        )
        with self.assertRaises(CollectionNotFoundError):
            self.store.fetch_collection("nope")

    def test_other_error_body(self) -> None:
        self.post.return_value = _resp(
            200, {"success": False, "error": "Shopify rate limited"}
        )
        with self.assertRaises(CollectionFetchError) as ctx:
            self.store.fetch_collection("beer")
        self.assertNotIsInstance(ctx.exception, CollectionNotFoundError)
        self.assertIn("rate limited", str(ctx.exception))

    def test_invalid_json(self) -> None:
        self.post.return_value = _resp(200, ValueError("bad json"))
        with self.assertRaises(CollectionFetchError):
            self.store.fetch_collection("beer")

    def test_missing_product_list(self) -> None:
        self.post.return_value = _resp(200, {"success": True})
        with self.assertRaises(CollectionFetchError):
            self.store.fetch_collection("beer")

    def test_server_errors_retried(self) -> None:
        """5xx responses are retried MAX_RETRIES times then fail."""
        self.post.return_value = _resp(503)
        with self.assertRaises(CollectionFetchError):
            self.store.fetch_collection("beer")
        self.assertEqual(
            self.post.call_count, self.store.settings.MAX_RETRIES
        )

    def test_transient_error_then_success(self) -> None:
        self.post.side_effect = [
            ConnectionError("reset"),
            _resp(200, {"success": True, "products": []}),
        ]
        self.assertEqual(self.store.fetch_collection("beer"), [])
        self.assertEqual(self.post.call_count, 2)

    def test_rate_limit_waits_for_retry_after(self) -> None:
        self.post.side_effect = [
            _resp(429, headers={"Retry-After": "2"}),
            _resp(200, {"success": True, "products": []}),
        ]
        with patch(
            "storefront_search.stores.edge_function_store.time.sleep"
        ) as sleep:
            self.assertEqual(self.store.fetch_collection("beer"), [])
        sleep.assert_called_once_with(2.0)

    def test_backoff_doubles_without_retry_after(self) -> None:
        self.post.return_value = _resp(503)
        with patch(
            "storefront_search.stores.edge_function_store.time.sleep"
        ) as sleep, self.assertRaises(CollectionFetchError):
            self.store.fetch_collection("beer")
        base = self.store.settings.REQUEST_DELAY
        self.assertEqual(
            [c.args[0] for c in sleep.call_args_list][:2], [base * 2, base * 4]
        )

    def test_repeated_failures_suspend_calls(self) -> None:
        """After the failure limit, fetches fail without posting."""
        self.post.return_value = _resp(500)
        limit = self.store.settings.EDGE_FAILURE_LIMIT
        with self.assertLogs("storefront_search", level="ERROR") as logs:
            for _ in range(limit):
                with self.assertRaises(CollectionFetchError):
                    self.store.fetch_collection("beer")
        self.assertTrue(
            any("suspending edge function calls" in line for line in logs.output)
        )
        self.assertGreater(self.store._suspended_until, 0.0)

        calls_before = self.post.call_count
        with self.assertRaises(CollectionFetchError):
            self.store.fetch_collection("wine")
        self.assertEqual(self.post.call_count, calls_before)

    def test_fetch_allowed_once_suspension_ends(self) -> None:
        self.store._failed_fetches = self.store.settings.EDGE_FAILURE_LIMIT
        self.store._suspended_until = 1000.0
        self.post.return_value = _resp(200, {"success": True, "products": []})
        with patch(
            "storefront_search.stores.edge_function_store.time.time",
            return_value=1000.0,
        ):
            self.assertEqual(self.store.fetch_collection("beer"), [])
        self.assertEqual(self.store._suspended_until, 0.0)
        self.assertEqual(self.store._failed_fetches, 0)

    def test_failure_after_suspension_suspends_again(self) -> None:
        self.store._failed_fetches = self.store.settings.EDGE_FAILURE_LIMIT
        self.store._suspended_until = 1000.0
        self.post.return_value = _resp(500)
        with patch(
            "storefront_search.stores.edge_function_store.time.time",
            return_value=1000.0,
        ), self.assertRaises(CollectionFetchError):
            self.store.fetch_collection("beer")
        suspend_for = self.store.settings.EDGE_SUSPEND_SECONDS
        self.assertEqual(self.store._suspended_until, 1000.0 + suspend_for)

    def test_unconfigured_endpoint(self) -> None:
        store = EdgeFunctionStore(endpoint="/functions/v1/x", api_key="")
        with self.assertRaises(CollectionFetchError):
            store.fetch_collection("beer")


if __name__ == "__main__":
    unittest.main()
