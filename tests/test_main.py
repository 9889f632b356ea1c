# tests/test_main.py

"""Tests for argument parsing and headless dispatch in main.py."""

import unittest
from unittest.mock import AsyncMock, patch

import main


class TestArgumentParser(unittest.TestCase):
    """_build_parser defaults and options."""

    def test_defaults(self) -> None:
        args = main._build_parser().parse_args([])
        self.assertIsNone(args.query)
        self.assertEqual(args.output_format, "json")
        self.assertIsNone(args.stats)
        self.assertFalse(args.health)

    def test_search_options(self) -> None:
        args = main._build_parser().parse_args(
            ["ipa", "-c", "beer", "-l", "5", "-f", "table"]
        )
        self.assertEqual(
            (args.query, args.category, args.limit, args.output_format),
            ("ipa", "beer", 5, "table"),
        )

    def test_stats_without_handles(self) -> None:
        args = main._build_parser().parse_args(["--stats"])
        self.assertEqual(args.stats, "")


class TestDispatch(unittest.TestCase):
    """_run routes each option to its runner."""

    def _run(self, argv: list[str], runner_name: str) -> AsyncMock:
        args = main._build_parser().parse_args(argv)
        mock = AsyncMock(return_value=0)
        with patch(f"storefront_search.cli.runner.{runner_name}", mock):
            self.assertEqual(main._run(args), 0)
        return mock

    def test_search(self) -> None:
        mock = self._run(["ipa", "-c", "beer"], "cli_search")
        mock.assert_awaited_once_with(
            query="ipa", category="beer", limit=None, output_format="json"
        )

    def test_collection(self) -> None:
        mock = self._run(["--collection", "beer"], "cli_load_collection")
        mock.assert_awaited_once_with("beer", "json")

    def test_preload(self) -> None:
        mock = self._run(["--preload", "a,b"], "run_preload")
        mock.assert_awaited_once_with("a,b")

    def test_stats(self) -> None:
        mock = self._run(["--stats", "beer"], "run_stats")
        mock.assert_awaited_once_with("beer")

    def test_health(self) -> None:
        self._run(["--health"], "run_health_check").assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
