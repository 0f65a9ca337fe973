"""Unit tests for run manifest writer."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from coinsight.core.utils.errors import UnknownStrategyError
from coinsight.core.utils.manifest import RunManifestWriter


class TestRunManifestWriter(unittest.TestCase):
    """Validate success and failure manifest serialization."""

    def test_success_manifest(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            writer = RunManifestWriter(output_dir=Path(temp_dir), command="backtest", run_id="r1")
            writer.set_inputs(config_path=Path("config.yaml"))
            writer.set_context(
                strategy_type="momentum",
                asset_ids=["ethereum", "bitcoin"],
                start="2024-01-01",
                end="2024-03-01",
            )
            writer.mark_success(
                metrics={"sharpe_ratio": 1.0},
                artifact_paths=["/tmp/trades.csv"],
                extra={"final_equity": 11_000.0},
            )
            manifest_path = writer.write()
            payload = json.loads(manifest_path.read_text(encoding="utf-8"))

            self.assertEqual(manifest_path, writer.path)
            self.assertEqual(payload["status"], "success")
            self.assertEqual(payload["command"], "backtest")
            self.assertEqual(payload["context"]["asset_ids"], ["bitcoin", "ethereum"])
            self.assertIn("sharpe_ratio", payload["result"]["metrics"])
            self.assertIn("/tmp/trades.csv", payload["result"]["artifact_paths"])
            self.assertIsNotNone(payload["duration_seconds"])

    def test_failure_manifest(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            writer = RunManifestWriter(output_dir=Path(temp_dir), command="backtest", run_id="r2")
            writer.mark_failure(UnknownStrategyError("Unknown strategy type 'martingale'."))
            manifest_path = writer.write()
            payload = json.loads(manifest_path.read_text(encoding="utf-8"))

            self.assertEqual(writer.status, "failed")
            self.assertEqual(payload["failure"]["exception_type"], "UnknownStrategyError")
            self.assertEqual(payload["failure"]["error_code"], "unknown_strategy")
            self.assertIn("martingale", payload["failure"]["message"])
            self.assertTrue(payload["failure"]["traceback"])


if __name__ == "__main__":
    unittest.main()
