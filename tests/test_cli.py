"""Tests for the cfspeed command line: output modes and exit codes."""

import json
import os
import tempfile
import unittest
from unittest import mock

from click.testing import CliRunner

from cfspeed.cli import main
from cfspeed.errors import StageError
from cfspeed.models import LatencyStats, Report, TierSpeed

REPORT = Report(
    colo="FRA",
    city="Frankfurt",
    ip="203.0.113.7",
    loc="DE",
    latency=LatencyStats(min=9.0, max=14.0, avg=11.0, median=10.5, jitter=2.25, count=20),
    download_tiers=(TierSpeed("100kB", 50.0, 10),),
    download_mbps=95.5,
    upload_mbps=40.25,
    timestamp="2026-01-01T00:00:00+00:00",
)


class TestCli(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()

    def _patch_run(self, **kwargs):
        return mock.patch("cfspeed.report.run_speedtest", new_callable=mock.AsyncMock, **kwargs)

    def test_quiet_plain_output(self):
        with self._patch_run(return_value=REPORT):
            result = self.runner.invoke(main, ["-q"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Server location: Frankfurt (FRA)", result.output)
        self.assertIn("Download speed: 95.50 Mbps", result.output)
        self.assertIn("Upload speed: 40.25 Mbps", result.output)

    def test_json_output(self):
        with self._patch_run(return_value=REPORT) as run:
            result = self.runner.invoke(main, ["--json", "--host", "speed.example.com"])
        self.assertEqual(result.exit_code, 0, result.output)
        data = json.loads(result.output)
        self.assertEqual(data["colo"], "FRA")
        self.assertEqual(data["download_mbps"], 95.5)
        config = run.call_args.args[0]
        self.assertEqual(config.host, "speed.example.com")
        self.assertTrue(config.json_output)

    def test_csv_to_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "result.csv")
            with self._patch_run(return_value=REPORT):
                result = self.runner.invoke(main, ["--csv", "-q", "-o", path])
            self.assertEqual(result.exit_code, 0, result.output)
            with open(path, encoding="utf-8") as fh:
                self.assertTrue(fh.read().startswith("timestamp,colo,"))

    def test_stage_error_exits_nonzero(self):
        error = StageError("fetch CDN trace", "connection refused")
        with self._patch_run(side_effect=error):
            result = self.runner.invoke(main, ["-q"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("failed to fetch CDN trace", result.output)

    def test_invalid_dns_server_exits_nonzero(self):
        result = self.runner.invoke(main, ["-q", "--dns-server", "not-an-ip"])
        self.assertEqual(result.exit_code, 1, result.output)
        self.assertIn("failed to measure latency", result.output)
        self.assertIn("invalid DNS server", result.output)

    def test_conflicting_address_families(self):
        result = self.runner.invoke(main, ["-4", "-6"])
        self.assertEqual(result.exit_code, 2)

    def test_version(self):
        result = self.runner.invoke(main, ["--version"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("0.1.0", result.output)


if __name__ == "__main__":
    unittest.main()
