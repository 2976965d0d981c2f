"""Tests for cfspeed.export and the console presenter."""

import csv
import io
import json
import os
import tempfile
import unittest

from rich.console import Console

from cfspeed.display import ConsolePresenter
from cfspeed.export import export_csv, export_json, write_to_file
from cfspeed.models import LatencyStats, Report, TierSpeed


def _report():
    return Report(
        colo="FRA",
        city="Frankfurt",
        ip="203.0.113.7",
        loc="DE",
        latency=LatencyStats(min=9.0, max=14.0, avg=11.0, median=10.5, jitter=2.25, count=20),
        download_tiers=(TierSpeed("100kB", 50.123, 10), TierSpeed("1MB", 80.0, 8)),
        download_mbps=95.5,
        upload_mbps=40.25,
        timestamp="2026-01-01T00:00:00+00:00",
    )


class TestExportJson(unittest.TestCase):
    def test_fields(self):
        data = json.loads(export_json(_report()))
        self.assertEqual(data["location"], "Frankfurt (FRA)")
        self.assertEqual(data["client"], "203.0.113.7 (DE)")
        self.assertEqual(data["latency_ms"], 10.5)
        self.assertEqual(data["jitter_ms"], 2.25)
        self.assertEqual(data["latency"]["count"], 20)
        self.assertEqual(data["download_tiers"][1], {"label": "1MB", "mbps": 80.0, "samples": 8})
        self.assertEqual(data["download_mbps"], 95.5)
        self.assertEqual(data["upload_mbps"], 40.25)


class TestExportCsv(unittest.TestCase):
    def test_header_and_row(self):
        rows = list(csv.reader(io.StringIO(export_csv(_report()))))
        self.assertEqual(len(rows), 2)
        header, row = rows
        self.assertIn("download_100kB_mbps", header)
        record = dict(zip(header, row))
        self.assertEqual(record["colo"], "FRA")
        self.assertEqual(record["download_100kB_mbps"], "50.12")
        self.assertEqual(record["upload_mbps"], "40.25")


class TestWriteToFile(unittest.TestCase):
    def test_write(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "out.json")
            write_to_file("{}", path)
            with open(path, encoding="utf-8") as fh:
                self.assertEqual(fh.read(), "{}")


class TestConsolePresenter(unittest.TestCase):
    def test_render_lines(self):
        buf = io.StringIO()
        presenter = ConsolePresenter(Console(file=buf, width=80, color_system=None))
        presenter.render(_report().rows())
        lines = buf.getvalue().splitlines()

        self.assertEqual(lines[0], "Server location: Frankfurt (FRA)")
        self.assertEqual(lines[2], "Latency:".rjust(16) + " 10.50 ms")
        self.assertEqual(lines[-2], " Download speed: 95.50 Mbps")
        self.assertEqual(lines[-1], "   Upload speed: 40.25 Mbps")


if __name__ == "__main__":
    unittest.main()
