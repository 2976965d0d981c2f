"""Tests for cfspeed.display -- header and live progress table."""

import io
import unittest
from unittest import mock

from rich.console import Console

from cfspeed import display
from cfspeed.display import ProgressTracker, render_header


def _console():
    buf = io.StringIO()
    return buf, Console(file=buf, width=80, color_system=None)


class TestRenderHeader(unittest.TestCase):
    def test_names_host(self):
        buf, console = _console()
        with mock.patch.object(display, "console", console):
            render_header("speed.example.com")
        self.assertIn("Speed test (speed.example.com)", buf.getvalue())


class TestProgressTracker(unittest.TestCase):
    def _render(self, tracker):
        buf, console = _console()
        console.print(tracker._build_table())
        return buf.getvalue()

    def test_counts_and_failures(self):
        tracker = ProgressTracker()
        tracker.update("1MB", 1, 8, 92.5)
        tracker.update("1MB", 2, 8, None)
        tracker.update("1MB", 3, 8, 90.0)

        self.assertEqual((tracker.label, tracker.completed, tracker.total), ("1MB", 3, 8))
        self.assertEqual(tracker.failed, 1)
        out = self._render(tracker)
        self.assertIn("1MB", out)
        self.assertIn("3/8", out)

    def test_failures_reset_on_new_tier(self):
        tracker = ProgressTracker()
        tracker.update("100kB", 1, 2, None)
        tracker.update("100kB", 2, 2, None)
        self.assertEqual(tracker.failed, 2)

        tracker.update("1MB", 1, 8, 50.0)
        self.assertEqual(tracker.failed, 0)
        self.assertEqual(tracker.label, "1MB")

    def test_bar_fills_with_progress(self):
        tracker = ProgressTracker(bar_width=10)
        tracker.update("latency", 5, 10, 12.0)
        out = self._render(tracker)
        self.assertEqual(out.count("█"), 5)
        self.assertEqual(out.count("░"), 5)

    def test_empty_table(self):
        out = self._render(ProgressTracker())
        self.assertIn("0/0", out)

    def test_start_and_finish(self):
        _, console = _console()
        with mock.patch.object(display, "console", console):
            tracker = ProgressTracker()
            tracker.start()
            self.assertIsNotNone(tracker.live)
            tracker.update("latency", 1, 20, 11.0)
            tracker.finish()
        self.assertIsNone(tracker.live)
        # Second finish is a no-op
        tracker.finish()


if __name__ == "__main__":
    unittest.main()
