"""JSON and CSV export for speed-test reports."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import asdict
from typing import Any

from cfspeed.models import Report


def _build_export_dict(report: Report) -> dict[str, Any]:
    data = asdict(report)
    data["location"] = report.location
    data["client"] = report.client
    data["latency_ms"] = report.latency_ms
    data["jitter_ms"] = report.jitter_ms
    data["download_tiers"] = [asdict(t) for t in report.download_tiers]
    return data


def export_json(report: Report, indent: int = 2) -> str:
    """Export the report as a JSON string."""
    return json.dumps(_build_export_dict(report), indent=indent, default=str)


def export_csv(report: Report) -> str:
    """Export the report as a two-line CSV (header + one row)."""
    output = io.StringIO()
    writer = csv.writer(output)

    tier_labels = [t.label for t in report.download_tiers]
    writer.writerow([
        "timestamp",
        "colo",
        "city",
        "ip",
        "loc",
        "latency_ms",
        "jitter_ms",
        *[f"download_{label}_mbps" for label in tier_labels],
        "download_mbps",
        "upload_mbps",
    ])
    writer.writerow([
        report.timestamp or "",
        report.colo,
        report.city,
        report.ip,
        report.loc,
        round(report.latency_ms, 2),
        round(report.jitter_ms, 2),
        *[round(t.mbps, 2) for t in report.download_tiers],
        round(report.download_mbps, 2),
        round(report.upload_mbps, 2),
    ])

    return output.getvalue()


def write_to_file(content: str, filepath: str) -> None:
    """Write export content to a file."""
    with open(filepath, "w", encoding="utf-8") as f:
        f.write(content)
