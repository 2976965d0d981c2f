"""Report assembly and run orchestration for cfspeed.

A run is a fixed sequence of stages:
  latency -> server locations -> trace -> download tiers -> upload tiers

Stages that cannot be skipped (metadata fetches, a latency phase with no
successful probe, a request that cannot be built) abort the run with a
``StageError`` naming the stage.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from itertools import chain
from typing import Optional, Sequence

import httpx

from cfspeed.config import SPEED_QUANTILE
from cfspeed.engine import (
    ProgressCallback,
    Prober,
    measure_latency,
    run_download_tiers,
    run_upload_tiers,
)
from cfspeed.errors import SpeedTestError, StageError
from cfspeed.location import fetch_locations, fetch_trace
from cfspeed.models import (
    LatencyStats,
    LocationTable,
    MeasurementConfig,
    PhaseResult,
    Report,
    TierSpeed,
    TraceInfo,
)
from cfspeed.stats import median, quantile, summarize_latency

logger = logging.getLogger(__name__)


def pool_samples(phases: Sequence[PhaseResult]) -> list[float]:
    """Concatenate the samples of several tiers, in tier order."""
    return list(chain.from_iterable(p.samples for p in phases))


def build_report(
    latency: LatencyStats,
    downloads: Sequence[PhaseResult],
    uploads: Sequence[PhaseResult],
    locations: LocationTable,
    trace: TraceInfo,
) -> Report:
    """Combine phase outputs with location/trace metadata into a Report."""
    colo = trace.get("colo", "")

    return Report(
        colo=colo,
        city=locations.get(colo, ""),
        ip=trace.get("ip", ""),
        loc=trace.get("loc", ""),
        latency=latency,
        download_tiers=tuple(
            TierSpeed(label=p.tier.label, mbps=median(p.samples), samples=len(p.samples))
            for p in downloads
        ),
        download_mbps=quantile(pool_samples(downloads), SPEED_QUANTILE),
        upload_mbps=quantile(pool_samples(uploads), SPEED_QUANTILE),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


async def run_speedtest(
    config: MeasurementConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    progress_callback: ProgressCallback | None = None,
) -> Report:
    """Run every measurement stage and return the final Report.

    Parameters
    ----------
    config:
        Measurement configuration.
    transport:
        Optional httpx transport used for all requests (tests).
    progress_callback:
        Forwarded to each phase; see ``engine.ProgressCallback``.

    Raises
    ------
    StageError
        When a stage fails in a way the run cannot recover from.
    """
    prober = Prober(config, transport=transport)

    try:
        latency_phase = await measure_latency(prober, progress_callback=progress_callback)
    except SpeedTestError as exc:
        raise StageError("measure latency", exc) from exc
    if latency_phase.is_empty:
        raise StageError(
            "measure latency",
            f"all {latency_phase.tier.iterations} latency probes failed",
        )
    latency = summarize_latency(latency_phase.samples)

    try:
        locations = await fetch_locations(config, transport)
    except (httpx.HTTPError, ValueError, SpeedTestError) as exc:
        raise StageError("fetch server location data", exc) from exc

    try:
        trace = await fetch_trace(config, transport)
    except (httpx.HTTPError, SpeedTestError) as exc:
        raise StageError("fetch CDN trace", exc) from exc

    try:
        downloads = await run_download_tiers(prober, progress_callback=progress_callback)
    except SpeedTestError as exc:
        raise StageError("measure download", exc) from exc

    try:
        uploads = await run_upload_tiers(prober, progress_callback=progress_callback)
    except SpeedTestError as exc:
        raise StageError("measure upload", exc) from exc

    logger.debug(
        "Collected %d download and %d upload samples",
        len(pool_samples(downloads)), len(pool_samples(uploads)),
    )
    return build_report(latency, downloads, uploads, locations, trace)
