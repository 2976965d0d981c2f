"""Server location and client trace metadata from the speed-test host."""

from __future__ import annotations

import logging
from typing import Any, Optional

import dns.exception
import httpx

from cfspeed.config import LOCATIONS_PATH, TRACE_PATH, USER_AGENT
from cfspeed.engine import PinnedTransport, build_transport
from cfspeed.errors import NetworkError
from cfspeed.models import LocationTable, MeasurementConfig, TraceInfo

logger = logging.getLogger(__name__)


async def _get(
    config: MeasurementConfig,
    path: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """GET *path* on the configured host and raise on HTTP errors.

    Without an injected *transport* the host is resolved and pinned the
    same way as the probes, so ``-4``/``-6`` and ``--dns-server`` describe
    the same path that was measured.
    """
    if transport is None:
        transport = build_transport(config, config.host)
        if isinstance(transport, PinnedTransport):
            try:
                await transport.pin(config.host, config)
            except dns.exception.DNSException as exc:
                raise NetworkError(f"could not resolve {config.host}: {exc}") from exc

    async with httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(config.timeout),
        http2=config.http2,
        follow_redirects=True,
        trust_env=False,
    ) as client:
        resp = await client.get(
            f"https://{config.host}{path}",
            headers={"User-Agent": USER_AGENT},
        )
        resp.raise_for_status()
        return resp


def parse_locations(data: Any) -> LocationTable:
    """Build an IATA -> city map from the ``/locations`` JSON list.

    Entries without an ``iata`` code are skipped.
    """
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON list of locations, got {type(data).__name__}")

    table: LocationTable = {}
    for entry in data:
        if not isinstance(entry, dict):
            continue
        code = entry.get("iata")
        if not code:
            continue
        table[str(code)] = str(entry.get("city", ""))
    return table


def parse_trace(body: str) -> TraceInfo:
    """Parse the ``key=value`` lines of a ``/cdn-cgi/trace`` body.

    Lines that do not split into exactly one key and one value are ignored.
    """
    info: TraceInfo = {}
    for line in body.splitlines():
        parts = line.strip().split("=")
        if len(parts) == 2:
            info[parts[0]] = parts[1]
    return info


async def fetch_locations(
    config: MeasurementConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LocationTable:
    """Fetch the facility-code -> city table."""
    resp = await _get(config, LOCATIONS_PATH, transport)
    table = parse_locations(resp.json())
    logger.debug("Loaded %d server locations", len(table))
    return table


async def fetch_trace(
    config: MeasurementConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TraceInfo:
    """Fetch the trace blob describing the serving colo and the client."""
    resp = await _get(config, TRACE_PATH, transport)
    info = parse_trace(resp.text)
    logger.debug("Trace: colo=%s loc=%s", info.get("colo"), info.get("loc"))
    return info
