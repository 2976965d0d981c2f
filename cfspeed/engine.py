"""Core measurement engine for cfspeed.

Every probe is one HTTPS request on a fresh connection, instrumented to
capture the request lifecycle:
  started -> DNS -> TCP connect -> TLS -> first byte -> body drained

DNS is resolved with dnspython and the connection pinned to the resolved
address; TCP/TLS/first-byte timestamps come from httpx's ``trace``
extension.  Timestamps use time.perf_counter() for monotonic,
high-resolution measurements.

Measurement phases run probes strictly one after another: a single
request in flight, one iteration at a time.  A failed iteration is
logged and dropped; it never aborts the phase.

Public API:
    Prober            -- issue timed download / upload requests
    measure_latency   -- 20 small downloads -> latency samples (ms)
    measure_download  -- one download tier -> throughput samples (Mbps)
    measure_upload    -- one upload tier -> throughput samples (Mbps)
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import ssl
import time
from typing import Awaitable, Callable, Optional, Sequence

import dns.asyncresolver
import dns.exception
import dns.rdatatype
import httpx

from cfspeed.config import (
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_PATH,
    DOWNLOAD_TIERS,
    LATENCY_TIER,
    UPLOAD_FILLER,
    UPLOAD_PATH,
    UPLOAD_TIERS,
    USER_AGENT,
)
from cfspeed.errors import NetworkError, RequestBuildError
from cfspeed.models import MeasurementConfig, PhaseResult, RequestTiming, TestTier

logger = logging.getLogger(__name__)

# Type alias for the progress callback.
# Signature: (tier_label, completed, total, sample_or_none)
ProgressCallback = Callable[[str, int, int, Optional[float]], None]

# httpcore trace events -> RequestTiming fields
_TRACE_EVENTS = {
    "connection.connect_tcp.complete": "connect_done",
    "connection.start_tls.complete": "tls_done",
    "http11.receive_response_headers.complete": "first_byte",
    "http2.receive_response_headers.complete": "first_byte",
}


# ---------------------------------------------------------------------------
# Server-Timing header
# ---------------------------------------------------------------------------

def parse_server_timing(value: Optional[str]) -> float:
    """Return the ``dur=`` value (ms) from the second field of a Server-Timing header.

    ``"cfRequestDuration;dur=12.5"`` -> 12.5.  Anything unexpected yields 0.0.
    """
    if not value:
        return 0.0
    parts = value.split(";")
    if len(parts) < 2:
        return 0.0
    dur_part = parts[1].strip()
    if not dur_part.startswith("dur="):
        return 0.0
    try:
        return float(dur_part[4:])
    except ValueError:
        return 0.0


# ---------------------------------------------------------------------------
# DNS resolution
# ---------------------------------------------------------------------------

async def _resolve_dns(hostname: str, config: MeasurementConfig) -> str:
    """Resolve *hostname* via dnspython and return the first address.

    Respects ``config.dns_server``, ``config.ipv4_only`` and
    ``config.ipv6_only``.  Falls back from A to AAAA when the preferred
    record type yields no results.

    Raises
    ------
    dns.exception.DNSException
        On resolution failure.
    RequestBuildError
        ``config.dns_server`` is not a usable nameserver.
    """
    # A custom server replaces the system configuration entirely.
    resolver = dns.asyncresolver.Resolver(configure=not config.dns_server)
    resolver.lifetime = config.timeout

    if config.dns_server:
        try:
            resolver.nameservers = [config.dns_server]
        except ValueError as exc:
            raise RequestBuildError(f"invalid DNS server {config.dns_server!r}: {exc}") from exc

    if config.ipv6_only:
        rdtypes = [dns.rdatatype.AAAA]
    elif config.ipv4_only:
        rdtypes = [dns.rdatatype.A]
    else:
        rdtypes = [dns.rdatatype.A, dns.rdatatype.AAAA]

    last_error: Exception | None = None
    for rdtype in rdtypes:
        try:
            answer = await resolver.resolve(hostname, rdtype)
            return str(answer[0])
        except dns.exception.DNSException as exc:
            last_error = exc
            continue

    raise last_error  # type: ignore[misc]


def _is_ip_literal(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


class PinnedTransport(httpx.AsyncHTTPTransport):
    """Transport that pins the connection to a pre-resolved IP.

    Rewrites the request URL to target the IP while preserving the
    original hostname via the ``sni_hostname`` extension so that TLS SNI
    and certificate validation work correctly.  The address is set with
    ``pin()`` after construction so the transport can be built ahead of
    the timed window.
    """

    def __init__(self, target_ip: Optional[str] = None, **kwargs):
        self.target_ip = target_ip
        super().__init__(**kwargs)

    async def pin(self, hostname: str, config: MeasurementConfig) -> str:
        self.target_ip = await _resolve_dns(hostname, config)
        logger.debug("Resolved %s to %s", hostname, self.target_ip)
        return self.target_ip

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if self.target_ip is None:
            raise httpx.ConnectError("transport used before pin()", request=request)
        url = request.url
        request = httpx.Request(
            method=request.method,
            url=url.copy_with(host=self.target_ip),
            headers=request.headers,
            stream=request.stream,
            extensions={**request.extensions, "sni_hostname": url.host},
        )
        return await super().handle_async_request(request)


def build_transport(
    config: MeasurementConfig,
    hostname: str,
    ssl_context: Optional[ssl.SSLContext] = None,
) -> httpx.AsyncHTTPTransport:
    """Transport for *hostname*: plain for IP literals, pinned otherwise.

    A pinned transport must be ``pin()``-ed before use.  Pass a shared
    *ssl_context* to avoid loading the CA bundle per transport.
    """
    verify = ssl_context if ssl_context is not None else True
    if _is_ip_literal(hostname):
        return httpx.AsyncHTTPTransport(http2=config.http2, verify=verify)
    return PinnedTransport(http2=config.http2, verify=verify)


# ---------------------------------------------------------------------------
# Timed request
# ---------------------------------------------------------------------------

class Prober:
    """Issues single instrumented requests against ``config.host``.

    A fresh client (and connection) is used for every request so that
    each probe pays for its own DNS, TCP and TLS setup.  The SSL context
    is created once and shared; the transport is built before ``started``
    so local setup never counts as network time.  Tests may pass
    *transport* (e.g. ``httpx.MockTransport``); it is then used for every
    request and DNS resolution is skipped.
    """

    def __init__(
        self,
        config: MeasurementConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._ssl_context = httpx.create_ssl_context() if transport is None else None

    async def download(self, size: int) -> RequestTiming:
        return await self.request("GET", f"{DOWNLOAD_PATH}?bytes={size}")

    async def upload(self, size: int) -> RequestTiming:
        return await self.request("POST", UPLOAD_PATH, UPLOAD_FILLER * size)

    async def request(self, method: str, path: str, body: bytes = b"") -> RequestTiming:
        """Perform exactly one request and return its timing.

        Raises
        ------
        NetworkError
            DNS, connect, TLS or read failure, or the overall timeout.
        RequestBuildError
            The URL could not be built, or the DNS server is invalid.
        """
        url = f"https://{self.config.host}{path}"
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as exc:
            raise RequestBuildError(f"invalid request URL {url!r}: {exc}") from exc

        timing = RequestTiming()
        try:
            await asyncio.wait_for(
                self._perform(method, parsed, body, timing),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise NetworkError(
                f"{method} {path} timed out after {self.config.timeout:g}s"
            ) from exc
        except (httpx.TransportError, dns.exception.DNSException, OSError) as exc:
            logger.debug("%s %s failed: %r", method, url, exc)
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        return timing

    def _build_transport(self, hostname: str) -> httpx.AsyncBaseTransport:
        if self._transport is not None:
            return self._transport
        return build_transport(self.config, hostname, self._ssl_context)

    async def _perform(
        self,
        method: str,
        url: httpx.URL,
        body: bytes,
        timing: RequestTiming,
    ) -> None:
        async def trace(event_name: str, info: dict) -> None:
            field_name = _TRACE_EVENTS.get(event_name)
            if field_name is not None:
                timing.record(field_name, time.perf_counter())

        headers = {
            "User-Agent": USER_AGENT,
            "Accept-Encoding": "identity",
        }
        if body:
            headers["Content-Length"] = str(len(body))

        transport = self._build_transport(url.host)

        timing.record("started", time.perf_counter())
        if isinstance(transport, PinnedTransport):
            await transport.pin(url.host, self.config)
            timing.record("dns_done", time.perf_counter())

        async with httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(self.config.timeout),
            trust_env=False,
        ) as client:
            request = client.build_request(
                method,
                url,
                headers=headers,
                content=body or None,
                extensions={"trace": trace},
            )
            response = await client.send(request, stream=True)
            try:
                # No-op when the transport already reported the header read.
                timing.record("first_byte", time.perf_counter())
                async for _ in response.aiter_raw(DOWNLOAD_CHUNK_SIZE):
                    pass
                timing.record("body_done", time.perf_counter())
            finally:
                await response.aclose()

        timing.server_processing_ms = parse_server_timing(response.headers.get("Server-Timing"))


# ---------------------------------------------------------------------------
# Sample derivation
# ---------------------------------------------------------------------------

def measure_speed(size: int, seconds: Optional[float]) -> Optional[float]:
    """Throughput in megabits/second, or None for a missing/zero duration."""
    if seconds is None or seconds <= 0:
        return None
    return size * 8 / (seconds * 1e6)


def latency_sample(timing: RequestTiming) -> Optional[float]:
    """TTFB minus the server's own processing time, in milliseconds."""
    ttfb = timing.ttfb_ms
    if ttfb is None:
        return None
    return ttfb - timing.server_processing_ms


def download_sample(size: int, timing: RequestTiming) -> Optional[float]:
    return measure_speed(size, timing.transfer_seconds)


def upload_sample(size: int, timing: RequestTiming) -> Optional[float]:
    # Upload speed is based on the server-reported duration, not wall clock.
    return measure_speed(size, timing.server_processing_ms / 1000)


def _latency_from(size: int, timing: RequestTiming) -> Optional[float]:
    return latency_sample(timing)


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

async def run_phase(
    tier: TestTier,
    probe: Callable[[int], Awaitable[RequestTiming]],
    derive: Callable[[int, RequestTiming], Optional[float]],
    progress_callback: ProgressCallback | None = None,
) -> PhaseResult:
    """Run ``tier.iterations`` probes sequentially and collect one sample each.

    A ``NetworkError`` or an underivable timing drops the iteration;
    ``RequestBuildError`` propagates.
    """
    result = PhaseResult(tier=tier)

    for i in range(tier.iterations):
        sample: Optional[float] = None
        try:
            timing = await probe(tier.size)
        except NetworkError as exc:
            logger.warning(
                "%s iteration %d/%d failed: %s", tier.label, i + 1, tier.iterations, exc,
            )
        else:
            sample = derive(tier.size, timing)
            if sample is None:
                logger.warning(
                    "%s iteration %d/%d returned no usable timing",
                    tier.label, i + 1, tier.iterations,
                )

        if sample is None:
            result.failures += 1
        else:
            result.samples.append(sample)
            logger.debug("%s iteration %d/%d: %.3f", tier.label, i + 1, tier.iterations, sample)

        if progress_callback:
            progress_callback(tier.label, i + 1, tier.iterations, sample)

    if result.is_empty and tier.iterations > 0:
        logger.warning("All %d %s iterations failed", tier.iterations, tier.label)

    return result


async def measure_latency(
    prober: Prober,
    tier: TestTier | None = None,
    progress_callback: ProgressCallback | None = None,
) -> PhaseResult:
    """Latency samples (ms) from small downloads."""
    tier = tier or prober.config.latency_tier or LATENCY_TIER
    return await run_phase(tier, prober.download, _latency_from, progress_callback)


async def measure_download(
    prober: Prober,
    tier: TestTier,
    progress_callback: ProgressCallback | None = None,
) -> PhaseResult:
    """Download throughput samples (Mbps) for one tier."""
    return await run_phase(tier, prober.download, download_sample, progress_callback)


async def measure_upload(
    prober: Prober,
    tier: TestTier,
    progress_callback: ProgressCallback | None = None,
) -> PhaseResult:
    """Upload throughput samples (Mbps) for one tier."""
    return await run_phase(tier, prober.upload, upload_sample, progress_callback)


async def run_download_tiers(
    prober: Prober,
    tiers: Sequence[TestTier] | None = None,
    progress_callback: ProgressCallback | None = None,
) -> list[PhaseResult]:
    tiers = tiers or prober.config.download_tiers or DOWNLOAD_TIERS
    return [await measure_download(prober, tier, progress_callback) for tier in tiers]


async def run_upload_tiers(
    prober: Prober,
    tiers: Sequence[TestTier] | None = None,
    progress_callback: ProgressCallback | None = None,
) -> list[PhaseResult]:
    tiers = tiers or prober.config.upload_tiers or UPLOAD_TIERS
    return [await measure_upload(prober, tier, progress_callback) for tier in tiers]
