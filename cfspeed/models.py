"""Data models for cfspeed."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

# IATA facility code -> city name, as served by /locations
LocationTable = dict[str, str]

# key=value pairs from /cdn-cgi/trace (colo, ip, loc, ...)
TraceInfo = dict[str, str]

_TIMING_FIELDS = ("started", "dns_done", "connect_done", "tls_done", "first_byte", "body_done")


def _span_ms(start: Optional[float], end: Optional[float]) -> Optional[float]:
    if start is None or end is None:
        return None
    return (end - start) * 1000.0


@dataclass
class RequestTiming:
    """Lifecycle timestamps for one instrumented request.

    Timestamps are ``time.perf_counter()`` seconds.  A field left at
    ``None`` means the event never fired (e.g. no TLS handshake on a
    reused connection), which is not the same as a zero duration.
    """

    started: Optional[float] = None
    dns_done: Optional[float] = None
    connect_done: Optional[float] = None
    tls_done: Optional[float] = None
    first_byte: Optional[float] = None
    body_done: Optional[float] = None
    server_processing_ms: float = 0.0

    def record(self, name: str, when: float) -> bool:
        """Set timestamp *name* to *when* unless it is already set.

        Returns True when the field was written.
        """
        if name not in _TIMING_FIELDS:
            raise ValueError(f"Unknown timing field: {name!r}")
        if getattr(self, name) is not None:
            return False
        setattr(self, name, when)
        return True

    @property
    def dns_ms(self) -> Optional[float]:
        return _span_ms(self.started, self.dns_done)

    @property
    def connect_ms(self) -> Optional[float]:
        return _span_ms(self.dns_done or self.started, self.connect_done)

    @property
    def tls_ms(self) -> Optional[float]:
        return _span_ms(self.connect_done, self.tls_done)

    @property
    def ttfb_ms(self) -> Optional[float]:
        return _span_ms(self.started, self.first_byte)

    @property
    def transfer_seconds(self) -> Optional[float]:
        if self.first_byte is None or self.body_done is None:
            return None
        return self.body_done - self.first_byte


@dataclass(frozen=True)
class TestTier:
    """One measurement tier: payload size and number of iterations."""

    __test__ = False  # not a pytest test class

    label: str
    size: int
    iterations: int

    @property
    def bits(self) -> int:
        return self.size * 8


@dataclass
class PhaseResult:
    """Ordered samples collected by one tier of a measurement phase."""

    tier: TestTier
    samples: list[float] = field(default_factory=list)
    failures: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.samples

    @property
    def median(self) -> float:
        from cfspeed.stats import median

        return median(self.samples)


@dataclass
class LatencyStats:
    """Aggregated latency statistics (milliseconds)."""

    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    median: float = 0.0
    jitter: float = 0.0
    count: int = 0

    def as_list(self) -> list[float]:
        return [self.min, self.max, self.avg, self.median, self.jitter]


@dataclass(frozen=True)
class TierSpeed:
    """Median throughput of one download tier."""

    label: str
    mbps: float
    samples: int = 0


@dataclass(frozen=True)
class ReportRow:
    """A single presentable value: label, value, unit and category."""

    label: str
    value: object
    unit: str = ""
    category: str = "info"
    precision: int = 2

    @property
    def formatted(self) -> str:
        if isinstance(self.value, float):
            text = f"{self.value:.{self.precision}f}"
        else:
            text = str(self.value)
        return f"{text} {self.unit}" if self.unit else text


@dataclass(frozen=True)
class Report:
    """Final result of a speed-test run."""

    colo: str = ""
    city: str = ""
    ip: str = ""
    loc: str = ""
    latency: LatencyStats = field(default_factory=LatencyStats)
    download_tiers: tuple[TierSpeed, ...] = ()
    download_mbps: float = 0.0
    upload_mbps: float = 0.0
    timestamp: Optional[str] = None

    @property
    def latency_ms(self) -> float:
        return self.latency.median

    @property
    def jitter_ms(self) -> float:
        return self.latency.jitter

    @property
    def location(self) -> str:
        return f"{self.city} ({self.colo})"

    @property
    def client(self) -> str:
        return f"{self.ip} ({self.loc})"

    def rows(self) -> list[ReportRow]:
        rows = [
            ReportRow("Server location", self.location),
            ReportRow("Your IP", self.client),
            ReportRow("Latency", self.latency_ms, "ms", "latency"),
            ReportRow("Jitter", self.jitter_ms, "ms", "latency"),
        ]
        for tier in self.download_tiers:
            rows.append(ReportRow(f"{tier.label} speed", tier.mbps, "Mbps", "tier"))
        rows.append(ReportRow("Download speed", self.download_mbps, "Mbps", "speed"))
        rows.append(ReportRow("Upload speed", self.upload_mbps, "Mbps", "speed"))
        return rows


@dataclass
class MeasurementConfig:
    """Configuration for a measurement run."""

    host: str = "speed.cloudflare.com"
    timeout: float = 30.0
    http2: bool = False
    dns_server: Optional[str] = None
    ipv4_only: bool = False
    ipv6_only: bool = False
    latency_tier: Optional[TestTier] = None  # None = config.LATENCY_TIER
    download_tiers: Optional[tuple[TestTier, ...]] = None
    upload_tiers: Optional[tuple[TestTier, ...]] = None
    verbose: bool = False
    quiet: bool = False
    json_output: bool = False
    csv_output: bool = False
    output_file: Optional[str] = None
