"""cfspeed — latency, jitter and throughput against speed.cloudflare.com."""

__version__ = "0.1.0"
