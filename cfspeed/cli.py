"""CLI entry point and orchestration for cfspeed."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

import click
from rich.logging import RichHandler

from cfspeed import __version__
from cfspeed.config import DEFAULT_HOST, DEFAULT_TIMEOUT
from cfspeed.models import MeasurementConfig, Report


@click.command()
@click.option("--host", default=DEFAULT_HOST, help="Speed-test host", show_default=True)
@click.option("-t", "--timeout", default=DEFAULT_TIMEOUT, help="Per-request timeout in seconds", show_default=True)
@click.option("--http2/--http1", default=False, help="Negotiate HTTP/2 for probes", show_default=True)
@click.option("--dns-server", default=None, help="Custom DNS server (e.g., 1.1.1.1)")
@click.option("-4", "--ipv4-only", is_flag=True, help="Force IPv4")
@click.option("-6", "--ipv6-only", is_flag=True, help="Force IPv6")
@click.option("--json", "json_output", is_flag=True, help="Output JSON to stdout")
@click.option("--csv", "csv_output", is_flag=True, help="Output CSV to stdout")
@click.option("-o", "--output", default=None, help="Write results to file")
@click.option("-q", "--quiet", is_flag=True, help="Suppress progress and warnings, show only results")
@click.option("-v", "--verbose", is_flag=True, help="Log every probe")
@click.version_option(version=__version__)
def main(
    host: str,
    timeout: float,
    http2: bool,
    dns_server: str | None,
    ipv4_only: bool,
    ipv6_only: bool,
    json_output: bool,
    csv_output: bool,
    output: str | None,
    quiet: bool,
    verbose: bool,
) -> None:
    """cfspeed — network speed test against speed.cloudflare.com.

    Measures latency and jitter with small probes, then download and
    upload throughput over increasing payload sizes.
    """
    from cfspeed.display import render_error, render_warning

    if ipv4_only and ipv6_only:
        raise click.UsageError("-4 and -6 are mutually exclusive")

    _setup_logging(verbose=verbose, quiet=quiet)

    interactive = not quiet and not json_output and not csv_output

    # Check for proxy warnings
    if interactive:
        for var in ("HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy"):
            if os.environ.get(var):
                render_warning(f"Proxy settings ({var}) are ignored; probes connect directly")
                break

    config = MeasurementConfig(
        host=host,
        timeout=timeout,
        http2=http2,
        dns_server=dns_server,
        ipv4_only=ipv4_only,
        ipv6_only=ipv6_only,
        verbose=verbose,
        quiet=quiet,
        json_output=json_output,
        csv_output=csv_output,
        output_file=output,
    )

    from cfspeed.errors import SpeedTestError

    try:
        report = asyncio.run(_run(config, show_progress=interactive))
    except KeyboardInterrupt:
        if interactive:
            from cfspeed.display import console
            console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except SpeedTestError as exc:
        render_error(str(exc))
        sys.exit(1)

    _handle_output(report, config)


def _setup_logging(verbose: bool, quiet: bool) -> None:
    from cfspeed.display import err_console

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    handler = RichHandler(console=err_console, show_path=False, show_time=verbose)
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)
    # Keep transport chatter out of --verbose output
    for noisy in ("httpx", "httpcore", "hpack"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


async def _run(config: MeasurementConfig, show_progress: bool) -> Report:
    """Main async orchestration."""
    from cfspeed.display import ProgressTracker, render_header
    from cfspeed.report import run_speedtest

    progress = None
    if show_progress:
        render_header(config.host)
        progress = ProgressTracker()
        progress.start()

    try:
        return await run_speedtest(
            config,
            progress_callback=progress.update if progress else None,
        )
    finally:
        if progress:
            progress.finish()


def _handle_output(report: Report, config: MeasurementConfig) -> None:
    """Handle output rendering and export."""
    from cfspeed.display import ConsolePresenter, console
    from cfspeed.export import export_csv, export_json, write_to_file

    if config.json_output or config.csv_output:
        content = export_json(report) if config.json_output else export_csv(report)
        if config.output_file:
            write_to_file(content, config.output_file)
            if not config.quiet:
                console.print(f"[dim]Results written to {config.output_file}[/dim]")
        else:
            click.echo(content)
        return

    ConsolePresenter().render(report.rows())

    # Also write to file if -o specified (plain mode writes JSON)
    if config.output_file:
        write_to_file(export_json(report), config.output_file)
        console.print(f"\n[dim]Results written to {config.output_file}[/dim]")


if __name__ == "__main__":
    main()
