from __future__ import annotations

import argparse
import json
import logging
import os
import socket
from typing import Optional

from prometheus_client import start_http_server
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .client import DEFAULT_SOCKET_PATH, TelemetryClient, TelemetryClientConfig
from .errors import TelemetryError
from .metrics import ExporterMetrics
from .poller import TelemetryPoller

logger = logging.getLogger("dpdk_exporter")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def resolve_host_label(explicit: Optional[str]) -> str:
    if explicit:
        return explicit
    env = os.environ.get("NODE_NAME")
    if env:
        return env
    return socket.gethostname()


def _metrics_table(metrics: ExporterMetrics) -> Table:
    t = Table(title="DPDK telemetry")
    t.add_column("Metric", style="bold")
    t.add_column("Labels")
    t.add_column("Value", justify="right")
    for name, labels, value in metrics.samples():
        t.add_row(name, ", ".join(f"{k}={v}" for k, v in sorted(labels.items())), f"{value:g}")
    return t


def _client_config(args: argparse.Namespace) -> TelemetryClientConfig:
    timeout = args.read_timeout if args.read_timeout > 0 else None
    return TelemetryClientConfig(
        socket_path=args.socket_path,
        connect_attempts=args.connect_attempts,
        retry_delay_s=args.retry_delay,
        read_timeout_s=timeout,
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dpdk_exporter")
    p.add_argument("--socket-path", default=DEFAULT_SOCKET_PATH)
    p.add_argument("--connect-attempts", default=5, type=int)
    p.add_argument("--retry-delay", default=10.0, type=float, help="Seconds between connect attempts")
    p.add_argument("--read-timeout", default=10.0, type=float, help="Per-read deadline in seconds, 0 disables")
    p.add_argument("--log-level", default="INFO")

    sub = p.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="Poll telemetry and serve /metrics")
    serve.add_argument("--hostname", default="", help="Hostname to use as node_name label")
    serve.add_argument("--poll-interval", default=20.0, type=float, help="Polling interval in seconds")
    serve.add_argument("--listen-addr", default="0.0.0.0")
    serve.add_argument("--port", default=9064, type=int)
    serve.add_argument("--no-virtsvc", action="store_true", help="Skip the virtsvc port usage query")

    once = sub.add_parser("once", help="Poll once and print the resulting series")
    once.add_argument("--hostname", default="")
    once.add_argument("--no-virtsvc", action="store_true")

    query = sub.add_parser("query", help="Send one raw telemetry command")
    query.add_argument("command", help="e.g. /ethdev/list or /ethdev/xstats,0")

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    console = Console()
    _setup_logging(args.log_level)

    client = TelemetryClient(_client_config(args))
    try:
        client.connect()

        if args.cmd == "query":
            raw = client.request(args.command)
            text = raw.decode("utf-8", errors="replace")
            try:
                console.print_json(text)
            except json.JSONDecodeError:
                console.print(text, markup=False)
            return 0

        host = resolve_host_label(args.hostname)
        logger.info("Hostname: %s", host)
        metrics = ExporterMetrics()
        poller = TelemetryPoller(client, metrics, host, include_virtsvc=not args.no_virtsvc)

        if args.cmd == "once":
            poller.poll_once()
            console.print(_metrics_table(metrics))
            return 0

        start_http_server(args.port, addr=args.listen_addr, registry=metrics.registry)
        logger.info("Serving /metrics on %s:%d", args.listen_addr, args.port)
        poller.run(args.poll_interval)
        return 0
    except TelemetryError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        return 0
    finally:
        client.close()


if __name__ == "__main__":
    raise SystemExit(main())
