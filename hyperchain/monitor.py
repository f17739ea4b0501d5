"""Terminal monitor that polls the status endpoint of a set of nodes."""

from __future__ import annotations

import argparse
import datetime as _dt
import sys
import time
from collections.abc import Iterable, Mapping, Sequence
from contextlib import ExitStack
from typing import Any

import httpx

__all__ = [
    "REQUEST_TIMEOUT",
    "REFRESH_INTERVAL",
    "DEFAULT_NODES",
    "MonitoredNode",
    "shorten_peer_id",
    "format_status_row",
    "format_error_row",
    "render_report",
    "main",
]

REQUEST_TIMEOUT = 4.0
REFRESH_INTERVAL = 5.0
CLEAR_SCREEN = "\x1b[2J\x1b[1;1H"
TITLE = "--- HyperChain Global Testnet Monitor (API) ---"
PEER_ID_TAIL = 12

DEFAULT_NODES: tuple[tuple[str, str], ...] = (
    ("Node 1 (Asia)", "https://192.0.2.11:8080/status"),
    ("Node 2 (US)", "https://192.0.2.12:8080/status"),
    ("Node 3 (EU)", "https://192.0.2.13:8080/status"),
)

_U64_MAX = 2**64 - 1


class MonitoredNode:
    """A named node whose JSON status is fetched over HTTP."""

    def __init__(
        self,
        name: str,
        api_url: str,
        client: httpx.Client | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.name = name
        self.api_url = api_url
        self._owns_client = client is None
        self.client = client if client is not None else httpx.Client(timeout=timeout)

    def fetch_status(self) -> Any:
        """GET the status URL and return the decoded JSON body."""
        response = self.client.get(self.api_url)
        return response.json()

    def close(self) -> None:
        """Close the HTTP client if this node created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "MonitoredNode":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def shorten_peer_id(peer_id: str) -> str:
    """Keep only the last twelve characters of a long peer id, prefixed by '...'."""
    if len(peer_id) > PEER_ID_TAIL:
        return f"...{peer_id[-PEER_ID_TAIL:]}"
    return peer_id


def _status_fields(status: Any) -> tuple[str, int]:
    fields: Mapping[str, Any] = status if isinstance(status, Mapping) else {}
    peer_id = fields.get("peer_id")
    if not isinstance(peer_id, str):
        peer_id = "N/A"
    blocks = fields.get("total_blocks")
    if isinstance(blocks, bool) or not isinstance(blocks, int) or not 0 <= blocks <= _U64_MAX:
        blocks = 0
    return peer_id, blocks


def format_status_row(name: str, status: Any) -> str:
    """One table row for a node that answered with ``status``."""
    peer_id, blocks = _status_fields(status)
    return f"{name:<22} | {shorten_peer_id(peer_id):<20} | {blocks:<15}"


def _describe_error(error: BaseException) -> str:
    if isinstance(error, httpx.TimeoutException):
        return "Request timed out"
    if isinstance(error, httpx.ConnectError):
        return "Connection refused"
    return "API fetch error"


def format_error_row(name: str, error: BaseException) -> str:
    """One table row for a node whose status could not be fetched."""
    return f"{name:<22} | Error: {_describe_error(error)}"


def render_report(nodes: Iterable[MonitoredNode], now: _dt.datetime) -> str:
    """Poll every node and return the full status table as text."""
    lines = [
        TITLE,
        f"{'Node':<22} | {'Peer ID':<20} | {'Total Blocks':<15}",
        f"{'':-<23}|{'':-<22}|{'':-<16}",
    ]
    for node in nodes:
        try:
            status = node.fetch_status()
        except (httpx.HTTPError, ValueError) as exc:
            lines.append(format_error_row(node.name, exc))
        else:
            lines.append(format_status_row(node.name, status))
    lines.append("")
    lines.append(f"Last updated: {now.strftime('%Y-%m-%d %H:%M:%S')}")
    return "\n".join(lines)


def _node_spec(text: str) -> tuple[str, str]:
    name, sep, url = text.partition("=")
    if not sep or not name or not url:
        raise argparse.ArgumentTypeError(f"expected NAME=URL, got {text!r}")
    return name, url


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hyperchain-monitor",
        description="Show the status of testnet nodes, refreshed periodically.",
    )
    parser.add_argument(
        "--node",
        dest="nodes",
        action="append",
        type=_node_spec,
        metavar="NAME=URL",
        help="node to monitor (repeatable); defaults to the built-in testnet list",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=REFRESH_INTERVAL,
        help="seconds between refreshes",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="stop after this many refreshes (default: run until interrupted)",
    )
    args = parser.parse_args(argv)
    if args.interval < 0:
        parser.error("--interval cannot be negative")
    if args.iterations is not None and args.iterations < 1:
        parser.error("--iterations must be at least 1")
    return args


def main(argv: Sequence[str] | None = None) -> int:
    """Run the monitor loop."""
    args = _parse_args(argv)
    specs = args.nodes or list(DEFAULT_NODES)
    with ExitStack() as stack:
        nodes = [stack.enter_context(MonitoredNode(name, url)) for name, url in specs]
        count = 0
        try:
            while True:
                started = time.monotonic()
                sys.stdout.write(CLEAR_SCREEN)
                print(render_report(nodes, _dt.datetime.now()), flush=True)
                count += 1
                if args.iterations is not None and count >= args.iterations:
                    break
                remaining = args.interval - (time.monotonic() - started)
                if remaining > 0:
                    time.sleep(remaining)
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":
    sys.exit(main())