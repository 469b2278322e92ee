#!/usr/bin/env python3
"""
Order Board - Main Entry Point

Usage:
    orderboard watch                    # Poll today's orders and print the board on every change
    orderboard snapshot                 # Fetch once and print the board
    orderboard watch --interval 15      # Poll every 15 seconds
    orderboard --help                   # Show help
"""

import argparse
import asyncio
import sys
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from orderboard.api_client import OrderServiceClient
from orderboard.config import BoardConfig
from orderboard.controller import BoardController
from orderboard.logging_config import setup_logging
from orderboard.models import COLUMNS, Column
from orderboard.store import BoardStore, Urgency, order_total, status_age


COLUMN_TITLES = {
    Column.CREATED: "🆕 Created",
    Column.DELIVERING: "🚚 Out for Delivery",
    Column.COMPLETED: "✅ Completed",
}

URGENCY_STYLES = {
    Urgency.NORMAL: "dim",
    Urgency.WARNING: "yellow",
    Urgency.DANGER: "bold red",
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="orderboard",
        description="Order Board - live view of today's orders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  orderboard watch                              Follow the board, redraw on change
  orderboard snapshot                           Print the board once
  orderboard watch --server-url URL --token T   Use another order service

Environment:
  ORDERBOARD_API_URL, ORDERBOARD_AUTH_TOKEN, ORDERBOARD_POLL_INTERVAL and the
  other ORDERBOARD_* variables override ~/.orderboard/config.json.
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    watch_parser = subparsers.add_parser("watch", help="Poll and print the board on every change")
    watch_parser.add_argument(
        "--interval",
        type=float,
        help="Polling interval in seconds (default: 60)"
    )
    subparsers.add_parser("snapshot", help="Fetch once and print the board")

    parser.add_argument(
        "--server-url",
        type=str,
        help="Order service base URL (default: http://localhost:4000/api)"
    )
    parser.add_argument(
        "--token", "-t",
        type=str,
        help="Bearer token for the order service"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to config file"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit structured JSON logs"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    return parser


def build_config(args: argparse.Namespace) -> BoardConfig:
    config = BoardConfig.load_default()
    if args.config:
        config.load_from_file(args.config)
    if args.server_url:
        config.api_base_url = args.server_url
    if args.token:
        config.auth_token = args.token
    if getattr(args, "interval", None):
        config.poll_interval = args.interval
    if args.json_logs:
        config.log_json = True
    if args.verbose:
        config.log_level = "DEBUG"
    return config


def render_board(store: BoardStore) -> Table:
    """Three-column table of the current board"""
    counts = store.counts()
    table = Table(show_lines=False, expand=True)
    for column in COLUMNS:
        table.add_column(f"{COLUMN_TITLES[column]} ({counts[column]})")

    cells = {column: [] for column in COLUMNS}
    for column in COLUMNS:
        for order in store.visible_orders(column):
            line = f"#{escape(order.id)} {escape(order.customer_name or '-')}"
            if order.driver_name:
                line += f" [cyan]{escape(order.driver_name)}[/cyan]"
            total = order_total(order)
            if total:
                line += f" {total:.2f}"
            age = status_age(order)
            if age is not None and column != Column.COMPLETED:
                line += f" [{URGENCY_STYLES[age.urgency]}]{age.minutes}m[/{URGENCY_STYLES[age.urgency]}]"
            cells[column].append(line)

    depth = max((len(lines) for lines in cells.values()), default=0)
    for row in range(depth):
        table.add_row(*(cells[column][row] if row < len(cells[column]) else "" for column in COLUMNS))
    return table


async def run_watch(config: BoardConfig, console: Console) -> None:
    def on_session_invalidated(status_code: int, endpoint: str) -> None:
        console.print(f"[red]✗ Session expired ({status_code} from {endpoint}). Login again and pass --token.[/red]")

    async with OrderServiceClient(config, on_session_invalidated=on_session_invalidated) as client:
        board = BoardController(config, client=client, on_change=lambda b: console.print(render_board(b.store)))
        async with board:
            console.print(f"[dim]Watching {config.api_base_url} every {config.poll_interval:g}s, Ctrl+C to stop[/dim]")
            await asyncio.Event().wait()


async def run_snapshot(config: BoardConfig, console: Console) -> int:
    async with OrderServiceClient(config) as client:
        board = BoardController(config, client=client)
        try:
            outcome = await board.refresh(force=True)
        finally:
            await board.close()
    if outcome.error is not None:
        console.print(f"[red]✗ {outcome.error.message}[/red]")
        return 1
    console.print(render_board(board.store))
    return 0


def main(argv: Optional[list] = None):
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    config = build_config(args)
    setup_logging(config)
    console = Console()

    try:
        if args.command == "watch":
            asyncio.run(run_watch(config, console))
        elif args.command == "snapshot":
            sys.exit(asyncio.run(run_snapshot(config, console)))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
        sys.exit(0)


if __name__ == "__main__":
    main()
