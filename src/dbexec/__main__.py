"""Command-line entry point: run one command and print its results."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from dbexec import execute as db
from dbexec import execute_async as db_async
from dbexec.config import get_database_url, get_db_path, get_log_level
from dbexec.db.backend import Reader
from dbexec.db.connection import create_async_connection, create_connection
from dbexec.unit import CommandUnit, new_command


def _parse_param(raw: str) -> tuple[str, Any]:
    """Parse ``name=value``; values are read as JSON when they parse, else as text."""
    name, sep, value = raw.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected name=value, got {raw!r}")
    try:
        return name, json.loads(value)
    except json.JSONDecodeError:
        return name, value


def _row_to_dict(reader: Reader) -> dict[str, Any]:
    return {name: reader[i] for i, name in enumerate(reader.keys())}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dbexec", description="Run one SQL command")
    parser.add_argument("sql", help="Command text, with @name placeholders")
    parser.add_argument(
        "-p",
        "--param",
        dest="params",
        action="append",
        type=_parse_param,
        default=[],
        metavar="NAME=VALUE",
        help="Bind a parameter (repeatable)",
    )
    parser.add_argument("--db", help="SQLite path or PostgreSQL URL (default: from environment)")
    parser.add_argument("--timeout", type=float, help="Command timeout in seconds")
    parser.add_argument(
        "--async", dest="use_async", action="store_true", help="Use the async engine"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--exec", dest="mode", action="store_const", const="exec", help="No results")
    mode.add_argument(
        "--scalar", dest="mode", action="store_const", const="scalar", help="Print one value"
    )
    parser.set_defaults(mode="query")
    return parser


def _configure(unit: CommandUnit, args: argparse.Namespace) -> CommandUnit:
    unit.set_params(args.params)
    if args.timeout is not None:
        unit.set_timeout(args.timeout)
    return unit


def _print_result(mode: str, result: Any) -> None:
    if mode == "scalar":
        print(json.dumps(result, default=str))
    elif mode == "query":
        for row in result:
            print(json.dumps(row, default=str))


def _run_sync(args: argparse.Namespace) -> Any:
    conn = create_connection(args.db)
    try:
        unit = _configure(new_command(args.sql, conn), args)
        if args.mode == "exec":
            return db.execute(unit)
        if args.mode == "scalar":
            return db.scalar(unit, lambda value: value)
        return db.query(unit, _row_to_dict)
    finally:
        conn.close()


async def _run_async(args: argparse.Namespace) -> Any:
    conn = create_async_connection(args.db)
    try:
        unit = _configure(new_command(args.sql, conn), args)
        if args.mode == "exec":
            return await db_async.execute(unit)
        if args.mode == "scalar":
            return await db_async.scalar(unit, lambda value: value)
        return await db_async.query(unit, _row_to_dict)
    finally:
        await conn.close()


def main(argv: list[str] | None = None) -> int:
    """Run the dbexec command-line tool."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, get_log_level()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    if args.db is None and not args.use_async and get_database_url():
        logger.warning("DBEXEC_DATABASE_URL is only used by --async; using %s", get_db_path())

    try:
        if args.use_async:
            result = asyncio.run(_run_async(args))
        else:
            result = _run_sync(args)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    _print_result(args.mode, result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
