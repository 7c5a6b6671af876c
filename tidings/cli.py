"""
Tidings CLI: local operations against the record store.

Usage:
    tidings plan "다음주 회의 일정"
    tidings search "meeting next week" --limit 5
    tidings ingest push --title "..." --body "..." [--external-id ID]
    tidings sync-gmail [--token TOKEN] [--full]
    tidings reset-sync email
    tidings stats

Commands:
    plan        Show the structured filter a question plans into.
    search      Rank stored records for a question.
    ingest      Enrich, classify and store one message.
    sync-gmail  Incremental Gmail sync from the persisted cursor.
    reset-sync  Clear a source's sync cursor (next sync is a full sync).
    stats       Record, entity and cache counts.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from tidings.core.config import TidingsConfig
from tidings.core.engine import Tidings
from tidings.errors import InvalidQueryError
from tidings.ingestion.models import RawMessage
from tidings.platform import get_config_dir, get_log_dir

logger = logging.getLogger("Tidings.CLI")

_SOURCES = ("email", "ocr", "push", "sms")


def _configure_logging(level_name: str) -> None:
    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "tidings.log", mode="a", encoding="utf-8")
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.WARNING)
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[file_handler, stream_handler],
    )


def _load_config(config_path: Optional[Path]) -> TidingsConfig:
    """
    Resolution order:
      1. Explicit --config argument
      2. TIDINGS_CONFIG environment variable
      3. config.yaml in the platform config dir, when present
      4. Environment variables only
    """
    if config_path is None and os.environ.get("TIDINGS_CONFIG"):
        config_path = Path(os.environ["TIDINGS_CONFIG"])
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default
    if config_path is not None:
        return TidingsConfig.from_yaml(str(config_path))
    return TidingsConfig.from_env()


def _fmt_ts(ts: Optional[float]) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────

async def cmd_plan(engine: Tidings, args: argparse.Namespace) -> int:
    query_filter = engine.plan_query(args.question)
    payload = {
        "start": query_filter.start,
        "end": query_filter.end,
        "source": query_filter.source,
        "keywords": list(query_filter.keywords),
    }
    if args.json:
        print(json.dumps(payload, ensure_ascii=False))
        return 0
    print(f"Window:   {_fmt_ts(query_filter.start)} .. {_fmt_ts(query_filter.end)}")
    print(f"Source:   {query_filter.source or '-'}")
    print(f"Keywords: {', '.join(query_filter.keywords) or '-'}")
    return 0


async def cmd_search(engine: Tidings, args: argparse.Namespace) -> int:
    try:
        items = await engine.search(args.question, limit=args.limit)
    except InvalidQueryError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    if args.json:
        print(json.dumps([item.model_dump() for item in items], ensure_ascii=False))
        return 0
    if not items:
        print("No matching records.")
        return 0
    for item in items:
        print(f"{item.position}. [{item.source}] {item.title or '(untitled)'}  score={item.score:.3f}  {_fmt_ts(item.timestamp)}")
        preview = " ".join(item.body.split())[:160]
        if preview:
            print(f"   {preview}")
    return 0


async def cmd_ingest(engine: Tidings, args: argparse.Namespace) -> int:
    raw = RawMessage(
        title=args.title or "",
        body=args.body or "",
        external_id=args.external_id,
        timestamp=args.timestamp,
    )
    outcome = await engine.ingest(args.source, raw)
    print(f"{outcome.status.value}: {outcome.record_id or '-'}", end="")
    if outcome.kind:
        print(f" ({outcome.kind}{', classifier failed' if outcome.classifier_failed else ''})", end="")
    print()
    if outcome.error:
        print(f"Error: {outcome.error}", file=sys.stderr)
        return 1
    return 0


async def cmd_sync_gmail(engine: Tidings, args: argparse.Namespace) -> int:
    connector = engine.gmail_connector(access_token=args.token)
    try:
        report = await engine.sync(connector, full=args.full)
    finally:
        await connector.aclose()
    print(
        f"Gmail sync {report.status.value}: new={report.new_count} "
        f"duplicate={report.duplicate_count} failed={report.failed_count}"
    )
    if report.error:
        print(f"Error: {report.error}", file=sys.stderr)
    return 0 if report.ok else 1


async def cmd_reset_sync(engine: Tidings, args: argparse.Namespace) -> int:
    await engine.reset_sync(args.source)
    print(f"Sync cursor cleared for {args.source}.")
    return 0


async def cmd_stats(engine: Tidings, args: argparse.Namespace) -> int:
    stats = await engine.stats()
    if args.json:
        print(json.dumps(stats, ensure_ascii=False))
        return 0
    print("\nTidings Stats")
    print("=" * 50)
    print(f"Records: {stats['records']}")
    for source, count in stats["by_source"].items():
        print(f"  {source:<6} {count}")
    print(f"Contacts: {stats['contacts']}  Events: {stats['events']}  Notes: {stats['notes']}")
    print(f"Event types: {stats['event_types']}")
    print(f"Cached embeddings: {stats['cached_embeddings']}")
    print(f"AI classifier: {'on' if stats['classifier'] else 'off'}")
    return 0


_COMMANDS = {
    "plan": cmd_plan,
    "search": cmd_search,
    "ingest": cmd_ingest,
    "sync-gmail": cmd_sync_gmail,
    "reset-sync": cmd_reset_sync,
    "stats": cmd_stats,
}


async def _run(args: argparse.Namespace) -> int:
    engine = Tidings(_load_config(args.config))
    await engine.initialize()
    try:
        return await _COMMANDS[args.command](engine, args)
    finally:
        await engine.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tidings",
        description="Tidings personal records: ingest, plan and search.",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML config file.")
    parser.add_argument("--log-level", default=None, help="Logging level (default from config).")
    sub = parser.add_subparsers(dest="command")

    plan = sub.add_parser("plan", help="Show the structured filter for a question.")
    plan.add_argument("question")
    plan.add_argument("--json", action="store_true", default=False)

    search = sub.add_parser("search", help="Rank stored records for a question.")
    search.add_argument("question")
    search.add_argument("--limit", type=int, default=None)
    search.add_argument("--json", action="store_true", default=False)

    ingest = sub.add_parser("ingest", help="Store one message.")
    ingest.add_argument("source", choices=_SOURCES)
    ingest.add_argument("--title", default="")
    ingest.add_argument("--body", default="")
    ingest.add_argument("--external-id", default=None)
    ingest.add_argument("--timestamp", type=float, default=None, help="Message time (Unix seconds).")

    sync_gmail = sub.add_parser("sync-gmail", help="Incremental Gmail sync.")
    sync_gmail.add_argument("--token", default=None, help="OAuth access token (default TIDINGS_GMAIL_TOKEN).")
    sync_gmail.add_argument("--full", action="store_true", default=False, help="Clear the cursor first.")

    reset = sub.add_parser("reset-sync", help="Clear a source's sync cursor.")
    reset.add_argument("source", choices=_SOURCES)

    stats = sub.add_parser("stats", help="Record, entity and cache counts.")
    stats.add_argument("--json", action="store_true", default=False)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in _COMMANDS:
        parser.print_help()
        return 1

    _configure_logging(args.log_level or os.environ.get("TIDINGS_LOG_LEVEL", "info"))
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
