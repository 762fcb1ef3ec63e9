#!/usr/bin/env python3
"""
ProfileHub -- account registration and login backend.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000 --reload
  python main.py stats
  python main.py stats --days 14 --json
  python main.py accounts
  python main.py accounts --limit 20 --offset 40 --json

Configuration comes from the environment / .env (see core/config.py).
stats and accounts read the database directly and never write.
"""

import argparse
import json
from typing import Optional

from accounts import analytics
from accounts.store import AccountStore
from core.config import Settings, get_settings


def _print_stats(store: AccountStore, days: int, as_json: bool) -> None:
    summary = analytics.registration_summary(store)
    demo = analytics.demographics(store)
    trend = analytics.registration_trend(store, days=days)

    if as_json:
        print(json.dumps({"summary": summary, "demographics": demo, "registrations": trend}, indent=2))
        return

    print("\nProfileHub -- Account statistics")
    print("-" * 40)
    print(f"  Total accounts      {summary['total']}")
    print(f"  Last 24 hours       {summary['last_24h']}")
    print(f"  Last 7 days         {summary['last_7d']}")
    print(f"  Last 30 days        {summary['last_30d']}")
    print(f"  Profile complete    {summary['profile_complete']}")
    for provenance, n in summary["by_provenance"].items():
        print(f"  {provenance:<19} {n}")

    print("\n  Gender")
    for gender, n in demo["gender"].items():
        print(f"    {gender:<19} {n}")
    print("\n  Age")
    for bucket, n in demo["age"].items():
        print(f"    {bucket:<19} {n}")

    print(f"\n  Registrations, last {days} day(s)")
    for point in trend:
        print(f"    {point['date']}  {point['count']}")
    print()


def _print_accounts(store: AccountStore, limit: int, offset: int, as_json: bool) -> None:
    accounts = store.list_accounts(limit=limit, offset=offset)
    if as_json:
        rows = [
            {
                "id": a.id,
                "email": a.email,
                "name": a.name,
                "provenance": a.provenance.value,
                "profile_complete": a.profile_complete,
                "created_at": a.created_at,
            }
            for a in accounts
        ]
        print(json.dumps(rows, indent=2))
        return

    if not accounts:
        print("  No accounts.")
        return
    for a in accounts:
        status = "complete" if a.profile_complete else "incomplete"
        print(f"  {a.created_at[:19]}  {a.id}  {a.email:<32} {a.provenance.value:<9} {status}")


def main(argv: Optional[list[str]] = None, settings: Optional[Settings] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="profilehub",
        description="Account registration, login and profile backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py stats --days 7
  python main.py accounts --limit 10 --json
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")

    stats = sub.add_parser("stats", help="Print registration and demographic statistics")
    stats.add_argument(
        "--days",
        type=int,
        default=30,
        help=f"Days of daily registration counts to show, 1-{analytics.MAX_TREND_DAYS} (default: 30)",
    )
    stats.add_argument("--json", action="store_true", help="Output structured JSON")

    listing = sub.add_parser("accounts", help="List accounts, newest first")
    listing.add_argument("--limit", type=int, default=50, help="Maximum rows (default: 50)")
    listing.add_argument("--offset", type=int, default=0, help="Rows to skip (default: 0)")
    listing.add_argument("--json", action="store_true", help="Output structured JSON")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    if args.command == "serve":
        import uvicorn

        uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
        return

    if args.command == "stats" and not 1 <= args.days <= analytics.MAX_TREND_DAYS:
        parser.error(f"--days must be between 1 and {analytics.MAX_TREND_DAYS}")

    settings = settings or get_settings()
    store = AccountStore(settings.database_url)
    try:
        if args.command == "stats":
            _print_stats(store, args.days, args.json)
        else:
            _print_accounts(store, args.limit, args.offset, args.json)
    finally:
        store.close()


if __name__ == "__main__":
    main()
