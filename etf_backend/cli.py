"""CLI tool for admin operations.

Usage:
    python -m etf_backend.cli init-db
    python -m etf_backend.cli sync-prices
    python -m etf_backend.cli evaluate-alerts [--user-id N] [--dry-run]
    python -m etf_backend.cli serve [--host H] [--port P]
"""

import argparse
import asyncio
import sys

from etf_backend.database import create_db_and_tables, engine
from etf_backend.errors import EtfServiceError
from etf_backend.utils.logging import setup_logging


def init_db():
    create_db_and_tables()
    print("Database tables created.")


def sync_prices():
    """Run one price sync cycle and wait for the portfolio revaluation it starts."""
    from etf_backend.engine.price_sync import run_price_sync_cycle, schedule_revaluation
    from etf_backend.services.price_store import get_price_store

    async def _run():
        result = await run_price_sync_cycle(revalue=False)
        # A one-shot process would exit before a background task finished
        await schedule_revaluation(get_price_store())
        return result

    create_db_and_tables()
    try:
        result = asyncio.run(_run())
    except EtfServiceError as e:
        print(f"Sync failed: {e.message}")
        sys.exit(1)

    for symbol, price in sorted(result.prices.items()):
        print(f"{symbol:<6} {price:>14.4f}")
    print(f"Synced at {result.timestamp.isoformat()}")


def evaluate(user_id: int | None, dry_run: bool):
    from etf_backend.services.alerts import evaluate_alerts

    create_db_and_tables()
    result = evaluate_alerts(engine, user_id=user_id, dry_run=dry_run)
    suffix = " (dry run)" if dry_run else ""
    print(f"Evaluated {result.evaluated} alerts, triggered {result.triggered}{suffix}")


def serve(host: str, port: int):
    import uvicorn

    uvicorn.run("etf_backend.main:app", host=host, port=port)


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(prog="python -m etf_backend.cli")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create database tables")
    commands.add_parser("sync-prices", help="Run one price sync cycle")

    evaluate_cmd = commands.add_parser("evaluate-alerts", help="Evaluate active price alerts")
    evaluate_cmd.add_argument("--user-id", type=int, default=None)
    evaluate_cmd.add_argument("--dry-run", action="store_true")

    serve_cmd = commands.add_parser("serve", help="Run the API server")
    serve_cmd.add_argument("--host", default="0.0.0.0")
    serve_cmd.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    setup_logging()

    if args.command == "init-db":
        init_db()
    elif args.command == "sync-prices":
        sync_prices()
    elif args.command == "evaluate-alerts":
        evaluate(args.user_id, args.dry_run)
    elif args.command == "serve":
        serve(args.host, args.port)


if __name__ == "__main__":
    main()
