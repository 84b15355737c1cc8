#!/usr/bin/env python3
"""CLI script to run partner client synchronization.

Usage:
    uv run python scripts/run_partner_sync.py --init
    uv run python scripts/run_partner_sync.py --code 41
    uv run python scripts/run_partner_sync.py --all
    uv run python scripts/run_partner_sync.py --status
    uv run python scripts/run_partner_sync.py --reset 41

Connects directly to the database using DATABASE_URL from environment or .env file,
and to the partner API using the PARTNER_* settings. Prints each result as JSON.
Exits non-zero if the operation failed.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Ensure project root is on sys.path so we can import src.partner_sync
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def run(args: argparse.Namespace) -> bool:
    """Run the requested operation. Returns True on success."""
    from src.partner_sync.api.middleware.logging import configure_structlog
    from src.partner_sync.config import get_settings
    from src.partner_sync.core.database import close_db, init_db
    from src.partner_sync.errors import ConfigError
    from src.partner_sync.schemas.results import ServiceResult
    from src.partner_sync.sync.service import build_service

    configure_structlog()
    await init_db()

    try:
        service = build_service(get_settings())
        if args.init:
            result = await service.initialize_catalog()
        elif args.code:
            result = await service.sync_organization(args.code)
        elif args.all:
            result = await service.sync_all()
        elif args.status:
            result = await service.get_sync_status()
        else:
            result = await service.reset_organization(args.reset)
    except ConfigError as exc:
        result = ServiceResult(success=False, error=exc.to_error())
    finally:
        await close_db()

    print(json.dumps(result.model_dump(mode="json", exclude_none=True), indent=2))
    return result.success


def main() -> None:
    parser = argparse.ArgumentParser(description="Synchronize partner clients into local records")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--init", action="store_true", help="Register catalog organizations as pending")
    group.add_argument("--code", default=None, help="Sync one organization by partner code (e.g., 41)")
    group.add_argument("--all", action="store_true", help="Sync every catalog organization in order")
    group.add_argument("--status", action="store_true", help="Show sync status of every organization")
    group.add_argument("--reset", metavar="CODE", default=None, help="Delete synced clients and reset to pending")
    args = parser.parse_args()

    ok = asyncio.run(run(args))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
