#!/usr/bin/env python3
"""Generate monthly dues charges from a start period through the current month."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from duesledger.config import SessionLocal, settings  # noqa: E402
from duesledger.core.errors import LedgerError  # noqa: E402
from duesledger.core.logging import configure_logging  # noqa: E402
from duesledger.services.charges import generate_for_period, generate_range  # noqa: E402
from duesledger.services.ledger_store import SqlLedgerStore, SqlMemberDirectory  # noqa: E402
from duesledger.services.periods import SystemClock, parse_period  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--period", type=parse_period, help="Generate a single period (YYYY-MM)")
    parser.add_argument(
        "--start",
        type=parse_period,
        default=settings.default_start_period,
        help="First period of the backfill (YYYY-MM)",
    )
    parser.add_argument("--actor", default="scheduler", help="Recorded as the generating user")
    args = parser.parse_args()

    configure_logging(settings.log_level.upper(), json_logs=settings.json_logs)  # type: ignore[arg-type]
    store = SqlLedgerStore(SessionLocal)
    directory = SqlMemberDirectory(SessionLocal)
    clock = SystemClock(settings.timezone)
    try:
        if args.period:
            created = generate_for_period(store, directory, args.period, clock=clock, actor=args.actor)
        else:
            created = generate_range(store, directory, args.start, clock=clock, actor=args.actor)
    except LedgerError as exc:
        print(f"Generation aborted: {exc.detail}", file=sys.stderr)
        return 1
    print(f"Charges created: {created}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
