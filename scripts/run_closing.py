#!/usr/bin/env python3
"""Close a billing period, applying delinquency surcharges to unpaid charges."""

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
from duesledger.services.closing import close_period  # noqa: E402
from duesledger.services.ledger_store import SqlLedgerStore  # noqa: E402
from duesledger.services.periods import SystemClock, add_months, current_period, parse_period  # noqa: E402


def main() -> int:
    clock = SystemClock(settings.timezone)
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--period",
        type=parse_period,
        default=add_months(current_period(clock), -1),
        help="Period to close (YYYY-MM); defaults to last month",
    )
    parser.add_argument("--actor", default="scheduler", help="Recorded as the closing user")
    args = parser.parse_args()

    configure_logging(settings.log_level.upper(), json_logs=settings.json_logs)  # type: ignore[arg-type]
    try:
        record = close_period(SqlLedgerStore(SessionLocal), args.period, args.actor, clock=clock)
    except LedgerError as exc:
        print(f"Closing aborted: {exc.detail}", file=sys.stderr)
        return 1
    print(
        f"Period {record.period} closed by {record.closed_by} at {record.closed_at.isoformat()} "
        f"({record.charges_surcharged} charges surcharged)"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
