#!/usr/bin/env python
"""
Seed script to populate the database with sample members for local development.

Usage:
    python scripts/seed_data.py --members 5 --fee 50.00
"""

import argparse
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from duesledger.config import Base, SessionLocal, engine  # noqa: E402
from duesledger.models.models import Member  # noqa: E402
from duesledger.services.billing_config import save_config  # noqa: E402
from duesledger.services.ledger_store import SqlLedgerStore  # noqa: E402


def create_member(session, index: int) -> Member:
    member_id = f"M-{index:04d}"
    member = session.get(Member, member_id)
    if member:
        return member
    member = Member(id=member_id, display_name=f"Test Member {index}", is_active=True)
    session.add(member)
    session.flush()
    return member


def seed_database(members: int, fee: Decimal) -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        existing = session.query(Member).count()
        targets = max(members, 0)
        for offset in range(targets):
            create_member(session, existing + offset + 1)
        session.commit()

    save_config(SqlLedgerStore(SessionLocal), {"fee_amount": fee})
    print(f"Seed complete. Created {targets} members; monthly fee set to {fee}.")


def main():
    parser = argparse.ArgumentParser(description="Seed the dues ledger with sample members.")
    parser.add_argument("--members", type=int, default=5, help="Number of members to create")
    parser.add_argument("--fee", type=Decimal, default=Decimal("50.00"), help="Monthly fee amount")
    args = parser.parse_args()
    seed_database(args.members, args.fee)


if __name__ == "__main__":
    main()
