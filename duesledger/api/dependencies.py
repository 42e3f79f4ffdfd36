from fastapi import HTTPException

from ..config import SessionLocal, settings
from ..services.ledger_store import LedgerStore, MemberDirectory, SqlLedgerStore, SqlMemberDirectory
from ..services.periods import Clock, SystemClock, parse_period


def get_store() -> LedgerStore:
    return SqlLedgerStore(SessionLocal)


def get_directory() -> MemberDirectory:
    return SqlMemberDirectory(SessionLocal)


def get_clock() -> Clock:
    return SystemClock(settings.timezone)


def validated_period(period: str) -> str:
    try:
        return parse_period(period)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
