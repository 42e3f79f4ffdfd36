import logging
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request

REQUEST_ID_HEADER = "X-Request-ID"
ACTOR_HEADER = "X-Actor"
SYSTEM_ACTOR = "system"

_request_id: ContextVar[Optional[str]] = ContextVar("duesledger_request_id", default=None)


def assign_request_id(request: Request) -> str:
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    _request_id.set(request_id)
    return request_id


def current_request_id() -> Optional[str]:
    return _request_id.get()


def resolve_actor(request: Request) -> str:
    """Authentication lives upstream; the gateway forwards the acting user in a header."""
    actor = (request.headers.get(ACTOR_HEADER) or "").strip()
    return actor or SYSTEM_ACTOR


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_request_id() or "-"
        return True
