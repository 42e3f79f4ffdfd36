import logging

from fastapi import FastAPI, Request

from .api import billing
from .config import Base, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import REQUEST_ID_HEADER, assign_request_id

# Import the full models module so all tables register with Base metadata.
from .models import models as _all_models  # noqa: F401

configure_logging(settings.log_level.upper(), json_logs=settings.json_logs)  # type: ignore[arg-type]
logger = logging.getLogger(__name__)

app = FastAPI(title="Dues Ledger")
register_exception_handlers(app)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = assign_request_id(request)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.on_event("startup")
def startup() -> None:
    # In dev we make sure tables exist. Alembic migrations should be used for real schema evolution.
    Base.metadata.create_all(bind=engine)
    logger.info("Dues ledger started (timezone %s)", settings.timezone)


@app.get("/health", tags=["system"])
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(billing.router, prefix="/billing", tags=["billing"])
