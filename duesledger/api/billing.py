from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..api.dependencies import get_clock, get_directory, get_store, validated_period
from ..config import settings
from ..core.request_context import resolve_actor
from ..models.ledger import PaymentMetadata
from ..schemas.schemas import (
    BillingConfigRead,
    BillingConfigUpdate,
    ChargeRead,
    ClosureRead,
    GenerationResult,
    MemberSummaryRead,
    PaymentCreate,
    PaymentRead,
    PortfolioOverviewRead,
    RangeGenerationRequest,
    RangeGenerationResult,
)
from ..services.audit import audit_log
from ..services.billing_config import get_config, save_config
from ..services.charges import generate_for_period, generate_range
from ..services.closing import close_period, get_closure
from ..services.debt import list_member_charges, member_summary, portfolio_overview
from ..services.ledger_store import LedgerStore, MemberDirectory
from ..services.payments import list_payments, record_payment
from ..services.periods import Clock, current_period, parse_period

router = APIRouter()


def _start_period(start_period: Optional[str] = Query(default=None)) -> str:
    try:
        return parse_period(start_period or settings.default_start_period)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/config", response_model=BillingConfigRead)
def read_config(store: LedgerStore = Depends(get_store)) -> BillingConfigRead:
    return BillingConfigRead.model_validate(get_config(store))


@router.put("/config", response_model=BillingConfigRead)
def update_config(
    payload: BillingConfigUpdate,
    request: Request,
    store: LedgerStore = Depends(get_store),
) -> BillingConfigRead:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    config = save_config(store, changes)
    audit_log(
        store,
        resolve_actor(request),
        "billing.config.update",
        target_entity_type="BillingConfig",
        target_entity_id="config/fee",
        after=config.to_record(),
    )
    return BillingConfigRead.model_validate(config)


@router.post("/periods/{period}/generate", response_model=GenerationResult)
def generate_period_charges(
    request: Request,
    period: str = Depends(validated_period),
    store: LedgerStore = Depends(get_store),
    directory: MemberDirectory = Depends(get_directory),
    clock: Clock = Depends(get_clock),
) -> GenerationResult:
    created = generate_for_period(store, directory, period, clock=clock, actor=resolve_actor(request))
    return GenerationResult(period=period, charges_created=created)


@router.post("/generate-range", response_model=RangeGenerationResult)
def generate_charges_range(
    payload: RangeGenerationRequest,
    request: Request,
    store: LedgerStore = Depends(get_store),
    directory: MemberDirectory = Depends(get_directory),
    clock: Clock = Depends(get_clock),
) -> RangeGenerationResult:
    created = generate_range(store, directory, payload.start_period, clock=clock, actor=resolve_actor(request))
    return RangeGenerationResult(
        start_period=payload.start_period,
        end_period=current_period(clock),
        charges_created=created,
    )


@router.post("/periods/{period}/close", response_model=ClosureRead)
def close_billing_period(
    request: Request,
    period: str = Depends(validated_period),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> ClosureRead:
    record = close_period(store, period, resolve_actor(request), clock=clock)
    return ClosureRead.model_validate(record)


@router.get("/periods/{period}/closure", response_model=ClosureRead)
def read_closure(period: str = Depends(validated_period), store: LedgerStore = Depends(get_store)) -> ClosureRead:
    return ClosureRead.model_validate(get_closure(store, period))


@router.get("/charges/{charge_id}", response_model=ChargeRead)
def read_charge(charge_id: str, store: LedgerStore = Depends(get_store)) -> ChargeRead:
    charge = store.get_charge(charge_id)
    if charge is None:
        raise HTTPException(status_code=404, detail="Charge not found")
    return ChargeRead.model_validate(charge)


@router.post("/charges/{charge_id}/payments", response_model=ChargeRead)
def create_payment(
    charge_id: str,
    payload: PaymentCreate,
    request: Request,
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> ChargeRead:
    metadata = PaymentMetadata(
        method=payload.method,
        reference=payload.reference,
        notes=payload.notes,
        recorded_by=resolve_actor(request),
        received_at=payload.received_at,
        payment_id=payload.payment_id,
    )
    charge = record_payment(store, charge_id, payload.amount, metadata, clock=clock)
    return ChargeRead.model_validate(charge)


@router.get("/charges/{charge_id}/payments", response_model=List[PaymentRead])
def read_payments(charge_id: str, store: LedgerStore = Depends(get_store)) -> List[PaymentRead]:
    return [PaymentRead.model_validate(record) for record in list_payments(store, charge_id)]


@router.get("/members/{member_id}/charges", response_model=List[ChargeRead])
def read_member_charges(member_id: str, store: LedgerStore = Depends(get_store)) -> List[ChargeRead]:
    return [ChargeRead.model_validate(charge) for charge in list_member_charges(store, member_id)]


@router.get("/members/{member_id}/summary", response_model=MemberSummaryRead)
def read_member_summary(
    member_id: str,
    start_period: str = Depends(_start_period),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> MemberSummaryRead:
    summary = member_summary(store, member_id, start_period, clock=clock)
    return MemberSummaryRead(
        member_id=summary.member_id,
        start_period=start_period,
        total=summary.total,
        delinquent=summary.delinquent,
        items=[ChargeRead.model_validate(charge) for charge in summary.items],
    )


@router.get("/overview", response_model=PortfolioOverviewRead)
def read_overview(
    start_period: str = Depends(_start_period),
    store: LedgerStore = Depends(get_store),
    directory: MemberDirectory = Depends(get_directory),
    clock: Clock = Depends(get_clock),
) -> PortfolioOverviewRead:
    overview = portfolio_overview(store, directory, start_period, clock=clock)
    return PortfolioOverviewRead(
        start_period=start_period,
        collected=overview.collected,
        outstanding=overview.outstanding,
        delinquent_members=overview.delinquent_members,
        collection_rate=overview.collection_rate,
        active_members=overview.active_members,
    )
