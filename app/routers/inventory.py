"""
StockLedger - Inventory Router

API endpoints for the movement ledger, daily balances, stock levels and
sales bookkeeping. Every endpoint runs against the store of the tenant
named in the X-Client-Code header.
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.config import settings
from app.dependencies import (
    get_balance_service,
    get_movement_service,
    get_sales_service,
    get_stock_service,
)
from app.services.balance_service import BalanceFilter, BalanceService
from app.services.movement_service import MovementFilter, MovementService, parse_movement_type
from app.services.sales_service import SaleOutcome, SalesService
from app.services.stock_service import StockService, StockSource
from app.schemas.inventory import (
    BalanceCalculateRequest,
    BalanceRangeRequest,
    BalanceRunResponse,
    BulkMovementCreate,
    BulkMovementResponse,
    DailyBalanceListResponse,
    DailyBalanceResponse,
    MovementCreate,
    MovementListResponse,
    MovementResponse,
    MovementSummaryResponse,
    StockLevelResponse,
)
from app.schemas.transfer import ReturnCreate, SaleCreate, SaleOutcomeResponse


router = APIRouter()


def _sale_outcome_response(outcome: SaleOutcome) -> SaleOutcomeResponse:
    return SaleOutcomeResponse(
        product_id=outcome.product.id,
        product_status=outcome.product.status.value,
        movement_id=outcome.movement.id if outcome.movement else None,
        bookkeeping_recorded=outcome.bookkeeping_recorded,
        bookkeeping_error=outcome.bookkeeping_error,
    )


# ===========================================
# MOVEMENT ENDPOINTS
# ===========================================

@router.post(
    "/movements",
    response_model=MovementResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a stock movement",
)
async def record_movement(
    payload: MovementCreate,
    service: MovementService = Depends(get_movement_service),
):
    """Append one entry to the ledger."""
    movement = await service.record_movement(payload)
    return MovementResponse.model_validate(movement)


@router.post(
    "/movements/bulk",
    response_model=BulkMovementResponse,
    summary="Record several stock movements",
)
async def record_movements(
    payload: BulkMovementCreate,
    service: MovementService = Depends(get_movement_service),
):
    """
    Record up to 100 movements. Valid entries are recorded even when
    others fail; failures are listed per entry.
    """
    result = await service.record_movements(payload.movements)
    return BulkMovementResponse.model_validate(result)


@router.get(
    "/movements",
    response_model=MovementListResponse,
    summary="List stock movements",
)
async def list_movements(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    product_id: Optional[UUID] = Query(None),
    tag_code: Optional[str] = Query(None),
    item_code: Optional[str] = Query(None),
    branch_id: Optional[UUID] = Query(None),
    counter_id: Optional[UUID] = Query(None),
    category_id: Optional[UUID] = Query(None),
    movement_type: Optional[str] = Query(None),
    transfer_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=500),
    service: MovementService = Depends(get_movement_service),
):
    filters = MovementFilter(
        start_date=start_date,
        end_date=end_date,
        product_id=product_id,
        tag_code=tag_code,
        item_code=item_code,
        branch_id=branch_id,
        counter_id=counter_id,
        category_id=category_id,
        movement_type=parse_movement_type(movement_type) if movement_type else None,
        transfer_id=transfer_id,
        page=page,
        page_size=page_size,
    )
    movements, total = await service.get_movements(filters)
    return MovementListResponse(
        items=[MovementResponse.model_validate(m) for m in movements],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/movements/summary",
    response_model=MovementSummaryResponse,
    summary="Movement totals per type",
)
async def movement_summary(
    start_date: date = Query(...),
    end_date: date = Query(...),
    branch_id: Optional[UUID] = Query(None),
    counter_id: Optional[UUID] = Query(None),
    service: MovementService = Depends(get_movement_service),
):
    summary = await service.summarize_movements(start_date, end_date, branch_id, counter_id)
    return MovementSummaryResponse.model_validate(summary)


@router.get(
    "/movements/{movement_id}",
    response_model=MovementResponse,
    summary="Get a stock movement",
)
async def get_movement(
    movement_id: UUID,
    service: MovementService = Depends(get_movement_service),
):
    movement = await service.get_movement(movement_id)
    return MovementResponse.model_validate(movement)


# ===========================================
# DAILY BALANCE ENDPOINTS
# ===========================================

@router.post(
    "/balances/calculate",
    response_model=BalanceRunResponse,
    summary="Calculate all balances for one day",
)
async def calculate_daily_balances(
    payload: BalanceCalculateRequest,
    service: BalanceService = Depends(get_balance_service),
):
    report = await service.calculate_daily_balances(payload.balance_date)
    return BalanceRunResponse.model_validate(report)


@router.post(
    "/balances/process",
    response_model=BalanceRunResponse,
    summary="Calculate balances over a date range",
)
async def process_balance_range(
    payload: BalanceRangeRequest,
    service: BalanceService = Depends(get_balance_service),
):
    report = await service.process_balance_range(payload.start_date, payload.end_date, payload.product_ids)
    return BalanceRunResponse.model_validate(report)


@router.post(
    "/balances/recalculate",
    response_model=BalanceRunResponse,
    summary="Re-derive balances from the ledger",
)
async def recalculate_balances(
    payload: BalanceRangeRequest,
    service: BalanceService = Depends(get_balance_service),
):
    """
    Repair snapshots after out-of-order or corrected ledger entries.
    Safe to re-run; a partial run reports the day to resume from.
    """
    report = await service.recalculate_balances(payload.start_date, payload.end_date, payload.product_ids)
    return BalanceRunResponse.model_validate(report)


@router.get(
    "/balances",
    response_model=DailyBalanceListResponse,
    summary="List daily balance snapshots",
)
async def list_daily_balances(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    product_id: Optional[UUID] = Query(None),
    branch_id: Optional[UUID] = Query(None),
    counter_id: Optional[UUID] = Query(None),
    category_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=500),
    service: BalanceService = Depends(get_balance_service),
):
    balances, total = await service.get_daily_balances(BalanceFilter(
        start_date=start_date,
        end_date=end_date,
        product_id=product_id,
        branch_id=branch_id,
        counter_id=counter_id,
        category_id=category_id,
        page=page,
        page_size=page_size,
    ))
    return DailyBalanceListResponse(
        items=[DailyBalanceResponse.model_validate(b) for b in balances],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/products/{product_id}/balances/{balance_date}",
    response_model=DailyBalanceResponse,
    summary="Get one product's balance for a day",
)
async def get_daily_balance(
    product_id: UUID,
    balance_date: date,
    service: BalanceService = Depends(get_balance_service),
):
    """Stored snapshot, calculated on demand when missing."""
    snapshot = await service.get_daily_balance(product_id, balance_date)
    return DailyBalanceResponse.model_validate(snapshot)


@router.post(
    "/products/{product_id}/balances/{balance_date}/calculate",
    response_model=DailyBalanceResponse,
    summary="Recalculate one product's balance for a day",
)
async def calculate_daily_balance(
    product_id: UUID,
    balance_date: date,
    service: BalanceService = Depends(get_balance_service),
):
    snapshot = await service.calculate_daily_balance(product_id, balance_date)
    return DailyBalanceResponse.model_validate(snapshot)


@router.post(
    "/products/{product_id}/balances/calculate-range",
    response_model=List[DailyBalanceResponse],
    summary="Calculate one product's balances over a date range",
)
async def calculate_balance_range(
    product_id: UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: BalanceService = Depends(get_balance_service),
):
    snapshots = await service.calculate_balance_range(product_id, start_date, end_date)
    return [DailyBalanceResponse.model_validate(s) for s in snapshots]


# ===========================================
# STOCK LEVEL ENDPOINTS
# ===========================================

@router.get(
    "/stock/products/{product_id}",
    response_model=StockLevelResponse,
    summary="Current stock of a product",
)
async def get_product_stock(
    product_id: UUID,
    as_of: Optional[date] = Query(None, description="End of this day; defaults to now"),
    source: StockSource = Query(StockSource.SNAPSHOT),
    service: StockService = Depends(get_stock_service),
):
    level = await service.get_product_stock(product_id, as_of=as_of, source=source)
    return StockLevelResponse.model_validate(level)


@router.get(
    "/stock/products/{product_id}/branches/{branch_id}",
    response_model=StockLevelResponse,
    summary="Stock of a product at a branch",
)
async def get_product_branch_stock(
    product_id: UUID,
    branch_id: UUID,
    as_of: Optional[date] = Query(None),
    service: StockService = Depends(get_stock_service),
):
    level = await service.get_product_branch_stock(product_id, branch_id, as_of=as_of)
    return StockLevelResponse.model_validate(level)


@router.get(
    "/stock/products/{product_id}/counters/{counter_id}",
    response_model=StockLevelResponse,
    summary="Stock of a product at a counter",
)
async def get_product_counter_stock(
    product_id: UUID,
    counter_id: UUID,
    as_of: Optional[date] = Query(None),
    service: StockService = Depends(get_stock_service),
):
    level = await service.get_product_counter_stock(product_id, counter_id, as_of=as_of)
    return StockLevelResponse.model_validate(level)


@router.get(
    "/stock/branches/{branch_id}",
    response_model=StockLevelResponse,
    summary="Current stock of a branch",
)
async def get_branch_stock(
    branch_id: UUID,
    as_of: Optional[date] = Query(None),
    service: StockService = Depends(get_stock_service),
):
    level = await service.get_branch_stock(branch_id, as_of=as_of)
    return StockLevelResponse.model_validate(level)


@router.get(
    "/stock/counters/{counter_id}",
    response_model=StockLevelResponse,
    summary="Current stock of a counter",
)
async def get_counter_stock(
    counter_id: UUID,
    as_of: Optional[date] = Query(None),
    service: StockService = Depends(get_stock_service),
):
    level = await service.get_counter_stock(counter_id, as_of=as_of)
    return StockLevelResponse.model_validate(level)


@router.get(
    "/stock/categories/{category_id}",
    response_model=StockLevelResponse,
    summary="Current stock of a category",
)
async def get_category_stock(
    category_id: UUID,
    as_of: Optional[date] = Query(None),
    service: StockService = Depends(get_stock_service),
):
    level = await service.get_category_stock(category_id, as_of=as_of)
    return StockLevelResponse.model_validate(level)


# ===========================================
# SALES ENDPOINTS
# ===========================================

@router.post(
    "/sales",
    response_model=SaleOutcomeResponse,
    summary="Mark an item sold",
)
async def complete_sale(
    payload: SaleCreate,
    service: SalesService = Depends(get_sales_service),
):
    """
    The sale stands even if the ledger entry cannot be recorded;
    bookkeeping_recorded reports whether it was.
    """
    outcome = await service.complete_sale(payload)
    return _sale_outcome_response(outcome)


@router.post(
    "/returns",
    response_model=SaleOutcomeResponse,
    summary="Return a sold item to stock",
)
async def process_return(
    payload: ReturnCreate,
    service: SalesService = Depends(get_sales_service),
):
    outcome = await service.process_return(payload)
    return _sale_outcome_response(outcome)
