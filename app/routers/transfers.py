"""
StockLedger - Stock Transfer Router

API endpoints for the stock transfer workflow.
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.config import settings
from app.dependencies import get_actor, get_transfer_service
from app.models.transfer import TransferStatus, TransferType
from app.services.transfer_service import TransferFilter, TransferService
from app.schemas.transfer import (
    BulkTransferCreate,
    BulkTransferResponse,
    TransferApprove,
    TransferCancel,
    TransferCreate,
    TransferListResponse,
    TransferReject,
    TransferResponse,
    TransferSummaryResponse,
    TransferValidationResponse,
)


router = APIRouter()


# ===========================================
# CREATION
# ===========================================

@router.post(
    "/transfers",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a stock transfer",
)
async def create_transfer(
    payload: TransferCreate,
    actor: Optional[str] = Depends(get_actor),
    service: TransferService = Depends(get_transfer_service),
):
    """Create a Pending transfer. No stock moves until it is completed."""
    transfer = await service.create_transfer(payload, requested_by=actor)
    return TransferResponse.model_validate(transfer)


@router.post(
    "/transfers/validate",
    response_model=TransferValidationResponse,
    summary="Check a transfer request without creating it",
)
async def validate_transfer(
    payload: TransferCreate,
    service: TransferService = Depends(get_transfer_service),
):
    result = await service.validate_transfer(payload)
    return TransferValidationResponse(
        is_valid=result.is_valid,
        transfer_type=result.transfer_type.value if result.transfer_type else None,
        source_branch_id=result.source.branch_id if result.source else None,
        source_counter_id=result.source.counter_id if result.source else None,
        source_box_id=result.source.box_id if result.source else None,
        code=result.code,
        message=result.message,
        field=result.field,
    )


@router.post(
    "/transfers/bulk",
    response_model=BulkTransferResponse,
    summary="Request several stock transfers",
)
async def create_transfers(
    payload: BulkTransferCreate,
    actor: Optional[str] = Depends(get_actor),
    service: TransferService = Depends(get_transfer_service),
):
    result = await service.create_transfers(payload, requested_by=actor)
    return BulkTransferResponse.model_validate(result)


# ===========================================
# QUERIES
# ===========================================

@router.get(
    "/transfers",
    response_model=TransferListResponse,
    summary="List stock transfers",
)
async def list_transfers(
    product_id: Optional[UUID] = Query(None),
    tag_code: Optional[str] = Query(None),
    transfer_type: Optional[TransferType] = Query(None),
    transfer_status: Optional[TransferStatus] = Query(None, alias="status"),
    source_branch_id: Optional[UUID] = Query(None),
    source_counter_id: Optional[UUID] = Query(None),
    destination_branch_id: Optional[UUID] = Query(None),
    destination_counter_id: Optional[UUID] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=500),
    service: TransferService = Depends(get_transfer_service),
):
    transfers, total = await service.list_transfers(TransferFilter(
        product_id=product_id,
        tag_code=tag_code,
        transfer_type=transfer_type,
        status=transfer_status,
        source_branch_id=source_branch_id,
        source_counter_id=source_counter_id,
        destination_branch_id=destination_branch_id,
        destination_counter_id=destination_counter_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    ))
    return TransferListResponse(
        items=[TransferResponse.model_validate(t) for t in transfers],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/transfers/summary",
    response_model=TransferSummaryResponse,
    summary="Transfer counts per status, type and branch",
)
async def transfer_summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    service: TransferService = Depends(get_transfer_service),
):
    summary = await service.get_transfer_summary(start_date, end_date)
    return TransferSummaryResponse.model_validate(summary)


@router.get(
    "/transfers/open",
    response_model=List[TransferResponse],
    summary="Open transfers at a location",
)
async def open_transfers_by_location(
    branch_id: UUID = Query(...),
    counter_id: Optional[UUID] = Query(None),
    box_id: Optional[UUID] = Query(None),
    service: TransferService = Depends(get_transfer_service),
):
    transfers = await service.get_open_transfers_by_location(branch_id, counter_id, box_id)
    return [TransferResponse.model_validate(t) for t in transfers]


@router.get(
    "/transfers/by-product/{product_id}",
    response_model=List[TransferResponse],
    summary="Transfers of a product",
)
async def transfers_by_product(
    product_id: UUID,
    service: TransferService = Depends(get_transfer_service),
):
    transfers = await service.get_transfers_by_product(product_id)
    return [TransferResponse.model_validate(t) for t in transfers]


@router.get(
    "/transfers/by-tag/{tag_code}",
    response_model=List[TransferResponse],
    summary="Transfers of an RFID tag",
)
async def transfers_by_tag(
    tag_code: str,
    service: TransferService = Depends(get_transfer_service),
):
    transfers = await service.get_transfers_by_tag(tag_code)
    return [TransferResponse.model_validate(t) for t in transfers]


@router.get(
    "/transfers/{transfer_id}",
    response_model=TransferResponse,
    summary="Get a stock transfer",
)
async def get_transfer(
    transfer_id: UUID,
    service: TransferService = Depends(get_transfer_service),
):
    transfer = await service.get_transfer(transfer_id)
    return TransferResponse.model_validate(transfer)


# ===========================================
# TRANSITIONS
# ===========================================

@router.post(
    "/transfers/{transfer_id}/approve",
    response_model=TransferResponse,
    summary="Approve a pending transfer",
)
async def approve_transfer(
    transfer_id: UUID,
    payload: Optional[TransferApprove] = None,
    actor: Optional[str] = Depends(get_actor),
    service: TransferService = Depends(get_transfer_service),
):
    transfer = await service.approve_transfer(
        transfer_id,
        approved_by=actor,
        remarks=payload.remarks if payload else None,
    )
    return TransferResponse.model_validate(transfer)


@router.post(
    "/transfers/{transfer_id}/reject",
    response_model=TransferResponse,
    summary="Reject a pending transfer",
)
async def reject_transfer(
    transfer_id: UUID,
    payload: TransferReject,
    actor: Optional[str] = Depends(get_actor),
    service: TransferService = Depends(get_transfer_service),
):
    transfer = await service.reject_transfer(transfer_id, payload.reason, rejected_by=actor)
    return TransferResponse.model_validate(transfer)


@router.post(
    "/transfers/{transfer_id}/complete",
    response_model=TransferResponse,
    summary="Complete an in-transit transfer",
)
async def complete_transfer(
    transfer_id: UUID,
    actor: Optional[str] = Depends(get_actor),
    service: TransferService = Depends(get_transfer_service),
):
    """
    Moves the stock: TransferOut at the source and TransferIn at the
    destination for every item, in one transaction.
    """
    transfer = await service.complete_transfer(transfer_id, completed_by=actor)
    return TransferResponse.model_validate(transfer)


@router.post(
    "/transfers/{transfer_id}/cancel",
    response_model=TransferResponse,
    summary="Cancel a transfer",
)
async def cancel_transfer(
    transfer_id: UUID,
    payload: Optional[TransferCancel] = None,
    actor: Optional[str] = Depends(get_actor),
    service: TransferService = Depends(get_transfer_service),
):
    transfer = await service.cancel_transfer(
        transfer_id,
        cancelled_by=actor,
        reason=payload.reason if payload else None,
    )
    return TransferResponse.model_validate(transfer)
