"""
StockLedger - Transfer Service

Stock transfer lifecycle:

    Pending -> InTransit -> Completed
    Pending -> Rejected
    Pending | InTransit -> Cancelled

Only completion moves stock: a TransferOut entry at the source and a
matching TransferIn entry at the destination for every item, the product
relocation and the status change, all in one transaction.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError

from app.config import settings
from app.models.catalog import Product, ProductStatus
from app.models.inventory import MovementType
from app.models.transfer import (
    OPEN_TRANSFER_STATUSES,
    StockReservation,
    StockTransfer,
    StockTransferItem,
    TransferStatus,
    TransferType,
)
from app.schemas.inventory import MovementCreate
from app.schemas.transfer import BulkTransferCreate, TransferCreate, TransferItemCreate
from app.services.catalog_service import CatalogService
from app.services.movement_service import MovementService, day_bounds, to_naive_utc
from app.services.stock_service import StockService
from app.tenancy import TenantContext
from app.utils.error_handling import (
    AppException,
    BulkLimitExceededException,
    ConflictException,
    InsufficientInventoryException,
    InvalidDateRangeException,
    InvalidQuantityException,
    InvalidTransitionException,
    ItemReservedException,
    TransferNotFoundException,
    ValidationException,
    error_summary,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Location:
    branch_id: uuid.UUID
    counter_id: uuid.UUID
    box_id: Optional[uuid.UUID] = None


def determine_transfer_type(source: Location, destination: Location) -> TransferType:
    """Classify a transfer by which location parts change."""
    if source.branch_id != destination.branch_id:
        return TransferType.BRANCH
    counter_changed = source.counter_id != destination.counter_id
    box_changed = source.box_id != destination.box_id
    if counter_changed and box_changed:
        return TransferType.MIXED
    if counter_changed:
        return TransferType.COUNTER
    if box_changed:
        return TransferType.BOX
    return TransferType.MIXED


@dataclass
class TransferFilter:
    product_id: Optional[uuid.UUID] = None
    tag_code: Optional[str] = None
    transfer_type: Optional[TransferType] = None
    status: Optional[TransferStatus] = None
    source_branch_id: Optional[uuid.UUID] = None
    source_counter_id: Optional[uuid.UUID] = None
    destination_branch_id: Optional[uuid.UUID] = None
    destination_counter_id: Optional[uuid.UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: int = 1
    page_size: int = settings.default_page_size


@dataclass
class BulkTransferError:
    index: int
    reference: str
    code: str
    message: str


@dataclass
class BulkTransferResult:
    total_requested: int
    created: List[StockTransfer] = field(default_factory=list)
    errors: List[BulkTransferError] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def failed_count(self) -> int:
        return len(self.errors)


@dataclass
class TransferValidation:
    """Outcome of a dry-run transfer check. Only the first failure is reported."""
    is_valid: bool
    transfer_type: Optional[TransferType] = None
    source: Optional[Location] = None
    code: Optional[str] = None
    message: Optional[str] = None
    field: Optional[str] = None


@dataclass
class BranchTransferStats:
    branch_id: uuid.UUID
    incoming_count: int = 0
    outgoing_count: int = 0
    incoming_value: Decimal = Decimal("0.00")
    outgoing_value: Decimal = Decimal("0.00")


@dataclass
class TransferSummary:
    total_transfers: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    branches: List[BranchTransferStats]


class TransferService:
    """Creates and drives stock transfers for one tenant."""

    def __init__(self, tenant: TenantContext):
        self.tenant = tenant
        self.db = tenant.db
        self.catalog = CatalogService(tenant)
        self.movements = MovementService(tenant)
        self.stock = StockService(tenant)

    # ===========================================
    # HELPERS
    # ===========================================

    async def generate_transfer_number(self, on: Optional[date] = None) -> str:
        """TRF-{CLIENT}-{YYYYMMDD}-{NNNN}, numbered per client per day."""
        on = on or datetime.utcnow().date()
        prefix = f"TRF-{self.tenant.client_code}-{on.strftime('%Y%m%d')}-"
        result = await self.db.execute(
            select(func.count(StockTransfer.id)).where(StockTransfer.transfer_number.like(f"{prefix}%"))
        )
        return f"{prefix}{result.scalar_one() + 1:04d}"

    async def _resolve_item(self, item: TransferItemCreate) -> Product:
        if item.product_id is not None:
            return await self.catalog.require_product(item.product_id)
        if item.tag_code:
            return await self.catalog.resolve_tag(item.tag_code)
        raise ValidationException("Each item needs a product_id or tag_code", field="items")

    async def open_transfer_for(self, product_id: uuid.UUID) -> Optional[str]:
        """Transfer number of the open transfer holding the product, if any."""
        result = await self.db.execute(
            select(StockTransfer.transfer_number)
            .join(StockReservation, StockReservation.transfer_id == StockTransfer.id)
            .where(StockReservation.product_id == product_id)
        )
        return result.scalars().first()

    async def _lock_transfer(self, transfer_id: uuid.UUID) -> StockTransfer:
        result = await self.db.execute(
            select(StockTransfer)
            .where(StockTransfer.id == transfer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        transfer = result.scalar_one_or_none()
        if not transfer:
            raise TransferNotFoundException(transfer_id)
        return transfer

    async def _check_transition(self, transfer: StockTransfer, target: TransferStatus) -> None:
        """Raise on an undocumented transition, releasing the row lock first."""
        current = transfer.status
        if not current.can_transition_to(target):
            error = InvalidTransitionException(
                transfer.transfer_number,
                current.value,
                target.value,
                terminal=current.is_terminal,
            )
            await self.db.rollback()
            raise error

    async def _release_reservations(self, transfer: StockTransfer) -> None:
        await self.db.execute(
            delete(StockReservation).where(StockReservation.transfer_id == transfer.id)
        )

    # ===========================================
    # CREATION
    # ===========================================

    async def _validate_request(
        self,
        payload: TransferCreate,
    ) -> Tuple[List[Product], Location, Location]:
        """Run every creation check; raise on the first failure."""
        if not payload.items:
            raise ValidationException("A transfer needs at least one item", field="items")
        if len(payload.items) > settings.max_bulk_items:
            raise BulkLimitExceededException(len(payload.items), settings.max_bulk_items)
        if bool(payload.source_branch_id) != bool(payload.source_counter_id):
            raise ValidationException(
                "source_branch_id and source_counter_id must be given together",
                field="source_branch_id" if not payload.source_branch_id else "source_counter_id",
            )

        products: List[Product] = []
        seen = set()
        for item in payload.items:
            product = await self._resolve_item(item)
            if product.id in seen:
                raise ValidationException(
                    f"Item '{product.item_code}' appears more than once in the transfer",
                    field="items",
                )
            seen.add(product.id)
            products.append(product)

        if payload.source_branch_id:
            source = Location(payload.source_branch_id, payload.source_counter_id, payload.source_box_id)
        else:
            first = products[0]
            source = Location(first.branch_id, first.counter_id, first.box_id)
        destination = Location(
            payload.destination_branch_id,
            payload.destination_counter_id,
            payload.destination_box_id,
        )
        if source == destination:
            raise ValidationException("Source and destination locations are the same")
        await self.catalog.require_location(source.branch_id, source.counter_id, source.box_id)
        await self.catalog.require_location(destination.branch_id, destination.counter_id, destination.box_id)

        for item, product in zip(payload.items, products):
            if product.status != ProductStatus.ACTIVE:
                raise ValidationException(
                    f"Item '{product.item_code}' is {product.status.value} and cannot be transferred",
                    field="items",
                )
            if (
                product.branch_id != source.branch_id
                or product.counter_id != source.counter_id
                or product.box_id != source.box_id
            ):
                raise ValidationException(
                    f"Item '{product.item_code}' is not at the source location",
                    field="items",
                )
            held_by = await self.open_transfer_for(product.id)
            if held_by:
                raise ItemReservedException(product.item_code, held_by)
            if item.quantity is None or item.quantity <= 0:
                raise InvalidQuantityException(item.quantity)
            available = await self.stock.available_quantity(product.id, source.branch_id, source.counter_id)
            if item.quantity > available:
                raise InsufficientInventoryException(product.item_code, item.quantity, available)
            # Completion relocates the product, so all of its stock moves with it
            if item.quantity != available:
                raise ValidationException(
                    f"Item '{product.item_code}' has {available} on hand at the source; "
                    f"a transfer must move all of it, not {item.quantity}",
                    field="quantity",
                )

        return products, source, destination

    async def validate_transfer(self, payload: TransferCreate) -> TransferValidation:
        """
        Dry run of transfer creation.

        Applies the same checks as create_transfer and reports the first
        failure. Nothing is written or reserved.
        """
        try:
            _, source, destination = await self._validate_request(payload)
        except AppException as e:
            return TransferValidation(
                is_valid=False,
                code=e.code.value,
                message=e.message,
                field=e.field,
            )
        return TransferValidation(
            is_valid=True,
            transfer_type=determine_transfer_type(source, destination),
            source=source,
        )

    async def _create_once(self, payload: TransferCreate, requested_by: Optional[str]) -> StockTransfer:
        products, source, destination = await self._validate_request(payload)

        transfer_date = to_naive_utc(payload.transfer_date or datetime.utcnow())
        transfer = StockTransfer(
            transfer_number=await self.generate_transfer_number(transfer_date.date()),
            transfer_type=determine_transfer_type(source, destination),
            status=TransferStatus.PENDING,
            source_branch_id=source.branch_id,
            source_counter_id=source.counter_id,
            source_box_id=source.box_id,
            destination_branch_id=destination.branch_id,
            destination_counter_id=destination.counter_id,
            destination_box_id=destination.box_id,
            reason=payload.reason,
            remarks=payload.remarks,
            transfer_date=transfer_date,
            requested_by=requested_by,
        )
        self.db.add(transfer)
        await self.db.flush()

        for item, product in zip(payload.items, products):
            self.db.add(StockTransferItem(
                transfer_id=transfer.id,
                product_id=product.id,
                tag_code=item.tag_code or await self.catalog.get_active_tag(product.id),
                quantity=item.quantity,
                unit_price=product.mrp,
            ))
            self.db.add(StockReservation(product_id=product.id, transfer_id=transfer.id))
        await self.db.flush()
        await self.db.commit()
        await self.db.refresh(transfer, ["items"])
        return transfer

    async def create_transfer(self, payload: TransferCreate, requested_by: Optional[str] = None) -> StockTransfer:
        """
        Validate and persist a Pending transfer and reserve its items.

        No stock moves until the transfer is completed.
        """
        for attempt in range(3):
            try:
                transfer = await self._create_once(payload, requested_by)
            except IntegrityError:
                # Lost a race on a reservation or the transfer number
                await self.db.rollback()
                logger.warning(f"Transfer create conflict, attempt {attempt + 1}")
                continue
            logger.info(
                f"Transfer {transfer.transfer_number} created ({transfer.transfer_type.value}, "
                f"{len(transfer.items)} items) by {requested_by}"
            )
            return transfer
        raise ConflictException(
            "Could not create the transfer because of concurrent changes. Please retry.",
            resource_type="StockTransfer",
        )

    async def create_transfers(
        self,
        payload: BulkTransferCreate,
        requested_by: Optional[str] = None,
    ) -> BulkTransferResult:
        """Create several transfers, continuing past failures."""
        if len(payload.transfers) > settings.max_bulk_items:
            raise BulkLimitExceededException(len(payload.transfers), settings.max_bulk_items)

        result = BulkTransferResult(total_requested=len(payload.transfers))
        created_ids: List[uuid.UUID] = []
        for index, entry in enumerate(payload.transfers):
            entry = entry.model_copy(update={
                "reason": entry.reason or payload.common_reason,
                "remarks": entry.remarks or payload.common_remarks,
            })
            try:
                transfer = await self.create_transfer(entry, requested_by)
                created_ids.append(transfer.id)
            except AppException as e:
                summary = error_summary(e)
                reference = entry.items[0].product_ref if entry.items else "no items"
                result.errors.append(BulkTransferError(index, reference, summary["code"], summary["message"]))
                logger.warning(f"Bulk transfer entry {index} failed: {e.message}")

        if created_ids:
            rows = await self.db.execute(
                select(StockTransfer)
                .where(StockTransfer.id.in_(created_ids))
                .execution_options(populate_existing=True)
            )
            by_id = {t.id: t for t in rows.scalars().all()}
            result.created = [by_id[i] for i in created_ids]
        return result

    # ===========================================
    # TRANSITIONS
    # ===========================================

    async def approve_transfer(
        self,
        transfer_id: uuid.UUID,
        approved_by: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> StockTransfer:
        """Pending -> InTransit."""
        transfer = await self._lock_transfer(transfer_id)
        await self._check_transition(transfer, TransferStatus.IN_TRANSIT)

        transfer.status = TransferStatus.IN_TRANSIT
        transfer.approved_by = approved_by
        transfer.approved_at = datetime.utcnow()
        if remarks:
            transfer.remarks = remarks
        await self.db.commit()

        logger.info(f"Transfer {transfer.transfer_number} approved by {approved_by}")
        return transfer

    async def reject_transfer(
        self,
        transfer_id: uuid.UUID,
        reason: str,
        rejected_by: Optional[str] = None,
    ) -> StockTransfer:
        """Pending -> Rejected. A reason is required."""
        if not reason or not reason.strip():
            raise ValidationException("A rejection reason is required", field="reason")
        transfer = await self._lock_transfer(transfer_id)
        await self._check_transition(transfer, TransferStatus.REJECTED)

        transfer.status = TransferStatus.REJECTED
        transfer.rejected_by = rejected_by
        transfer.rejected_at = datetime.utcnow()
        transfer.rejection_reason = reason.strip()
        await self._release_reservations(transfer)
        await self.db.commit()

        logger.info(f"Transfer {transfer.transfer_number} rejected by {rejected_by}: {reason}")
        return transfer

    async def cancel_transfer(
        self,
        transfer_id: uuid.UUID,
        cancelled_by: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> StockTransfer:
        """Pending or InTransit -> Cancelled. Records no movement."""
        transfer = await self._lock_transfer(transfer_id)
        await self._check_transition(transfer, TransferStatus.CANCELLED)

        transfer.status = TransferStatus.CANCELLED
        transfer.cancelled_by = cancelled_by
        transfer.cancelled_at = datetime.utcnow()
        transfer.cancellation_reason = reason
        await self._release_reservations(transfer)
        await self.db.commit()

        logger.info(f"Transfer {transfer.transfer_number} cancelled by {cancelled_by}")
        return transfer

    async def _emit_leg(
        self,
        transfer: StockTransfer,
        item: StockTransferItem,
        product: Product,
        moved_at: datetime,
    ) -> None:
        """Stage the TransferOut/TransferIn pair for one item."""
        common = dict(
            product_id=product.id,
            tag_code=item.tag_code,
            quantity=item.quantity,
            unit_price=item.unit_price,
            category_id=product.category_id,
            reference_number=transfer.transfer_number,
            reference_type="StockTransfer",
            transfer_id=transfer.id,
            movement_date=moved_at,
        )
        await self.movements.stage_movement(
            MovementCreate(
                movement_type=MovementType.TRANSFER_OUT.value,
                branch_id=transfer.source_branch_id,
                counter_id=transfer.source_counter_id,
                box_id=transfer.source_box_id,
                **common,
            ),
            product=product,
        )
        await self.movements.stage_movement(
            MovementCreate(
                movement_type=MovementType.TRANSFER_IN.value,
                branch_id=transfer.destination_branch_id,
                counter_id=transfer.destination_counter_id,
                box_id=transfer.destination_box_id,
                **common,
            ),
            product=product,
        )

    async def complete_transfer(
        self,
        transfer_id: uuid.UUID,
        completed_by: Optional[str] = None,
    ) -> StockTransfer:
        """
        InTransit -> Completed.

        Runs as one transaction under a row lock on the transfer. On any
        failure nothing is kept and the transfer stays InTransit, so the
        call can be retried.
        """
        transfer = await self._lock_transfer(transfer_id)
        await self._check_transition(transfer, TransferStatus.COMPLETED)

        try:
            moved_at = datetime.utcnow()
            for item in transfer.items:
                product = await self.catalog.require_product(item.product_id)
                await self._emit_leg(transfer, item, product, moved_at)
                self.catalog.move_product(
                    product,
                    transfer.destination_branch_id,
                    transfer.destination_counter_id,
                    transfer.destination_box_id,
                )

            transfer.status = TransferStatus.COMPLETED
            transfer.completed_by = completed_by
            transfer.completed_at = moved_at
            await self._release_reservations(transfer)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.error(f"Completing transfer {transfer_id} failed, rolled back", exc_info=True)
            raise

        logger.info(
            f"Transfer {transfer.transfer_number} completed by {completed_by}: "
            f"{len(transfer.items)} items moved"
        )
        return transfer

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_transfer(self, transfer_id: uuid.UUID) -> StockTransfer:
        result = await self.db.execute(
            select(StockTransfer)
            .where(StockTransfer.id == transfer_id)
            .execution_options(populate_existing=True)
        )
        transfer = result.scalar_one_or_none()
        if not transfer:
            raise TransferNotFoundException(transfer_id)
        return transfer

    def _criteria(self, filters: TransferFilter) -> list:
        if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
            raise InvalidDateRangeException(filters.start_date, filters.end_date)

        criteria = []
        if filters.product_id:
            criteria.append(StockTransfer.id.in_(
                select(StockTransferItem.transfer_id).where(StockTransferItem.product_id == filters.product_id)
            ))
        if filters.tag_code:
            criteria.append(StockTransfer.id.in_(
                select(StockTransferItem.transfer_id).where(StockTransferItem.tag_code == filters.tag_code)
            ))
        if filters.transfer_type:
            criteria.append(StockTransfer.transfer_type == TransferType(filters.transfer_type))
        if filters.status:
            criteria.append(StockTransfer.status == TransferStatus(filters.status))
        if filters.source_branch_id:
            criteria.append(StockTransfer.source_branch_id == filters.source_branch_id)
        if filters.source_counter_id:
            criteria.append(StockTransfer.source_counter_id == filters.source_counter_id)
        if filters.destination_branch_id:
            criteria.append(StockTransfer.destination_branch_id == filters.destination_branch_id)
        if filters.destination_counter_id:
            criteria.append(StockTransfer.destination_counter_id == filters.destination_counter_id)
        if filters.start_date:
            criteria.append(StockTransfer.transfer_date >= day_bounds(filters.start_date)[0])
        if filters.end_date:
            criteria.append(StockTransfer.transfer_date < day_bounds(filters.end_date)[1])
        return criteria

    async def list_transfers(self, filters: Optional[TransferFilter] = None) -> Tuple[List[StockTransfer], int]:
        """One page of matching transfers (newest first) and the total count."""
        filters = filters or TransferFilter()
        criteria = self._criteria(filters)

        total = (await self.db.execute(
            select(func.count(StockTransfer.id)).where(*criteria)
        )).scalar_one()

        page = max(filters.page, 1)
        result = await self.db.execute(
            select(StockTransfer)
            .where(*criteria)
            .order_by(StockTransfer.transfer_date.desc(), StockTransfer.transfer_number.desc())
            .offset((page - 1) * filters.page_size)
            .limit(filters.page_size)
        )
        return list(result.scalars().all()), total

    async def _all_matching(self, filters: TransferFilter) -> List[StockTransfer]:
        result = await self.db.execute(
            select(StockTransfer)
            .where(*self._criteria(filters))
            .order_by(StockTransfer.transfer_date.desc(), StockTransfer.transfer_number.desc())
        )
        return list(result.scalars().all())

    async def get_transfers_by_product(self, product_id: uuid.UUID) -> List[StockTransfer]:
        await self.catalog.require_product(product_id)
        return await self._all_matching(TransferFilter(product_id=product_id))

    async def get_transfers_by_tag(self, tag_code: str) -> List[StockTransfer]:
        return await self._all_matching(TransferFilter(tag_code=tag_code))

    async def get_open_transfers_by_location(
        self,
        branch_id: uuid.UUID,
        counter_id: Optional[uuid.UUID] = None,
        box_id: Optional[uuid.UUID] = None,
    ) -> List[StockTransfer]:
        """Pending and InTransit transfers leaving or arriving at a location."""
        source = [StockTransfer.source_branch_id == branch_id]
        destination = [StockTransfer.destination_branch_id == branch_id]
        if counter_id:
            source.append(StockTransfer.source_counter_id == counter_id)
            destination.append(StockTransfer.destination_counter_id == counter_id)
        if box_id:
            source.append(StockTransfer.source_box_id == box_id)
            destination.append(StockTransfer.destination_box_id == box_id)

        result = await self.db.execute(
            select(StockTransfer)
            .where(StockTransfer.status.in_(OPEN_TRANSFER_STATUSES))
            .where(or_(and_(*source), and_(*destination)))
            .order_by(StockTransfer.transfer_date)
        )
        return list(result.scalars().all())

    async def get_transfer_summary(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> TransferSummary:
        """Counts per status and type, plus per-branch incoming/outgoing figures."""
        transfers = await self._all_matching(TransferFilter(start_date=start_date, end_date=end_date))

        by_status = {s.value: 0 for s in TransferStatus}
        by_type = {t.value: 0 for t in TransferType}
        branches: Dict[uuid.UUID, BranchTransferStats] = {}
        for transfer in transfers:
            by_status[transfer.status.value] += 1
            by_type[transfer.transfer_type.value] += 1
            value = transfer.total_value
            outgoing = branches.setdefault(transfer.source_branch_id, BranchTransferStats(transfer.source_branch_id))
            outgoing.outgoing_count += 1
            outgoing.outgoing_value += value
            incoming = branches.setdefault(
                transfer.destination_branch_id, BranchTransferStats(transfer.destination_branch_id)
            )
            incoming.incoming_count += 1
            incoming.incoming_value += value

        return TransferSummary(
            total_transfers=len(transfers),
            by_status=by_status,
            by_type=by_type,
            branches=list(branches.values()),
        )
