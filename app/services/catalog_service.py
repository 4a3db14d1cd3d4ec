"""
StockLedger - Catalog Service

Product catalog and RFID tag assignment registry over the tenant's store.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select

from app.models.catalog import (
    Box,
    Branch,
    Category,
    Counter,
    Product,
    ProductStatus,
    TagAssignment,
)
from app.tenancy import TenantContext
from app.utils.error_handling import (
    ConflictException,
    LocationNotFoundException,
    ProductNotFoundException,
    TagNotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)


class CatalogService:
    """Read and maintain products, locations and tag assignments."""

    def __init__(self, tenant: TenantContext):
        self.tenant = tenant
        self.db = tenant.db

    # ===========================================
    # PRODUCTS
    # ===========================================

    async def get_product(self, product_id: uuid.UUID) -> Optional[Product]:
        return await self.db.get(Product, product_id)

    async def require_product(self, product_id: uuid.UUID) -> Product:
        product = await self.get_product(product_id)
        if not product:
            raise ProductNotFoundException(product_id)
        return product

    async def get_product_by_item_code(self, item_code: str) -> Optional[Product]:
        result = await self.db.execute(
            select(Product).where(Product.item_code == item_code)
        )
        return result.scalar_one_or_none()

    async def list_product_ids(self, active_only: bool = False) -> List[uuid.UUID]:
        query = select(Product.id).order_by(Product.item_code)
        if active_only:
            query = query.where(Product.status == ProductStatus.ACTIVE)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_product(
        self,
        item_code: str,
        category_id: uuid.UUID,
        branch_id: uuid.UUID,
        counter_id: uuid.UUID,
        mrp: Decimal,
        box_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
    ) -> Product:
        """Add a product at a location. Does not record stock."""
        if await self.get_product_by_item_code(item_code):
            raise ConflictException(
                f"Product with item code '{item_code}' already exists",
                resource_type="Product",
            )
        await self.require_location(branch_id, counter_id, box_id)

        product = Product(
            item_code=item_code,
            description=description,
            category_id=category_id,
            branch_id=branch_id,
            counter_id=counter_id,
            box_id=box_id,
            mrp=mrp,
        )
        self.db.add(product)
        await self.db.flush()
        return product

    def move_product(
        self,
        product: Product,
        branch_id: uuid.UUID,
        counter_id: uuid.UUID,
        box_id: Optional[uuid.UUID],
    ) -> None:
        """Change the product's current location (caller commits)."""
        product.branch_id = branch_id
        product.counter_id = counter_id
        product.box_id = box_id

    # ===========================================
    # LOCATIONS
    # ===========================================

    async def create_branch(self, name: str) -> Branch:
        branch = Branch(name=name)
        self.db.add(branch)
        await self.db.flush()
        return branch

    async def create_counter(self, branch_id: uuid.UUID, name: str) -> Counter:
        if not await self.db.get(Branch, branch_id):
            raise LocationNotFoundException("Branch", branch_id)
        counter = Counter(branch_id=branch_id, name=name)
        self.db.add(counter)
        await self.db.flush()
        return counter

    async def create_box(self, name: str, box_type: Optional[str] = None) -> Box:
        box = Box(name=name, box_type=box_type)
        self.db.add(box)
        await self.db.flush()
        return box

    async def create_category(self, name: str) -> Category:
        category = Category(name=name)
        self.db.add(category)
        await self.db.flush()
        return category

    async def require_location(
        self,
        branch_id: uuid.UUID,
        counter_id: uuid.UUID,
        box_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Check that the branch, counter and box exist and that the counter
        belongs to the branch.
        """
        if not await self.db.get(Branch, branch_id):
            raise LocationNotFoundException("Branch", branch_id)
        counter = await self.db.get(Counter, counter_id)
        if not counter:
            raise LocationNotFoundException("Counter", counter_id)
        if counter.branch_id != branch_id:
            raise ValidationException(
                f"Counter {counter_id} does not belong to branch {branch_id}",
                field="counter_id",
            )
        if box_id is not None and not await self.db.get(Box, box_id):
            raise LocationNotFoundException("Box", box_id)

    # ===========================================
    # TAG ASSIGNMENTS
    # ===========================================

    async def resolve_tag(self, tag_code: str) -> Product:
        """Return the product a tag is currently assigned to."""
        result = await self.db.execute(
            select(TagAssignment)
            .where(TagAssignment.tag_code == tag_code)
            .where(TagAssignment.is_active.is_(True))
        )
        assignment = result.scalars().first()
        if not assignment:
            raise TagNotFoundException(tag_code)
        return await self.require_product(assignment.product_id)

    async def get_active_tag(self, product_id: uuid.UUID) -> Optional[str]:
        result = await self.db.execute(
            select(TagAssignment.tag_code)
            .where(TagAssignment.product_id == product_id)
            .where(TagAssignment.is_active.is_(True))
            .order_by(TagAssignment.assigned_at.desc())
        )
        return result.scalars().first()

    async def assign_tag(self, tag_code: str, product_id: uuid.UUID) -> TagAssignment:
        await self.require_product(product_id)
        result = await self.db.execute(
            select(TagAssignment)
            .where(TagAssignment.tag_code == tag_code)
            .where(TagAssignment.is_active.is_(True))
        )
        if result.scalars().first():
            raise ConflictException(
                f"Tag '{tag_code}' is already assigned",
                resource_type="TagAssignment",
            )
        assignment = TagAssignment(tag_code=tag_code, product_id=product_id)
        self.db.add(assignment)
        await self.db.flush()
        logger.info(f"Tag {tag_code} assigned to product {product_id}")
        return assignment

    async def unassign_tag(self, tag_code: str) -> None:
        result = await self.db.execute(
            select(TagAssignment)
            .where(TagAssignment.tag_code == tag_code)
            .where(TagAssignment.is_active.is_(True))
        )
        assignment = result.scalars().first()
        if not assignment:
            raise TagNotFoundException(tag_code)
        assignment.is_active = False
        assignment.unassigned_at = datetime.utcnow()
        await self.db.flush()
