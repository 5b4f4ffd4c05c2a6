import logging
from collections import defaultdict
from decimal import Decimal
from typing import List

from agrilink_orders.domain.models import (
    CartLine, OrderItem, Principal, B2BPricing, ValidatedCart, quantize, segment_for_role
)
from agrilink_orders.domain.exceptions import (
    EmptyCartError,
    ProductNotFoundError,
    ProductNotAvailableForSegmentError,
    BelowMinimumQuantityError,
    InsufficientInventoryError,
    MixedFarmerCartError,
)
from agrilink_orders.application.interfaces import CatalogReader


logger = logging.getLogger(__name__)


class PricingEngine:
    """Resolves a cart against the catalog for the buyer's marketplace segment.

    Reads only. Stock is checked but not reserved: two carts can both pass
    against the same units, settlement is where the floor is enforced.
    """

    def __init__(self, catalog: CatalogReader):
        self._catalog = catalog

    async def validate(self, cart: List[CartLine], buyer: Principal) -> ValidatedCart:
        if not cart:
            raise EmptyCartError()

        segment = segment_for_role(buyer.role)
        requested = defaultdict(int)
        items: List[OrderItem] = []
        subtotal = Decimal("0")
        farmer_id = None

        for line in cart:
            product = await self._catalog.get_by_id(line.product_id)
            if not product:
                raise ProductNotFoundError(f"Product {line.product_id} not found")

            pricing = product.pricing.for_segment(segment)
            if pricing is None:
                raise ProductNotAvailableForSegmentError(product.id, segment.value)

            if isinstance(pricing, B2BPricing) and line.quantity < pricing.min_quantity:
                raise BelowMinimumQuantityError(product.id, pricing.min_quantity, pricing.unit, line.quantity)

            # Repeated lines for one product draw on the same stock
            requested[product.id] += line.quantity
            if requested[product.id] > product.inventory.available_quantity:
                raise InsufficientInventoryError(
                    product.id, product.inventory.available_quantity, requested[product.id]
                )

            if farmer_id is None:
                farmer_id = product.farmer_id
            elif product.farmer_id != farmer_id:
                raise MixedFarmerCartError(farmer_id, product.farmer_id)

            item = OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price=quantize(pricing.price),
                unit=pricing.unit,
                segment=segment,
            )
            items.append(item)
            subtotal += item.line_total

        logger.info(f"Cart validated for buyer {buyer.id}: {len(items)} items, {segment.value}, subtotal {subtotal}")
        return ValidatedCart(farmer_id=farmer_id, items=items, subtotal=quantize(subtotal))
