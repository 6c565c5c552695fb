"""
Price calculation for custom orders
"""

from typing import Callable, Optional

from loguru import logger

from .errors import ValidationError
from .models import PricingSnapshot


PLACEMENT_COST = 15.0
MIN_BASE_PRICE = 20.0

PriceLookup = Callable[[str], Optional[float]]


def compute_pricing(base_price: float,
                    placement_count: int,
                    quantity: int,
                    placement_cost: float = PLACEMENT_COST) -> PricingSnapshot:
    """
    Compute the estimated total for an order.

    estimated_total = (base_price + placement_count * placement_cost) * quantity

    Args:
        base_price: Garment base price
        placement_count: Number of print placements
        quantity: Number of garments
        placement_cost: Flat cost per placement

    Returns:
        PricingSnapshot whose placement_cost is the total for all placements,
        without a final total

    Raises:
        ValidationError: On a negative price or count, or quantity below 1
    """
    if base_price is None or base_price < 0:
        raise ValidationError(
            f"Invalid base price: {base_price}",
            details={'basePrice': base_price}
        )
    if placement_count < 0:
        raise ValidationError(
            f"Placement count cannot be negative: {placement_count}",
            details={'placementCount': placement_count}
        )
    if quantity < 1:
        raise ValidationError(
            f"Quantity must be at least 1, got {quantity}",
            details={'quantity': quantity},
            suggestions=["Order at least one garment"]
        )

    total_placement_cost = placement_count * placement_cost
    return PricingSnapshot(
        base_price=base_price,
        placement_cost=total_placement_cost,
        quantity_multiplier=quantity,
        estimated_total=(base_price + total_placement_cost) * quantity,
    )


class PricingCalculator:
    """Resolves base prices through a product lookup and quotes orders."""

    def __init__(self,
                 price_lookup: Optional[PriceLookup] = None,
                 placement_cost: float = PLACEMENT_COST,
                 min_base_price: float = MIN_BASE_PRICE):
        self.price_lookup = price_lookup
        self.placement_cost = placement_cost
        self.min_base_price = min_base_price

    def base_price_for(self, product_id: Optional[str]) -> float:
        """Product price, or the minimum base price when it cannot be found."""
        if not product_id or self.price_lookup is None:
            return self.min_base_price

        try:
            price = self.price_lookup(product_id)
        except Exception as e:
            # A failed lookup never blocks order creation
            logger.warning(f"Price lookup failed for product {product_id}: {e}")
            return self.min_base_price

        if price is None or price < 0:
            logger.debug(f"No usable price for product {product_id}, using minimum base price")
            return self.min_base_price
        return float(price)

    def quote(self, product_id: Optional[str], placement_count: int, quantity: int) -> PricingSnapshot:
        return compute_pricing(
            self.base_price_for(product_id),
            placement_count,
            quantity,
            self.placement_cost,
        )

    def quote_builder(self, quantity: int) -> PricingSnapshot:
        """Builder orders price one placement on the minimum base price."""
        return compute_pricing(self.min_base_price, 1, quantity, self.placement_cost)
