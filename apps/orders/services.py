from __future__ import annotations

import logging
from typing import TYPE_CHECKING, ClassVar

from django.db import transaction
from django.utils import timezone

from apps.common.audit import log_security_event
from apps.common.types import Err, Ok, Result

if TYPE_CHECKING:
    from apps.promotions.conf import PromotionsSettings

    from .models import Order

"""
Order Services for the promotions platform
Totals recalculation and checkout transitions for host orders.
"""

logger = logging.getLogger(__name__)

# ===============================================================================
# ORDER TOTALS
# ===============================================================================

class OrderUpdater:
    """Recalculates item, shipment, promotion and grand totals for an order."""

    def __init__(self, order: Order, config: PromotionsSettings | None = None) -> None:
        self.order = order
        self.config = config

    @transaction.atomic
    def update(self) -> Order:
        order = self.order
        order.refresh_promotable_items()

        self.update_item_totals()
        self.update_promotions()
        self.update_adjustment_totals()

        order.total_cents = max(
            0,
            order.item_total_cents + order.shipment_total_cents + order.adjustment_total_cents
        )
        order.save(update_fields=[
            'item_total_cents',
            'shipment_total_cents',
            'promo_total_cents',
            'adjustment_total_cents',
            'total_cents',
            'updated_at',
        ])
        return order

    def update_item_totals(self) -> None:
        order = self.order
        order.item_total_cents = sum(item.amount for item in order.promotable_line_items())
        order.shipment_total_cents = sum(shipment.amount for shipment in order.promotable_shipments())

    def update_promotions(self) -> None:
        from apps.promotions.conf import get_promotions_settings  # noqa: PLC0415 - Circular import prevention

        config = self.config or get_promotions_settings()
        config.adjuster_class(self.order, config=config).call()

    def update_adjustment_totals(self) -> None:
        order = self.order
        eligible = order.adjustments.filter(eligible=True)
        order.promo_total_cents = sum(
            eligible.filter(adjustment_type='promotion').values_list('amount_cents', flat=True)
        )
        order.adjustment_total_cents = sum(eligible.values_list('amount_cents', flat=True))


# ===============================================================================
# CHECKOUT SERVICE
# ===============================================================================

class OrderCheckoutService:
    """Moves orders through checkout, completion and cancellation."""

    FINAL_STEP: ClassVar[str] = 'complete'

    @staticmethod
    @transaction.atomic
    def advance(order: Order) -> Result[Order, str]:
        """Move the order to the next checkout step before confirmation."""
        steps = order.CHECKOUT_STEPS
        if order.state not in steps:
            return Err(f"Order {order.number} is not in checkout")

        next_index = steps.index(order.state) + 1
        if next_index >= len(steps) or steps[next_index] == OrderCheckoutService.FINAL_STEP:
            return Err(f"Order {order.number} must be completed, not advanced")
        if order.state == 'cart' and not order.line_items.exists():
            return Err("Cannot check out an empty cart")

        old_state = order.state
        order.state = steps[next_index]
        order.save(update_fields=['state', 'updated_at'])
        logger.info(f"🛒 [Checkout] Order {order.number}: {old_state} → {order.state}")
        return Ok(order)

    @staticmethod
    @transaction.atomic
    def complete(order: Order) -> Result[Order, str]:
        """Complete checkout once promotions have been re-validated."""
        if order.state != 'confirm':
            return Err(f"Order {order.number} cannot be completed from state {order.state}")

        if not order.ensure_promotions_eligible():
            logger.warning(
                f"⚠️ [Checkout] Order {order.number} promotion total changed before completion"
            )
            return Err(' '.join(order.checkout_errors))

        order.state = 'complete'
        order.completed_at = timezone.now()
        order.save(update_fields=['state', 'completed_at', 'updated_at'])

        log_security_event(
            'order_completed',
            {
                'order_number': order.number,
                'order_id': str(order.id),
                'total_cents': order.total_cents,
                'promo_total_cents': order.promo_total_cents,
                'user_id': str(order.user_id) if order.user_id else None,
            }
        )
        return Ok(order)

    @staticmethod
    @transaction.atomic
    def cancel(order: Order) -> Result[Order, str]:
        """Cancel a completed order; its promotion usage stops counting."""
        if not order.is_complete or order.is_canceled:
            return Err(f"Order {order.number} cannot be canceled")

        order.state = 'canceled'
        order.canceled_at = timezone.now()
        order.save(update_fields=['state', 'canceled_at', 'updated_at'])
        logger.info(f"🛒 [Checkout] Order {order.number} canceled")
        return Ok(order)
