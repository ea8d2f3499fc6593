"""
Order Promotion Adjuster
Loads the promotions that may apply to an order, discounts it lane by lane
and persists the result as adjustments.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from .conf import PromotionsSettings, get_promotions_settings
from .discounter import DiscountOrder
from .persistence import PersistDiscountedOrder
from .promotion_models import Promotion

if TYPE_CHECKING:
    from apps.orders.models import Order

logger = logging.getLogger(__name__)


class PromotionLoader:
    """Connected plus automatic promotions active at the order's reference time."""

    def __init__(self, order: Order) -> None:
        self.order = order

    def connected_promotion_ids(self) -> list[int]:
        if self.order.pk is None or self.order._state.adding:
            return []

        ids = []
        links = self.order.order_promotions.select_related('promotion_code__promotion')
        for link in links:
            code = link.promotion_code
            if code is not None and code.usage_limit_exceeded(excluded_orders=[self.order]):
                logger.info(
                    f"🎟️ [Promotions] Skipping code {code.value} on order {self.order.number}: usage limit reached"
                )
                continue
            ids.append(link.promotion_id)
        return ids

    def promotions(self) -> list[Promotion]:
        reference_time = self.order.completed_at or timezone.now()
        queryset = (
            Promotion.objects
            .filter(Q(pk__in=self.connected_promotion_ids()) | Q(apply_automatically=True))
            .active(reference_time)
            .in_lane_order()
            .prefetch_related('rules__products', 'rules__users', 'actions')
        )
        return list(queryset)


class OrderPromotionAdjuster:
    """
    Recomputes every promotion adjustment on an order.

    The pass starts from a clean slate: in-memory discounts are reset, each
    lane is discounted in turn and the outcome replaces whatever adjustments
    the previous pass wrote. With dry_run the discounts stay on the items
    for inspection and nothing is written.
    """

    def __init__(self, order: Order, config: PromotionsSettings | None = None, dry_run: bool = False) -> None:
        self.order = order
        self.config = config or get_promotions_settings()
        self.dry_run = dry_run

    def call(self) -> Order:
        order = self.order
        order.reset_current_discounts()

        if order.is_complete and not self.config.recalculate_complete_orders:
            logger.debug(f"🎟️ [Promotions] Order {order.number} is complete, leaving adjustments as they are")
            return order

        with transaction.atomic():
            promotions = PromotionLoader(order).promotions()
            discounted_order = DiscountOrder(
                order,
                promotions,
                discount_chooser_class=self.config.discount_chooser_class,
            ).call()

            if not self.dry_run:
                PersistDiscountedOrder(discounted_order).call()
                order.reset_current_discounts()

        return order
