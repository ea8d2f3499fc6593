"""
In-memory discounting of an order.

Nothing here touches the database beyond reading rules and actions: discounts
are collected on each item's current_discounts and written out afterwards by
PersistDiscountedOrder.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from .promotion_models import Promotion

if TYPE_CHECKING:
    from apps.orders.models import Order

    from .discounts import ItemDiscount

logger = logging.getLogger(__name__)


class DiscountChooser:
    """
    Picks the discounts an item keeps.

    Discounts from one promotion stack; between promotions only the one
    giving the largest total reduction wins.
    """

    def __init__(self, item: Any) -> None:
        self.item = item

    def call(self, discounts: list[ItemDiscount]) -> list[ItemDiscount]:
        by_promotion: dict[Any, list[ItemDiscount]] = defaultdict(list)
        for discount in discounts:
            by_promotion[discount.source.promotion_id].append(discount)
        if not by_promotion:
            return []
        return min(by_promotion.values(), key=lambda group: sum(discount.amount for discount in group))


class ItemDiscounter:
    """Collects every discount the given promotions offer a single item."""

    def __init__(self, promotions: list[Promotion]) -> None:
        self.promotions = promotions

    def call(self, item: Any) -> list[ItemDiscount]:
        discounts = []
        for promotion in self.promotions:
            if not promotion.eligible_for_promotable(item):
                continue
            for action in promotion.actions_by_level():
                if not action.can_discount(item):
                    continue
                discount = action.discount(item)
                if discount is not None:
                    discounts.append(discount)
        return discounts


class DiscountOrder:
    """
    Runs the lanes in order (pre, default, post). Each lane sees the item
    amounts already reduced by the lanes before it.
    """

    def __init__(
        self,
        order: Order,
        promotions: list[Promotion],
        discount_chooser_class: type[DiscountChooser] = DiscountChooser,
    ) -> None:
        self.order = order
        self.promotions = promotions
        self.discount_chooser_class = discount_chooser_class

    def call(self) -> Order:
        for lane in Promotion.ordered_lanes():
            lane_promotions = [
                promotion for promotion in self.promotions
                if promotion.lane == lane and promotion.eligible_for_promotable(self.order)
            ]
            if not lane_promotions:
                continue

            item_discounter = ItemDiscounter(lane_promotions)
            chosen = self.adjust_line_items(item_discounter) + self.adjust_shipments(item_discounter)
            for item, discounts in chosen:
                item.current_discounts.extend(discounts)

            logger.debug(
                f"🎟️ [Promotions] Order {self.order.number} lane {lane}: "
                f"{len(lane_promotions)} promotions, {sum(len(d) for _, d in chosen)} discounts"
            )
        return self.order

    def adjust_line_items(self, item_discounter: ItemDiscounter) -> list[tuple[Any, list[ItemDiscount]]]:
        return [
            (line_item, self.choose(line_item, item_discounter.call(line_item)))
            for line_item in self.order.promotable_line_items()
            if line_item.product.promotionable
        ]

    def adjust_shipments(self, item_discounter: ItemDiscounter) -> list[tuple[Any, list[ItemDiscount]]]:
        return [
            (shipment, self.choose(shipment, item_discounter.call(shipment)))
            for shipment in self.order.promotable_shipments()
        ]

    def choose(self, item: Any, discounts: list[ItemDiscount]) -> list[ItemDiscount]:
        return self.discount_chooser_class(item).call(discounts)
