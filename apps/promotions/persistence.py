"""
Writes a discounted order's in-memory discounts out as adjustments.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from apps.orders.models import Adjustment, Order

    from .discounts import ItemDiscount

logger = logging.getLogger(__name__)


class PersistDiscountedOrder:
    """
    Syncs promotion adjustments with each item's current_discounts.

    One adjustment per (item, source action). Existing adjustments are only
    written when their label or amount changed; adjustments whose action no
    longer discounts the item are removed.
    """

    def __init__(self, order: Order) -> None:
        self.order = order

    def call(self) -> Order:
        order = self.order
        created = updated = removed = 0

        for item in [*order.promotable_line_items(), *order.promotable_shipments()]:
            c, u, r = self.persist_item(item)
            created += c
            updated += u
            removed += r

        order.promo_total_cents = sum(
            item.promo_total_cents
            for item in [*order.promotable_line_items(), *order.promotable_shipments()]
        )

        if created or updated or removed:
            logger.info(
                f"🎟️ [Promotions] Order {order.number} adjustments: "
                f"{created} created, {updated} updated, {removed} removed"
            )
        return order

    def persist_item(self, item: Any) -> tuple[int, int, int]:
        from apps.orders.models import Adjustment  # noqa: PLC0415 - Circular import prevention

        existing: dict[Any, Adjustment] = {}
        stale: list[Any] = []
        for adjustment in item.adjustments.filter(adjustment_type='promotion').order_by('created_at', 'id'):
            if adjustment.source_id is None or adjustment.source_id in existing:
                stale.append(adjustment.pk)
            else:
                existing[adjustment.source_id] = adjustment

        created = updated = 0
        for discount in item.current_discounts:
            adjustment = existing.pop(discount.source.pk, None)
            if adjustment is None:
                Adjustment.objects.create(
                    order=self.order,
                    adjustment_type='promotion',
                    source=discount.source,
                    label=discount.label,
                    amount_cents=discount.amount,
                    eligible=True,
                    **{item.promotable_kind: item},
                )
                created += 1
            elif self.update_adjustment(adjustment, discount):
                updated += 1

        stale.extend(adjustment.pk for adjustment in existing.values())
        if stale:
            Adjustment.objects.filter(pk__in=stale).delete()

        promo_total = sum(discount.amount for discount in item.current_discounts)
        if item.promo_total_cents != promo_total:
            item.promo_total_cents = promo_total
            item.save(update_fields=['promo_total_cents', 'updated_at'])

        return created, updated, len(stale)

    @staticmethod
    def update_adjustment(adjustment: Adjustment, discount: ItemDiscount) -> bool:
        changed = []
        if adjustment.label != discount.label:
            adjustment.label = discount.label
            changed.append('label')
        if adjustment.amount_cents != discount.amount:
            adjustment.amount_cents = discount.amount
            changed.append('amount_cents')
        if not adjustment.eligible:
            adjustment.eligible = True
            changed.append('eligible')
        if not changed:
            return False
        adjustment.save(update_fields=[*changed, 'updated_at'])
        return True
