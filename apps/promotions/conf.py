"""
Promotion engine configuration.
Reads settings.PROMOTIONS once per call and hands explicit objects to the adjuster.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.utils.module_loading import import_string

DEFAULTS: dict[str, Any] = {
    'ADJUSTER_CLASS': 'apps.promotions.adjuster.OrderPromotionAdjuster',
    'DISCOUNT_CHOOSER_CLASS': 'apps.promotions.discounter.DiscountChooser',
    'RECALCULATE_COMPLETE_ORDERS': True,
}


@dataclass(frozen=True)
class PromotionsSettings:
    adjuster_class: type
    discount_chooser_class: type
    recalculate_complete_orders: bool


def get_promotions_settings() -> PromotionsSettings:
    """Build the engine settings from settings.PROMOTIONS layered over DEFAULTS."""
    configured = {**DEFAULTS, **getattr(settings, 'PROMOTIONS', {})}
    return PromotionsSettings(
        adjuster_class=import_string(configured['ADJUSTER_CLASS']),
        discount_chooser_class=import_string(configured['DISCOUNT_CHOOSER_CLASS']),
        recalculate_complete_orders=bool(configured['RECALCULATE_COMPLETE_ORDERS']),
    )
