"""
Promotions app models
Import models from their modules so Django can discover them.
"""

from .action_models import ACTION_TYPES, AdjustLineItem, AdjustShipment, PromotionAction
from .promotion_models import OrderPromotion, Promotion, PromotionCategory, PromotionCode
from .rule_models import (
    RULE_TYPES,
    FirstOrderRule,
    ItemTotalRule,
    LineProductRule,
    MinimumQuantityRule,
    ProductRule,
    PromotionRule,
    UserLoggedInRule,
    UserRule,
)

__all__ = [
    "ACTION_TYPES",
    "RULE_TYPES",
    "AdjustLineItem",
    "AdjustShipment",
    "FirstOrderRule",
    "ItemTotalRule",
    "LineProductRule",
    "MinimumQuantityRule",
    "OrderPromotion",
    "ProductRule",
    "Promotion",
    "PromotionAction",
    "PromotionCategory",
    "PromotionCode",
    "PromotionRule",
    "UserLoggedInRule",
    "UserRule",
]
