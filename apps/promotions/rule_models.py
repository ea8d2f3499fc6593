"""
Promotion rules.

Every rule lives in the promotion_rules table and is tagged by its `type`
column. Variants are proxy models registered in RULE_TYPES; rows loaded
through any manager come back as the registered variant for their tag.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, ClassVar

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext as _

from .discounts import EligibilityResult

RULE_TYPES: dict[str, type[PromotionRule]] = {}


def register_rule(cls: type[PromotionRule]) -> type[PromotionRule]:
    RULE_TYPES[cls.rule_type] = cls
    return cls


def format_cents(cents: int) -> str:
    return f"{Decimal(cents) / 100:.2f}"


class PromotionRuleManager(models.Manager['PromotionRule']):
    def get_queryset(self) -> models.QuerySet[PromotionRule]:
        queryset = super().get_queryset()
        if self.model._meta.proxy and self.model.rule_type:
            queryset = queryset.filter(type=self.model.rule_type)
        return queryset


class PromotionRule(models.Model):
    rule_type: ClassVar[str] = ''

    promotion = models.ForeignKey('promotions.Promotion', on_delete=models.CASCADE, related_name='rules')
    type = models.CharField(max_length=50, db_index=True)
    preferences = models.JSONField(default=dict, blank=True)

    products = models.ManyToManyField('orders.Product', blank=True, related_name='promotion_rules')
    users = models.ManyToManyField(settings.AUTH_USER_MODEL, blank=True, related_name='promotion_rules')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PromotionRuleManager()

    class Meta:
        db_table = 'promotion_rules'
        ordering: ClassVar[tuple[str, ...]] = ('created_at', 'id')

    def __str__(self) -> str:
        return f"{self.type or 'rule'} #{self.pk}"

    @classmethod
    def from_db(cls, db: str | None, field_names: Any, values: Any) -> PromotionRule:
        instance = super().from_db(db, field_names, values)
        variant = RULE_TYPES.get(instance.__dict__.get('type', ''))
        if variant is not None and type(instance) is not variant:
            instance.__class__ = variant
        return instance

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.rule_type:
            self.type = self.rule_type
        super().save(*args, **kwargs)

    def preference(self, key: str, default: Any = None) -> Any:
        return (self.preferences or {}).get(key, default)

    def applicable(self, promotable: Any) -> bool:
        """Whether this kind of rule checks this kind of promotable at all."""
        raise NotImplementedError(f"{type(self).__name__} must implement applicable()")

    def eligibility(self, promotable: Any, **options: Any) -> EligibilityResult:
        """Evaluate the rule; returns a fresh result carrying any errors."""
        raise NotImplementedError(f"{type(self).__name__} must implement eligibility()")

    def eligible(self, promotable: Any, **options: Any) -> bool:
        return self.eligibility(promotable, **options).eligible


class OrderRule(PromotionRule):
    """Base for rules that check the whole order."""

    class Meta:
        proxy = True

    def applicable(self, promotable: Any) -> bool:
        return promotable.promotable_kind == 'order'


def promotionable_line_items(order: Any) -> list[Any]:
    return [line_item for line_item in order.promotable_line_items() if line_item.product.promotionable]


# ===============================================================================
# ORDER RULES
# ===============================================================================

@register_rule
class UserLoggedInRule(OrderRule):
    rule_type: ClassVar[str] = 'user_logged_in'

    class Meta:
        proxy = True

    def eligibility(self, promotable: Any, **options: Any) -> EligibilityResult:
        if promotable.user_id is None:
            return EligibilityResult.failure(
                'no_user_specified', _("You need to log in before applying this coupon code.")
            )
        return EligibilityResult()


@register_rule
class FirstOrderRule(OrderRule):
    rule_type: ClassVar[str] = 'first_order'

    class Meta:
        proxy = True

    def eligibility(self, promotable: Any, **options: Any) -> EligibilityResult:
        from apps.orders.models import Order  # noqa: PLC0415 - Circular import prevention

        order = promotable
        if order.user_id is None and not order.email:
            return EligibilityResult.failure(
                'no_user_or_email_specified', _("You need to log in or give an email address first.")
            )

        owner = Q(user_id=order.user_id) if order.user_id else Q(email__iexact=order.email)
        previous_orders = Order.objects.complete().not_canceled().filter(owner).exclude(pk=order.pk)
        if previous_orders.exists():
            return EligibilityResult.failure(
                'not_first_order', _("This coupon code can only be applied to your first order.")
            )
        return EligibilityResult()


@register_rule
class UserRule(OrderRule):
    rule_type: ClassVar[str] = 'user'

    class Meta:
        proxy = True

    def eligibility(self, promotable: Any, **options: Any) -> EligibilityResult:
        allowed = {user.pk for user in self.users.all()} if self.pk is not None else set()
        if promotable.user_id not in allowed:
            return EligibilityResult.failure(
                'no_matching_users', _("This coupon code is not available for this user.")
            )
        return EligibilityResult()


@register_rule
class ItemTotalRule(OrderRule):
    """Order item total must be above (gt) or at least (gte) `amount` cents."""

    rule_type: ClassVar[str] = 'item_total'

    class Meta:
        proxy = True

    def eligibility(self, promotable: Any, **options: Any) -> EligibilityResult:
        amount = int(self.preference('amount', 0))
        operator = self.preference('operator', 'gt')
        item_total = sum(line_item.amount for line_item in promotable.promotable_line_items())

        if operator == 'gte':
            if item_total < amount:
                return EligibilityResult.failure(
                    'item_total_less_than',
                    _("This coupon code can't be applied to orders less than %(amount)s.")
                    % {'amount': format_cents(amount)},
                )
        elif item_total <= amount:
            return EligibilityResult.failure(
                'item_total_less_than_or_equal',
                _("This coupon code can't be applied to orders less than or equal to %(amount)s.")
                % {'amount': format_cents(amount)},
            )
        return EligibilityResult()


@register_rule
class MinimumQuantityRule(OrderRule):
    rule_type: ClassVar[str] = 'minimum_quantity'

    class Meta:
        proxy = True

    def eligibility(self, promotable: Any, **options: Any) -> EligibilityResult:
        minimum = int(self.preference('minimum_quantity', 1))
        quantity = sum(line_item.quantity for line_item in promotionable_line_items(promotable))
        if quantity < minimum:
            return EligibilityResult.failure(
                'quantity_less_than_minimum',
                _("You need to add %(count)s applicable items before applying this coupon code.")
                % {'count': minimum},
            )
        return EligibilityResult()


@register_rule
class ProductRule(OrderRule):
    """
    Order must contain products from `products` according to match_policy:
    any (at least one), all (every one), none (no product from the list).
    """

    rule_type: ClassVar[str] = 'product'
    MATCH_POLICIES: ClassVar[tuple[str, ...]] = ('any', 'all', 'none')

    class Meta:
        proxy = True

    def eligibility(self, promotable: Any, **options: Any) -> EligibilityResult:
        policy = self.preference('match_policy', 'any')
        rule_products = {product.pk for product in self.products.all()} if self.pk is not None else set()
        order_products = {line_item.product_id for line_item in promotable.promotable_line_items()}

        if policy == 'all':
            if not rule_products <= order_products:
                return EligibilityResult.failure(
                    'missing_product', _("This coupon code can't be applied because you don't have all of the necessary products in your cart.")
                )
        elif policy == 'none':
            if rule_products & order_products:
                return EligibilityResult.failure(
                    'has_excluded_product', _("Your cart contains a product that prevents this coupon code from being applied.")
                )
        elif not rule_products & order_products:
            return EligibilityResult.failure(
                'no_applicable_products', _("You need to add an applicable product before applying this coupon code.")
            )
        return EligibilityResult()


# ===============================================================================
# LINE ITEM RULES
# ===============================================================================

@register_rule
class LineProductRule(PromotionRule):
    """Line item's product must (include) or must not (exclude) be in `products`."""

    rule_type: ClassVar[str] = 'line_product'

    class Meta:
        proxy = True

    def applicable(self, promotable: Any) -> bool:
        return promotable.promotable_kind == 'line_item'

    def eligibility(self, promotable: Any, **options: Any) -> EligibilityResult:
        exclude = self.preference('match_policy', 'include') == 'exclude'
        rule_products = {product.pk for product in self.products.all()} if self.pk is not None else set()
        matches = promotable.product_id in rule_products

        if exclude and matches:
            return EligibilityResult.failure(
                'has_excluded_product', _("This product is excluded from this promotion.")
            )
        if not exclude and not matches:
            return EligibilityResult.failure(
                'no_applicable_products', _("This product is not part of this promotion.")
            )
        return EligibilityResult()
