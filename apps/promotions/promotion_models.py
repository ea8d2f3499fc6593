"""
Promotion records: promotions, their codes, categories and order links.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, ClassVar

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.db.models import Case, IntegerField, Q, Value, When
from django.utils import timezone
from django.utils.translation import gettext as _t
from django.utils.translation import gettext_lazy as _

from apps.common.audit import log_security_event

from .discounts import EligibilityResult

if TYPE_CHECKING:
    from datetime import datetime

    from apps.orders.models import Order, OrderQuerySet, Product

    from .action_models import PromotionAction

logger = logging.getLogger(__name__)

LANE_RANKS: dict[str, int] = {'pre': 0, 'default': 1, 'post': 2}


def order_for(promotable: Any) -> Order:
    """The order a promotable belongs to (an order is its own order)."""
    return promotable if promotable.promotable_kind == 'order' else promotable.order


def order_ids(orders: Iterable[Order]) -> list[Any]:
    return [order.pk for order in orders if order is not None and order.pk is not None]


# ===============================================================================
# PROMOTION CATEGORY
# ===============================================================================

class PromotionCategory(models.Model):
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=50, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'promotion_categories'
        verbose_name_plural = _('Promotion categories')
        ordering: ClassVar[tuple[str, ...]] = ('name',)

    def __str__(self) -> str:
        return self.name


# ===============================================================================
# PROMOTION
# ===============================================================================

class PromotionQuerySet(models.QuerySet['Promotion']):
    def advertised(self) -> PromotionQuerySet:
        return self.filter(advertise=True)

    def coupons(self) -> PromotionQuerySet:
        """Promotions with at least one code, each listed once."""
        return self.filter(codes__isnull=False).distinct()

    def has_actions(self) -> PromotionQuerySet:
        return self.filter(actions__isnull=False).distinct()

    def active(self, time: datetime | None = None) -> PromotionQuerySet:
        time = time or timezone.now()
        return (
            self.has_actions()
            .filter(Q(starts_at__isnull=True) | Q(starts_at__lte=time))
            .filter(Q(expires_at__isnull=True) | Q(expires_at__gte=time))
        )

    def in_lane_order(self) -> PromotionQuerySet:
        """Sort by lane (pre, default, post), then by creation order."""
        lane_rank = Case(
            *[When(lane=lane, then=Value(rank)) for lane, rank in LANE_RANKS.items()],
            output_field=IntegerField(),
        )
        return self.annotate(lane_rank=lane_rank).order_by('lane_rank', 'created_at', 'id')


class Promotion(models.Model):
    """
    A discount campaign: rules decide eligibility, actions compute discounts.

    Activation is derived from starts_at/expires_at and the presence of
    actions on every call; nothing about it is stored.
    """

    LANE_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ('pre', _('Pre')),
        ('default', _('Default')),
        ('post', _('Post')),
    )
    MATCH_POLICY_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ('all', _('Match all rules')),
        ('any', _('Match any rule')),
    )

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    customer_label = models.CharField(
        max_length=255,
        help_text=_("Label shown to customers on discounted items")
    )
    category = models.ForeignKey(
        PromotionCategory,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='promotions'
    )
    lane = models.CharField(max_length=10, choices=LANE_CHOICES, default='default')
    match_policy = models.CharField(max_length=3, choices=MATCH_POLICY_CHOICES, default='all')

    usage_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        help_text=_("Maximum number of completed orders that may use this promotion")
    )
    per_code_usage_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        help_text=_("Maximum number of completed orders per promotion code")
    )

    starts_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    apply_automatically = models.BooleanField(default=False)
    advertise = models.BooleanField(default=False)
    path = models.CharField(max_length=255, null=True, blank=True)

    # Identifier of the legacy promotion this record was migrated from
    original_promotion_id = models.PositiveBigIntegerField(null=True, blank=True)

    orders = models.ManyToManyField(
        'orders.Order',
        through='OrderPromotion',
        through_fields=('promotion', 'order'),
        related_name='promotions',
        blank=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PromotionQuerySet.as_manager()

    class Meta:
        db_table = 'promotions'
        ordering: ClassVar[tuple[str, ...]] = ('created_at',)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=['starts_at', 'expires_at']),
            models.Index(fields=['apply_automatically']),
            models.Index(fields=['advertise']),
        )

    def __str__(self) -> str:
        return self.name

    @classmethod
    def ordered_lanes(cls) -> dict[str, int]:
        return dict(LANE_RANKS)

    # ---------------------------------------------------------------------------
    # Persistence
    # ---------------------------------------------------------------------------

    def clean(self) -> None:
        errors: dict[str, str] = {}
        if self.apply_automatically and self.path:
            errors['apply_automatically'] = _t("Promotions with a path cannot be applied automatically.")
        elif self.apply_automatically and self.pk is not None and self.codes.exists():
            errors['apply_automatically'] = _t("Promotions with codes cannot be applied automatically.")
        if self.starts_at and self.expires_at and self.expires_at < self.starts_at:
            errors['expires_at'] = _t("Expiry must not be before the start date.")
        if errors:
            raise ValidationError(errors)

    def save(self, *args: Any, **kwargs: Any) -> None:
        # Forms post blank paths as empty strings
        self.path = self.path or None
        self.full_clean()
        super().save(*args, **kwargs)

    @transaction.atomic
    def delete(self, *args: Any, **kwargs: Any) -> tuple[int, dict[str, int]]:
        """Delete the promotion but keep its actions (and their adjustments) for reporting."""
        detached = self.actions.update(promotion=None)
        logger.info(f"🗑️ [Promotions] Deleting promotion {self.pk}, {detached} actions detached")
        log_security_event(
            'promotion_destroyed',
            {'promotion_id': self.pk, 'name': self.name, 'detached_actions': detached}
        )
        return super().delete(*args, **kwargs)

    # ---------------------------------------------------------------------------
    # Activation
    # ---------------------------------------------------------------------------

    def not_started(self, time: datetime | None = None) -> bool:
        time = time or timezone.now()
        return self.starts_at is not None and time < self.starts_at

    def started(self, time: datetime | None = None) -> bool:
        return not self.not_started(time)

    def expired(self, time: datetime | None = None) -> bool:
        time = time or timezone.now()
        return self.expires_at is not None and self.expires_at < time

    def not_expired(self, time: datetime | None = None) -> bool:
        return not self.expired(time)

    def has_actions(self) -> bool:
        if self.pk is None:
            return False
        return len(self.actions.all()) > 0

    def active(self, time: datetime | None = None) -> bool:
        time = time or timezone.now()
        return self.started(time) and self.not_expired(time) and self.has_actions()

    def inactive(self, time: datetime | None = None) -> bool:
        return not self.active(time)

    # ---------------------------------------------------------------------------
    # Usage tracking
    # ---------------------------------------------------------------------------

    def completed_orders_with_eligible_adjustments(
        self, excluded_orders: Iterable[Order] = ()
    ) -> OrderQuerySet:
        from apps.orders.models import Order  # noqa: PLC0415 - Circular import prevention

        return (
            Order.objects.complete().not_canceled()
            .filter(adjustments__eligible=True, adjustments__source__promotion=self)
            .exclude(pk__in=order_ids(excluded_orders))
            .distinct()
        )

    def usage_count(self, excluded_orders: Iterable[Order] = ()) -> int:
        """Number of completed, non-canceled orders that received this promotion."""
        if self.pk is None:
            return 0
        return self.completed_orders_with_eligible_adjustments(excluded_orders).count()

    def usage_limit_exceeded(self, excluded_orders: Iterable[Order] = ()) -> bool:
        if self.usage_limit is None:
            return False
        return self.usage_count(excluded_orders) >= self.usage_limit

    def used_by(self, user: Any, excluded_orders: Iterable[Order] = ()) -> bool:
        if user is None or self.pk is None:
            return False
        return self.completed_orders_with_eligible_adjustments(excluded_orders).filter(user=user).exists()

    def products(self) -> models.QuerySet[Product]:
        """Products referenced by this promotion's product rules."""
        from apps.orders.models import Product  # noqa: PLC0415 - Circular import prevention

        if self.pk is None:
            return Product.objects.none()
        return Product.objects.filter(promotion_rules__promotion=self).distinct()

    # ---------------------------------------------------------------------------
    # Eligibility
    # ---------------------------------------------------------------------------

    def actions_by_level(self) -> list[PromotionAction]:
        """Actions in application order: line item level before shipment level."""
        from .action_models import ACTION_LEVELS  # noqa: PLC0415 - Circular import prevention

        return sorted(
            self.actions.all(),
            key=lambda action: (ACTION_LEVELS.index(action.level), action.pk or 0),
        )

    def can_discount(self, promotable: Any) -> bool:
        actions = self.actions.all() if self.pk is not None else []
        if promotable.promotable_kind == 'order':
            return len(actions) > 0
        return any(action.can_discount(promotable) for action in actions)

    def rules_eligibility(self, promotable: Any) -> EligibilityResult:
        results = [
            rule.eligibility(promotable)
            for rule in (self.rules.all() if self.pk is not None else [])
            if rule.applicable(promotable)
        ]
        if self.match_policy == 'any' and results and any(result.eligible for result in results):
            return EligibilityResult()

        merged = EligibilityResult()
        for result in results:
            merged = merged.merge(result)
        return merged

    def eligibility_errors_for(self, promotable: Any) -> EligibilityResult:
        """Evaluate activation, actions, rules and usage limit against a promotable."""
        order = order_for(promotable)
        reference_time = order.completed_at or timezone.now()

        if not self.active(reference_time):
            return EligibilityResult.failure(
                'promotion_inactive', _t("This promotion is not active.")
            )
        if not self.can_discount(promotable):
            return EligibilityResult.failure(
                'no_applicable_actions', _t("This promotion cannot discount this item.")
            )

        result = self.rules_eligibility(promotable)
        if result.eligible and self.usage_limit_exceeded(excluded_orders=[order]):
            return EligibilityResult.failure(
                'usage_limit_exceeded', _t("This promotion has reached its usage limit.")
            )
        return result

    def eligible_for_promotable(self, promotable: Any) -> bool:
        return self.eligibility_errors_for(promotable).eligible


# ===============================================================================
# PROMOTION CODES
# ===============================================================================

class PromotionCode(models.Model):
    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name='codes')
    value = models.CharField(max_length=255, unique=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'promotion_codes'
        ordering: ClassVar[tuple[str, ...]] = ('created_at',)

    def __str__(self) -> str:
        return self.value

    @staticmethod
    def normalize(value: str) -> str:
        return value.strip().lower()

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.value = self.normalize(self.value)
        super().save(*args, **kwargs)

    def usage_count(self, excluded_orders: Iterable[Order] = ()) -> int:
        """Completed, non-canceled orders that used this code and got the discount."""
        from apps.orders.models import Order  # noqa: PLC0415 - Circular import prevention

        return (
            Order.objects.complete().not_canceled()
            .filter(order_promotions__promotion_code=self)
            .filter(adjustments__eligible=True, adjustments__source__promotion_id=self.promotion_id)
            .exclude(pk__in=order_ids(excluded_orders))
            .distinct()
            .count()
        )

    def usage_limit_exceeded(self, excluded_orders: Iterable[Order] = ()) -> bool:
        limit = self.promotion.per_code_usage_limit
        if limit is None:
            return False
        return self.usage_count(excluded_orders) >= limit


# ===============================================================================
# ORDER <-> PROMOTION LINK
# ===============================================================================

class OrderPromotion(models.Model):
    """Connects an order to a promotion, optionally through the code that was entered."""

    order = models.ForeignKey('orders.Order', on_delete=models.CASCADE, related_name='order_promotions')
    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name='order_promotions')
    promotion_code = models.ForeignKey(
        PromotionCode,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='order_promotions'
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'order_promotions'
        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.UniqueConstraint(
                fields=['order', 'promotion', 'promotion_code'],
                name='unique_order_promotion_code',
            ),
        ]

    def __str__(self) -> str:
        code = f" ({self.promotion_code})" if self.promotion_code_id else ''
        return f"{self.promotion}{code} on {self.order}"
