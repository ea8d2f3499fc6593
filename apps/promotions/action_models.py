"""
Promotion actions.

An action pairs a calculator with the kind of item it discounts. Like rules,
actions share one table tagged by `type`, with proxy variants in ACTION_TYPES.
"""

from __future__ import annotations

from typing import Any, ClassVar

from django.core.exceptions import ValidationError
from django.db import models
from django.utils.translation import gettext as _t
from django.utils.translation import gettext_lazy as _

from .calculators import Calculator, CalculatorConfigurationError, build_calculator
from .discounts import ItemDiscount

ACTION_TYPES: dict[str, type[PromotionAction]] = {}

# Application order of action levels
ACTION_LEVELS: tuple[str, ...] = ('line_item', 'shipment')


def register_action(cls: type[PromotionAction]) -> type[PromotionAction]:
    ACTION_TYPES[cls.action_type] = cls
    return cls


class PromotionActionManager(models.Manager['PromotionAction']):
    def get_queryset(self) -> models.QuerySet[PromotionAction]:
        queryset = super().get_queryset()
        if self.model._meta.proxy and self.model.action_type:
            queryset = queryset.filter(type=self.model.action_type)
        return queryset


class PromotionAction(models.Model):
    action_type: ClassVar[str] = ''
    available_calculators: ClassVar[tuple[str, ...]] = ()

    # Nulled rather than deleted with the promotion so adjustments keep their source
    promotion = models.ForeignKey(
        'promotions.Promotion',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='actions'
    )
    type = models.CharField(max_length=50, db_index=True)
    calculator_type = models.CharField(max_length=50)
    calculator_preferences = models.JSONField(default=dict, blank=True)

    # Identifier of the legacy promotion action this record was migrated from
    original_promotion_action_id = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text=_("Legacy promotion action this action was migrated from")
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PromotionActionManager()

    class Meta:
        db_table = 'promotion_actions'
        ordering: ClassVar[tuple[str, ...]] = ('created_at', 'id')

    def __str__(self) -> str:
        return f"{self.type or 'action'} ({self.calculator_type}) #{self.pk}"

    @classmethod
    def from_db(cls, db: str | None, field_names: Any, values: Any) -> PromotionAction:
        instance = super().from_db(db, field_names, values)
        variant = ACTION_TYPES.get(instance.__dict__.get('type', ''))
        if variant is not None and type(instance) is not variant:
            instance.__class__ = variant
        return instance

    def clean(self) -> None:
        if self.available_calculators and self.calculator_type not in self.available_calculators:
            raise ValidationError({
                'calculator_type': _t("%(calculator)s calculators cannot be used with this action.")
                % {'calculator': self.calculator_type}
            })
        try:
            build_calculator(self.calculator_type, self.calculator_preferences)
        except CalculatorConfigurationError as e:
            raise ValidationError({'calculator_preferences': str(e)}) from e

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.action_type:
            self.type = self.action_type
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def calculator(self) -> Calculator:
        return build_calculator(self.calculator_type, self.calculator_preferences)

    @property
    def level(self) -> str:
        """Which kind of item this action discounts; decides application order."""
        raise NotImplementedError(f"{type(self).__name__} must define level")

    def can_discount(self, discountable: Any) -> bool:
        raise NotImplementedError(f"{type(self).__name__} must implement can_discount()")

    def adjustment_label(self) -> str:
        label = self.promotion.customer_label if self.promotion else ''
        return _t("Promotion (%(label)s)") % {'label': label}

    def compute_amount(self, discountable: Any) -> int | None:
        return self.calculator.compute(discountable)

    def discount(self, discountable: Any) -> ItemDiscount | None:
        """Build the discount for an item, or None when there is nothing to take off."""
        amount = self.compute_amount(discountable)
        if not amount:
            return None
        return ItemDiscount(
            item=discountable,
            label=self.adjustment_label(),
            source=self,
            amount=-abs(amount),
        )


@register_action
class AdjustLineItem(PromotionAction):
    action_type: ClassVar[str] = 'adjust_line_item'
    available_calculators: ClassVar[tuple[str, ...]] = (
        'percent',
        'flat_rate',
        'tiered_percent',
        'tiered_flat_rate',
        'flexi_rate',
        'distributed_amount',
    )

    class Meta:
        proxy = True

    @property
    def level(self) -> str:
        return 'line_item'

    def can_discount(self, discountable: Any) -> bool:
        return discountable.promotable_kind == 'line_item'


@register_action
class AdjustShipment(PromotionAction):
    action_type: ClassVar[str] = 'adjust_shipment'
    available_calculators: ClassVar[tuple[str, ...]] = (
        'percent',
        'flat_rate',
        'tiered_percent',
        'tiered_flat_rate',
        'free_shipping',
    )

    class Meta:
        proxy = True

    @property
    def level(self) -> str:
        return 'shipment'

    def can_discount(self, discountable: Any) -> bool:
        return discountable.promotable_kind == 'shipment'
