"""
Discount calculators for promotion actions.

Calculators are plain objects built from the (calculator_type, preferences) pair
stored on a PromotionAction. compute() returns the discount in positive cents,
or None when the calculator does not apply to the given item.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, ClassVar

# ===============================================================================
# HELPERS
# ===============================================================================

HUNDRED = Decimal('100')


class CalculatorConfigurationError(ValueError):
    """Raised when a calculator is built with invalid preferences."""


def round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def to_decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise CalculatorConfigurationError(f"{name} must be a number, got {value!r}") from e


def to_cents(value: Any, name: str) -> int:
    try:
        cents = int(value)
    except (TypeError, ValueError) as e:
        raise CalculatorConfigurationError(f"{name} must be an amount in cents, got {value!r}") from e
    if cents < 0:
        raise CalculatorConfigurationError(f"{name} cannot be negative")
    return cents


def validate_percent(percent: Decimal, name: str = 'percent') -> None:
    if percent < 0 or percent > HUNDRED:
        raise CalculatorConfigurationError(f"{name} must be between 0 and 100, got {percent}")


def clamp(discount: int, discountable_amount: int) -> int:
    return max(0, min(discount, discountable_amount))


# ===============================================================================
# CALCULATORS
# ===============================================================================

CALCULATORS: dict[str, type[Calculator]] = {}


def register_calculator(cls: type[Calculator]) -> type[Calculator]:
    CALCULATORS[cls.calculator_type] = cls
    return cls


class Calculator:
    calculator_type: ClassVar[str] = ''

    def compute(self, discountable: Any) -> int | None:
        raise NotImplementedError(f"{type(self).__name__} must implement compute()")

    @property
    def preferences(self) -> dict[str, Any]:
        raise NotImplementedError


@register_calculator
@dataclass
class PercentCalculator(Calculator):
    """Takes a percentage off the discountable amount."""

    calculator_type: ClassVar[str] = 'percent'

    percent: Decimal = Decimal('0')

    def __post_init__(self) -> None:
        self.percent = to_decimal(self.percent, 'percent')
        validate_percent(self.percent)

    def compute(self, discountable: Any) -> int | None:
        amount = discountable.discountable_amount
        return clamp(round_cents(amount * self.percent / HUNDRED), amount)

    @property
    def preferences(self) -> dict[str, Any]:
        return {'percent': str(self.percent)}


@register_calculator
@dataclass
class FlatRateCalculator(Calculator):
    calculator_type: ClassVar[str] = 'flat_rate'

    amount: int = 0

    def __post_init__(self) -> None:
        self.amount = to_cents(self.amount, 'amount')

    def compute(self, discountable: Any) -> int | None:
        return clamp(self.amount, discountable.discountable_amount)

    @property
    def preferences(self) -> dict[str, Any]:
        return {'amount': self.amount}


def order_basis(discountable: Any) -> int:
    order = discountable if discountable.promotable_kind == 'order' else discountable.order
    return order.discountable_item_total


@register_calculator
@dataclass
class TieredPercentCalculator(Calculator):
    """
    Percentage chosen by the order's discountable item total.

    tiers maps a threshold in cents to the percent applied once the order
    reaches it; below every threshold base_percent applies.
    """

    calculator_type: ClassVar[str] = 'tiered_percent'

    base_percent: Decimal = Decimal('0')
    tiers: dict[int, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.base_percent = to_decimal(self.base_percent, 'base_percent')
        validate_percent(self.base_percent, 'base_percent')
        tiers = {}
        for threshold, percent in dict(self.tiers).items():
            value = to_decimal(percent, 'tier percent')
            validate_percent(value, 'tier percent')
            tiers[to_cents(threshold, 'tier threshold')] = value
        self.tiers = dict(sorted(tiers.items()))

    def percent_for(self, basis: int) -> Decimal:
        percent = self.base_percent
        for threshold, tier_percent in self.tiers.items():
            if basis >= threshold:
                percent = tier_percent
        return percent

    def compute(self, discountable: Any) -> int | None:
        amount = discountable.discountable_amount
        percent = self.percent_for(order_basis(discountable))
        return clamp(round_cents(amount * percent / HUNDRED), amount)

    @property
    def preferences(self) -> dict[str, Any]:
        return {
            'base_percent': str(self.base_percent),
            'tiers': {str(threshold): str(percent) for threshold, percent in self.tiers.items()},
        }


@register_calculator
@dataclass
class TieredFlatRateCalculator(Calculator):
    calculator_type: ClassVar[str] = 'tiered_flat_rate'

    base_amount: int = 0
    tiers: dict[int, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.base_amount = to_cents(self.base_amount, 'base_amount')
        self.tiers = dict(sorted(
            (to_cents(threshold, 'tier threshold'), to_cents(amount, 'tier amount'))
            for threshold, amount in dict(self.tiers).items()
        ))

    def compute(self, discountable: Any) -> int | None:
        basis = order_basis(discountable)
        amount = self.base_amount
        for threshold, tier_amount in self.tiers.items():
            if basis >= threshold:
                amount = tier_amount
        return clamp(amount, discountable.discountable_amount)

    @property
    def preferences(self) -> dict[str, Any]:
        return {
            'base_amount': self.base_amount,
            'tiers': {str(threshold): amount for threshold, amount in self.tiers.items()},
        }


@register_calculator
@dataclass
class FlexiRateCalculator(Calculator):
    """first_item for the first unit, additional_item for each further unit up to max_items (0 = no cap)."""

    calculator_type: ClassVar[str] = 'flexi_rate'

    first_item: int = 0
    additional_item: int = 0
    max_items: int = 0

    def __post_init__(self) -> None:
        self.first_item = to_cents(self.first_item, 'first_item')
        self.additional_item = to_cents(self.additional_item, 'additional_item')
        self.max_items = to_cents(self.max_items, 'max_items')

    def compute(self, discountable: Any) -> int | None:
        quantity = getattr(discountable, 'quantity', None)
        if not quantity:
            return None
        if self.max_items:
            quantity = min(quantity, self.max_items)
        discount = self.first_item + self.additional_item * (quantity - 1)
        return clamp(discount, discountable.discountable_amount)

    @property
    def preferences(self) -> dict[str, Any]:
        return {
            'first_item': self.first_item,
            'additional_item': self.additional_item,
            'max_items': self.max_items,
        }


@register_calculator
@dataclass
class DistributedAmountCalculator(Calculator):
    """
    Spreads a fixed amount over the order's promotionable line items,
    weighted by their discountable amounts. Leftover cents go to the items
    with the largest rounding remainders so the shares add up exactly.
    """

    calculator_type: ClassVar[str] = 'distributed_amount'

    amount: int = 0

    def __post_init__(self) -> None:
        self.amount = to_cents(self.amount, 'amount')

    def compute(self, discountable: Any) -> int | None:
        if discountable.promotable_kind != 'line_item':
            return None

        line_items = [
            line_item for line_item in discountable.order.promotable_line_items()
            if line_item.product.promotionable
        ]
        weights = [max(0, line_item.discountable_amount) for line_item in line_items]
        total = sum(weights)
        if total == 0:
            return 0

        to_distribute = min(self.amount, total)
        exact = [Decimal(to_distribute) * weight / total for weight in weights]
        shares = [int(share.to_integral_value(rounding=ROUND_DOWN)) for share in exact]
        leftover = to_distribute - sum(shares)
        by_remainder = sorted(
            range(len(shares)), key=lambda index: (-(exact[index] - shares[index]), index)
        )
        for index in by_remainder[:leftover]:
            shares[index] += 1

        for line_item, share in zip(line_items, shares):
            if line_item.pk == discountable.pk:
                return clamp(share, discountable.discountable_amount)
        return None

    @property
    def preferences(self) -> dict[str, Any]:
        return {'amount': self.amount}


@register_calculator
@dataclass
class FreeShippingCalculator(Calculator):
    calculator_type: ClassVar[str] = 'free_shipping'

    def compute(self, discountable: Any) -> int | None:
        if discountable.promotable_kind != 'shipment':
            return None
        return max(0, discountable.discountable_amount)

    @property
    def preferences(self) -> dict[str, Any]:
        return {}


def build_calculator(calculator_type: str, preferences: dict[str, Any] | None = None) -> Calculator:
    """Instantiate a registered calculator, failing fast on unknown types or bad preferences."""
    try:
        calculator_class = CALCULATORS[calculator_type]
    except KeyError as e:
        raise CalculatorConfigurationError(f"Unknown calculator type: {calculator_type!r}") from e

    try:
        return calculator_class(**(preferences or {}))
    except TypeError as e:
        raise CalculatorConfigurationError(
            f"Invalid preferences for {calculator_type} calculator: {e}"
        ) from e
