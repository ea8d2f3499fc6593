"""
Tests for promotion discount calculators.
Calculators only read discountable_amount and a few attributes, so plain
stand-in objects are enough here.
"""

from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase

from apps.promotions.calculators import (
    CALCULATORS,
    Calculator,
    CalculatorConfigurationError,
    DistributedAmountCalculator,
    FlatRateCalculator,
    FlexiRateCalculator,
    FreeShippingCalculator,
    PercentCalculator,
    TieredFlatRateCalculator,
    TieredPercentCalculator,
    build_calculator,
)


def make_order(line_item_amounts: list[int]) -> SimpleNamespace:
    order = SimpleNamespace(promotable_kind='order')
    items = [
        SimpleNamespace(
            pk=index + 1,
            promotable_kind='line_item',
            discountable_amount=amount,
            quantity=1,
            product=SimpleNamespace(promotionable=True),
            order=order,
        )
        for index, amount in enumerate(line_item_amounts)
    ]
    order.promotable_line_items = lambda: items
    order.discountable_item_total = sum(line_item_amounts)
    return order


def make_line_item(amount: int, quantity: int = 1) -> SimpleNamespace:
    order = make_order([amount])
    line_item = order.promotable_line_items()[0]
    line_item.quantity = quantity
    return line_item


def make_shipment(amount: int) -> SimpleNamespace:
    return SimpleNamespace(promotable_kind='shipment', discountable_amount=amount, order=make_order([]))


class PercentCalculatorTestCase(SimpleTestCase):
    def test_percent_of_discountable_amount(self):
        self.assertEqual(PercentCalculator(percent='20').compute(make_line_item(2000)), 400)

    def test_rounds_half_up_to_whole_cents(self):
        self.assertEqual(PercentCalculator(percent='12.5').compute(make_line_item(100)), 13)
        self.assertEqual(PercentCalculator(percent='20').compute(make_line_item(1999)), 400)

    def test_zero_percent_is_zero_not_none(self):
        self.assertEqual(PercentCalculator(percent='0').compute(make_line_item(2000)), 0)

    def test_never_exceeds_discountable_amount(self):
        self.assertEqual(PercentCalculator(percent='100').compute(make_line_item(750)), 750)

    def test_percent_out_of_range_rejected(self):
        with self.assertRaises(CalculatorConfigurationError):
            PercentCalculator(percent='150')
        with self.assertRaises(CalculatorConfigurationError):
            PercentCalculator(percent='-1')

    def test_preferences_round_trip_through_registry(self):
        calculator = build_calculator('percent', {'percent': '15'})
        self.assertIsInstance(calculator, PercentCalculator)
        self.assertEqual(calculator.percent, Decimal('15'))
        self.assertEqual(calculator.preferences, {'percent': '15'})


class FlatRateCalculatorTestCase(SimpleTestCase):
    def test_flat_amount(self):
        self.assertEqual(FlatRateCalculator(amount=500).compute(make_line_item(2000)), 500)

    def test_clamped_to_discountable_amount(self):
        self.assertEqual(FlatRateCalculator(amount=5000).compute(make_line_item(2000)), 2000)

    def test_negative_amount_rejected(self):
        with self.assertRaises(CalculatorConfigurationError):
            FlatRateCalculator(amount=-1)


class TieredCalculatorsTestCase(SimpleTestCase):
    def test_tiered_percent_uses_highest_reached_tier(self):
        calculator = TieredPercentCalculator(base_percent='5', tiers={'10000': '10', '20000': '15'})
        order = make_order([6000, 9000])
        line_item = order.promotable_line_items()[0]

        # Order total 15000 reaches the 10000 tier only
        self.assertEqual(calculator.compute(line_item), 600)

    def test_tiered_percent_below_every_tier_uses_base(self):
        calculator = TieredPercentCalculator(base_percent='5', tiers={'10000': '10'})
        self.assertEqual(calculator.compute(make_line_item(2000)), 100)

    def test_tiered_percent_validates_tier_percent(self):
        with self.assertRaises(CalculatorConfigurationError):
            TieredPercentCalculator(base_percent='5', tiers={'10000': '110'})

    def test_tiered_flat_rate(self):
        calculator = TieredFlatRateCalculator(base_amount=100, tiers={'5000': 300, '10000': 800})
        self.assertEqual(calculator.compute(make_line_item(7000)), 300)
        self.assertEqual(calculator.compute(make_line_item(12000)), 800)
        self.assertEqual(calculator.compute(make_line_item(50)), 50)


class FlexiRateCalculatorTestCase(SimpleTestCase):
    def test_first_and_additional_items_up_to_max(self):
        calculator = FlexiRateCalculator(first_item=500, additional_item=200, max_items=3)
        self.assertEqual(calculator.compute(make_line_item(10000, quantity=5)), 900)

    def test_no_cap_when_max_items_zero(self):
        calculator = FlexiRateCalculator(first_item=500, additional_item=200)
        self.assertEqual(calculator.compute(make_line_item(10000, quantity=5)), 1300)

    def test_not_applicable_without_quantity(self):
        calculator = FlexiRateCalculator(first_item=500)
        self.assertIsNone(calculator.compute(make_shipment(1000)))


class DistributedAmountCalculatorTestCase(SimpleTestCase):
    def test_distributes_proportionally(self):
        order = make_order([3000, 1000])
        calculator = DistributedAmountCalculator(amount=1000)
        shares = [calculator.compute(line_item) for line_item in order.promotable_line_items()]
        self.assertEqual(shares, [750, 250])

    def test_remainder_cents_keep_sum_exact(self):
        order = make_order([1000, 1000, 1000])
        calculator = DistributedAmountCalculator(amount=100)
        shares = [calculator.compute(line_item) for line_item in order.promotable_line_items()]
        self.assertEqual(sum(shares), 100)
        self.assertEqual(shares, [34, 33, 33])

    def test_amount_larger_than_order_is_capped(self):
        order = make_order([300, 200])
        calculator = DistributedAmountCalculator(amount=10000)
        shares = [calculator.compute(line_item) for line_item in order.promotable_line_items()]
        self.assertEqual(shares, [300, 200])

    def test_not_applicable_to_shipments(self):
        self.assertIsNone(DistributedAmountCalculator(amount=100).compute(make_shipment(500)))


class FreeShippingCalculatorTestCase(SimpleTestCase):
    def test_full_shipment_amount(self):
        self.assertEqual(FreeShippingCalculator().compute(make_shipment(799)), 799)

    def test_line_items_are_not_applicable(self):
        self.assertIsNone(FreeShippingCalculator().compute(make_line_item(2000)))


class CalculatorRegistryTestCase(SimpleTestCase):
    def test_registry_contains_every_variant(self):
        self.assertEqual(
            set(CALCULATORS),
            {
                'percent', 'flat_rate', 'tiered_percent', 'tiered_flat_rate',
                'flexi_rate', 'distributed_amount', 'free_shipping',
            },
        )

    def test_unknown_type_fails_fast(self):
        with self.assertRaises(CalculatorConfigurationError):
            build_calculator('buy_one_get_one', {})

    def test_unknown_preference_fails_fast(self):
        with self.assertRaises(CalculatorConfigurationError):
            build_calculator('flat_rate', {'amount': 100, 'currency': 'RON'})

    def test_base_calculator_compute_is_abstract(self):
        with self.assertRaises(NotImplementedError):
            Calculator().compute(make_line_item(100))
