"""
Tests for order totals and the checkout flow, including the promotion
re-check that runs before an order is completed.
"""

from unittest.mock import patch

from django.test import TestCase

from apps.orders.models import Order
from apps.orders.services import OrderCheckoutService, OrderUpdater
from apps.promotions.adjuster import OrderPromotionAdjuster
from tests.factories.promotion_factories import (
    OrderCreationRequest,
    cancel_order,
    complete_order,
    create_automatic_promotion,
    create_order,
    create_user,
    days_ago,
)


def order_at_confirm(**kwargs) -> Order:
    order = create_order(OrderCreationRequest(**kwargs))
    order.state = 'confirm'
    order.save(update_fields=['state', 'updated_at'])
    return order


class OrderTotalsTestCase(TestCase):
    def test_totals_without_promotions(self):
        order = create_order(OrderCreationRequest(line_items=[(1000, 2), (250, 4)], shipment_costs=[500]))

        self.assertEqual(order.item_total_cents, 3000)
        self.assertEqual(order.shipment_total_cents, 500)
        self.assertEqual(order.promo_total_cents, 0)
        self.assertEqual(order.total_cents, 3500)

    def test_order_numbers_are_generated_and_unique(self):
        first = create_order()
        second = create_order()

        self.assertTrue(first.number.startswith('R'))
        self.assertNotEqual(first.number, second.number)

    def test_updater_uses_configured_adjuster(self):
        order = create_order()
        with patch('apps.promotions.adjuster.OrderPromotionAdjuster.call') as call:
            OrderUpdater(order).update()
        call.assert_called_once_with()

    def test_discountable_item_total_reflects_current_discounts(self):
        order = create_order(OrderCreationRequest(line_items=[(1000, 2)]))
        create_automatic_promotion('20')

        OrderPromotionAdjuster(order, dry_run=True).call()
        self.assertEqual(order.discountable_item_total, 1600)

        order.reset_current_discounts()
        self.assertEqual(order.discountable_item_total, 2000)


class CheckoutAdvanceTestCase(TestCase):
    def test_advances_through_steps_until_confirm(self):
        order = create_order()
        visited = []
        while True:
            result = OrderCheckoutService.advance(order)
            if result.is_err():
                break
            visited.append(order.state)

        self.assertEqual(visited, ['address', 'delivery', 'payment', 'confirm'])
        self.assertIn('must be completed', result.error)

    def test_empty_cart_cannot_advance(self):
        order = create_order(OrderCreationRequest(line_items=[]))
        result = OrderCheckoutService.advance(order)

        self.assertTrue(result.is_err())
        self.assertEqual(order.state, 'cart')


class CheckoutCompleteTestCase(TestCase):
    def test_complete_with_unchanged_promotions(self):
        create_automatic_promotion('20')
        order = order_at_confirm(user=create_user())

        result = OrderCheckoutService.complete(order)

        self.assertTrue(result.is_ok())
        order.refresh_from_db()
        self.assertEqual(order.state, 'complete')
        self.assertIsNotNone(order.completed_at)
        self.assertEqual(order.promo_total_cents, -400)

    def test_changed_promotion_total_restarts_checkout(self):
        promotion = create_automatic_promotion('20')
        order = order_at_confirm()
        self.assertEqual(order.promo_total_cents, -400)

        promotion.expires_at = days_ago(1)
        promotion.save()
        result = OrderCheckoutService.complete(order)

        self.assertTrue(result.is_err())
        self.assertIn("promotion total changed", result.error)
        order.refresh_from_db()
        self.assertEqual(order.state, 'address')
        self.assertIsNone(order.completed_at)
        self.assertEqual(order.promo_total_cents, 0)
        self.assertEqual(order.total_cents, 2000)

    def test_complete_succeeds_after_reconfirming_changed_total(self):
        promotion = create_automatic_promotion('20')
        order = order_at_confirm()
        promotion.expires_at = days_ago(1)
        promotion.save()
        self.assertTrue(OrderCheckoutService.complete(order).is_err())

        order.refresh_from_db()
        while OrderCheckoutService.advance(order).is_ok():
            pass
        self.assertEqual(order.state, 'confirm')

        result = OrderCheckoutService.complete(order)

        self.assertTrue(result.is_ok())
        self.assertEqual(order.checkout_errors, [])
        self.assertEqual(order.state, 'complete')
        self.assertEqual(order.total_cents, 2000)

    def test_ensure_promotions_eligible_returns_true_when_stable(self):
        create_automatic_promotion('20')
        order = order_at_confirm()

        self.assertTrue(order.ensure_promotions_eligible())
        self.assertEqual(order.checkout_errors, [])

    def test_complete_requires_confirm_state(self):
        order = create_order()
        self.assertTrue(OrderCheckoutService.complete(order).is_err())


class CheckoutCancelTestCase(TestCase):
    def test_cancel_completed_order(self):
        order = complete_order(create_order())

        result = OrderCheckoutService.cancel(order)

        self.assertTrue(result.is_ok())
        self.assertTrue(order.is_canceled)
        self.assertIsNotNone(order.canceled_at)

    def test_cannot_cancel_incomplete_or_canceled_orders(self):
        self.assertTrue(OrderCheckoutService.cancel(create_order()).is_err())

        canceled = cancel_order(complete_order(create_order()))
        self.assertTrue(OrderCheckoutService.cancel(canceled).is_err())
