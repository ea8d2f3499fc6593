# ===============================================================================
# TEST FACTORIES FOR ORDERS AND PROMOTIONS
# ===============================================================================
"""
Plain factory functions for orders, promotions, rules, actions and codes.

Amounts are cents throughout. Orders are created in the cart state; use
complete_order() to mark one complete without going through checkout.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from django.contrib.auth import get_user_model
from django.utils import timezone

from apps.orders.models import LineItem, Order, Product, Shipment
from apps.promotions.models import (
    AdjustLineItem,
    AdjustShipment,
    Promotion,
    PromotionAction,
    PromotionCode,
    PromotionRule,
)

User = get_user_model()


# ===============================================================================
# USERS & CATALOG
# ===============================================================================

def create_user(username: str = 'shopper', is_staff: bool = False) -> Any:
    """Create a user, deriving a unique username when the default is taken."""
    candidate = username
    counter = 1
    while User.objects.filter(username=candidate).exists():
        candidate = f"{username}_{counter}"
        counter += 1
    return User.objects.create_user(
        username=candidate,
        email=f"{candidate}@example.com",
        password='SecureTestPass123!',
        is_staff=is_staff,
    )


def create_product(name: str = 'T-Shirt', sku: str | None = None, promotionable: bool = True) -> Product:
    sku = sku or f"SKU-{Product.objects.count() + 1:04d}"
    return Product.objects.create(name=name, sku=sku, promotionable=promotionable)


# ===============================================================================
# ORDERS
# ===============================================================================

@dataclass
class OrderCreationRequest:
    """Parameter object for order creation."""
    user: Any = None
    email: str = ''
    state: str = 'cart'
    # (price_cents, quantity) per line item; each gets its own product
    line_items: list[tuple[int, int]] = field(default_factory=lambda: [(1000, 2)])
    shipment_costs: list[int] = field(default_factory=list)


def create_order(request: OrderCreationRequest | None = None) -> Order:
    """Create an order with line items and shipments, totals recalculated."""
    if request is None:
        request = OrderCreationRequest()

    order = Order.objects.create(user=request.user, email=request.email, state=request.state)
    for price_cents, quantity in request.line_items:
        add_line_item(order, price_cents=price_cents, quantity=quantity)
    for cost_cents in request.shipment_costs:
        add_shipment(order, cost_cents=cost_cents)
    order.recalculate()
    return order


def add_line_item(order: Order, product: Product | None = None, price_cents: int = 1000, quantity: int = 1) -> LineItem:
    line_item = LineItem.objects.create(
        order=order,
        product=product or create_product(),
        price_cents=price_cents,
        quantity=quantity,
    )
    order.refresh_promotable_items()
    return line_item


def add_shipment(order: Order, cost_cents: int = 500) -> Shipment:
    shipment = Shipment.objects.create(order=order, cost_cents=cost_cents)
    order.refresh_promotable_items()
    return shipment


def complete_order(order: Order, completed_at: Any = None) -> Order:
    """Mark an order complete directly, skipping the checkout flow."""
    order.state = 'complete'
    order.completed_at = completed_at or timezone.now()
    order.save(update_fields=['state', 'completed_at', 'updated_at'])
    return order


def cancel_order(order: Order) -> Order:
    order.state = 'canceled'
    order.canceled_at = timezone.now()
    order.save(update_fields=['state', 'canceled_at', 'updated_at'])
    return order


# ===============================================================================
# PROMOTIONS
# ===============================================================================

def create_promotion(name: str = '20% off', **kwargs: Any) -> Promotion:
    """Create a promotion; pass apply_automatically=True for automatic promotions."""
    kwargs.setdefault('customer_label', name)
    return Promotion.objects.create(name=name, **kwargs)


def add_action(
    promotion: Promotion | None,
    action_class: type[PromotionAction] = AdjustLineItem,
    calculator_type: str = 'percent',
    calculator_preferences: dict[str, Any] | None = None,
) -> PromotionAction:
    if calculator_preferences is None:
        calculator_preferences = {'percent': '20'} if calculator_type == 'percent' else {}
    return action_class.objects.create(
        promotion=promotion,
        calculator_type=calculator_type,
        calculator_preferences=calculator_preferences,
    )


def add_shipping_action(promotion: Promotion) -> PromotionAction:
    return add_action(promotion, AdjustShipment, 'free_shipping')


def create_automatic_promotion(percent: str = '20', **kwargs: Any) -> Promotion:
    """Automatic promotion taking `percent` off every promotionable line item."""
    kwargs.setdefault('name', f"{percent}% off")
    promotion = create_promotion(apply_automatically=True, **kwargs)
    add_action(promotion, calculator_preferences={'percent': percent})
    return promotion


def add_rule(
    promotion: Promotion,
    rule_class: type[PromotionRule],
    preferences: dict[str, Any] | None = None,
    products: list[Product] | None = None,
    users: list[Any] | None = None,
) -> PromotionRule:
    rule = rule_class.objects.create(promotion=promotion, preferences=preferences or {})
    if products:
        rule.products.set(products)
    if users:
        rule.users.set(users)
    return rule


def create_code(promotion: Promotion, value: str = 'SUMMER20') -> PromotionCode:
    return PromotionCode.objects.create(promotion=promotion, value=value)


def days_ago(days: int) -> Any:
    return timezone.now() - timedelta(days=days)


def days_from_now(days: int) -> Any:
    return timezone.now() + timedelta(days=days)
