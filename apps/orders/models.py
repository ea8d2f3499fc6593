"""
Order models for the promotions platform
Host-side order records the promotion engine discounts: orders, line items,
shipments and the adjustments written against them.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any, ClassVar

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

if TYPE_CHECKING:
    from apps.promotions.discounts import ItemDiscount

# ===============================================================================
# CATALOG
# ===============================================================================

class Product(models.Model):
    """Sellable product referenced by line items and product rules."""

    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=64, unique=True)
    promotionable = models.BooleanField(
        default=True,
        help_text=_("Whether promotions may discount this product")
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'products'
        ordering: ClassVar[tuple[str, ...]] = ('name',)

    def __str__(self) -> str:
        return f"{self.name} ({self.sku})"


# ===============================================================================
# ORDER MANAGEMENT MODELS
# ===============================================================================

class OrderQuerySet(models.QuerySet['Order']):
    def complete(self) -> OrderQuerySet:
        return self.filter(completed_at__isnull=False)

    def not_canceled(self) -> OrderQuerySet:
        return self.exclude(state='canceled')


class Order(models.Model):
    """
    Customer order moving through the checkout flow.
    Totals are kept in cents and recomputed by the OrderUpdater service.
    """

    promotable_kind: ClassVar[str] = 'order'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    number = models.CharField(
        max_length=32,
        unique=True,
        help_text=_("Human-readable order number")
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders'
    )
    email = models.EmailField(blank=True)

    # Checkout state machine
    CHECKOUT_STEPS: ClassVar[tuple[str, ...]] = (
        'cart', 'address', 'delivery', 'payment', 'confirm', 'complete'
    )
    STATE_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ('cart', _('Cart')),
        ('address', _('Address')),
        ('delivery', _('Delivery')),
        ('payment', _('Payment')),
        ('confirm', _('Confirm')),
        ('complete', _('Complete')),
        ('canceled', _('Canceled')),
    )
    state = models.CharField(max_length=20, choices=STATE_CHOICES, default='cart')

    currency = models.CharField(max_length=3, default='RON')

    # Amounts in cents for precision
    item_total_cents = models.BigIntegerField(default=0)
    shipment_total_cents = models.BigIntegerField(default=0)
    promo_total_cents = models.BigIntegerField(
        default=0,
        help_text=_("Sum of eligible promotion adjustments (negative)")
    )
    adjustment_total_cents = models.BigIntegerField(default=0)
    total_cents = models.BigIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    canceled_at = models.DateTimeField(null=True, blank=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        db_table = 'orders'
        verbose_name = _('Order')
        verbose_name_plural = _('Orders')
        ordering: ClassVar[tuple[str, ...]] = ('-created_at',)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=['user', 'completed_at']),
            models.Index(fields=['email', 'completed_at']),
            models.Index(fields=['state', '-created_at']),
        )

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.checkout_errors: list[str] = []
        self._promotable_line_items: list[LineItem] | None = None
        self._promotable_shipments: list[Shipment] | None = None

    def __str__(self) -> str:
        return f"Order {self.number}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        """Auto-generate order number before saving"""
        if not self.number:
            self.generate_number()
        super().save(*args, **kwargs)

    def generate_number(self) -> None:
        """Generate an order number based on date and daily sequence"""
        date_part = timezone.now().strftime('%Y%m%d')
        today_orders = Order.objects.filter(created_at__date=timezone.now().date()).count()
        sequence = today_orders + 1
        candidate = f"R{date_part}{sequence:05d}"
        while Order.objects.filter(number=candidate).exists():
            sequence += 1
            candidate = f"R{date_part}{sequence:05d}"
        self.number = candidate

    # ---------------------------------------------------------------------------
    # Checkout state
    # ---------------------------------------------------------------------------

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    @property
    def is_canceled(self) -> bool:
        return self.state == 'canceled'

    def restart_checkout_flow(self) -> None:
        """Send the order back to the start of checkout and re-enter the first step."""
        self.state = 'cart'
        if self.line_items.exists():
            self.state = 'address'
        self.save(update_fields=['state', 'updated_at'])

    # ---------------------------------------------------------------------------
    # Promotion integration
    # ---------------------------------------------------------------------------

    def promotable_line_items(self) -> list[LineItem]:
        """Line items shared by every step of one promotion pass."""
        if self._promotable_line_items is None:
            self._promotable_line_items = list(
                self.line_items.select_related('product').order_by('created_at', 'id')
            )
        return self._promotable_line_items

    def promotable_shipments(self) -> list[Shipment]:
        if self._promotable_shipments is None:
            self._promotable_shipments = list(self.shipments.order_by('created_at', 'id'))
        return self._promotable_shipments

    def refresh_promotable_items(self) -> None:
        self._promotable_line_items = None
        self._promotable_shipments = None

    @property
    def discountable_item_total(self) -> int:
        return sum(line_item.discountable_amount for line_item in self.promotable_line_items())

    def reset_current_discounts(self) -> None:
        for line_item in self.promotable_line_items():
            line_item.reset_current_discounts()
        for shipment in self.promotable_shipments():
            shipment.reset_current_discounts()

    def recalculate(self) -> Order:
        """Recompute totals and promotions for this order."""
        from .services import OrderUpdater  # noqa: PLC0415 - Circular import prevention

        return OrderUpdater(self).update()

    def ensure_promotions_eligible(self) -> bool:
        """
        Re-run the configured promotion adjuster before completing checkout.

        When the promotion total moved, the order is sent back through checkout
        and a user-facing error is recorded instead of charging a stale total.
        """
        from apps.promotions.conf import get_promotions_settings  # noqa: PLC0415 - Circular import prevention

        self.checkout_errors = []
        previous_promo_total = self.promo_total_cents
        self.refresh_promotable_items()
        get_promotions_settings().adjuster_class(self).call()

        if self.promo_total_cents != previous_promo_total:
            self.restart_checkout_flow()
            self.recalculate()
            self.checkout_errors.append(
                str(_("Your order's promotion total changed. Please review and confirm your order again."))
            )
        return not self.checkout_errors


class PromotableItemMixin(models.Model):
    """
    Shared discount state for line items and shipments.
    current_discounts only lives for the duration of one promotion pass.
    """

    promo_total_cents = models.BigIntegerField(default=0)

    class Meta:
        abstract = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.current_discounts: list[ItemDiscount] = []

    @property
    def amount(self) -> int:
        raise NotImplementedError

    @property
    def discountable_amount(self) -> int:
        """Amount left to discount after discounts from earlier lanes."""
        return self.amount + sum(discount.amount for discount in self.current_discounts)

    def reset_current_discounts(self) -> None:
        self.current_discounts = []


class LineItem(PromotableItemMixin):
    """Individual product line in an order."""

    promotable_kind: ClassVar[str] = 'line_item'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='line_items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='line_items')

    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    price_cents = models.BigIntegerField(
        validators=[MinValueValidator(0)],
        help_text=_("Unit price in cents (snapshot)")
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'order_line_items'
        ordering: ClassVar[tuple[str, ...]] = ('created_at',)

    def __str__(self) -> str:
        return f"{self.product.name} x{self.quantity} ({self.order.number})"

    @property
    def amount(self) -> int:
        return self.price_cents * self.quantity

    @property
    def total_cents(self) -> int:
        return self.amount + self.promo_total_cents


class Shipment(PromotableItemMixin):
    """Shipment of an order with its selected shipping cost."""

    promotable_kind: ClassVar[str] = 'shipment'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='shipments')
    shipping_method = models.CharField(max_length=100, default='standard')
    cost_cents = models.BigIntegerField(default=0, validators=[MinValueValidator(0)])

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'order_shipments'
        ordering: ClassVar[tuple[str, ...]] = ('created_at',)

    def __str__(self) -> str:
        return f"Shipment {self.shipping_method} ({self.order.number})"

    @property
    def amount(self) -> int:
        return self.cost_cents


class Adjustment(models.Model):
    """
    Persisted price change against a line item or shipment.
    Only eligible adjustments count toward totals and promotion usage.
    """

    TYPE_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ('promotion', _('Promotion')),
        ('manual', _('Manual')),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='adjustments')
    line_item = models.ForeignKey(
        LineItem,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='adjustments'
    )
    shipment = models.ForeignKey(
        Shipment,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='adjustments'
    )
    adjustment_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='promotion')
    source = models.ForeignKey(
        'promotions.PromotionAction',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='adjustments',
        help_text=_("Promotion action that produced this adjustment")
    )
    label = models.CharField(max_length=255)
    amount_cents = models.BigIntegerField()
    eligible = models.BooleanField(
        default=True,
        help_text=_("Whether this adjustment counts toward totals and usage")
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'order_adjustments'
        ordering: ClassVar[tuple[str, ...]] = ('created_at',)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=['order', 'eligible']),
            models.Index(fields=['source', 'eligible']),
        )

    def __str__(self) -> str:
        return f"{self.label}: {self.amount}"

    @property
    def amount(self) -> Decimal:
        return Decimal(self.amount_cents) / 100
