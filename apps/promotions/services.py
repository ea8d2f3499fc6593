from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from apps.common.audit import log_security_event
from apps.common.types import Err, Ok, PromotionCodeValue, Result

from .promotion_models import OrderPromotion, PromotionCode

if TYPE_CHECKING:
    from apps.orders.models import Order

"""
Promotion Code Services for the promotions platform
Applies and removes customer-entered coupon codes on orders.
"""

logger = logging.getLogger(__name__)

CODE_NOT_FOUND = "The coupon code you entered doesn't exist. Please try again."
CODE_EXPIRED = "The coupon code is expired."
CODE_MAX_USAGE = "This coupon code's usage limit has been reached."
CODE_ALREADY_APPLIED = "The coupon code has already been applied to this order."
CODE_NOT_ELIGIBLE = "This coupon code could not be applied to the cart at this time."
CODE_NOT_APPLIED = "The coupon code is not applied to this order."


class PromotionCodeService:
    """Coupon code handling; every operation returns a Result for the caller to render."""

    @staticmethod
    def find_code(code_value: PromotionCodeValue) -> PromotionCode | None:
        value = PromotionCode.normalize(code_value or '')
        if not value:
            return None
        return PromotionCode.objects.select_related('promotion').filter(value=value).first()

    @staticmethod
    def apply(order: Order, code_value: PromotionCodeValue, request_ip: str | None = None) -> Result[OrderPromotion, str]:
        """Link a code's promotion to the order and recalculate it."""
        code = PromotionCodeService.find_code(code_value)
        if code is None:
            PromotionCodeService._log_rejection(order, code_value, 'not_found', request_ip)
            return Err(CODE_NOT_FOUND)

        promotion = code.promotion
        reference_time = order.completed_at or timezone.now()
        if promotion.inactive(reference_time):
            PromotionCodeService._log_rejection(order, code.value, 'inactive', request_ip)
            return Err(CODE_EXPIRED)

        if code.usage_limit_exceeded(excluded_orders=[order]) or promotion.usage_limit_exceeded(excluded_orders=[order]):
            PromotionCodeService._log_rejection(order, code.value, 'usage_limit_exceeded', request_ip)
            return Err(CODE_MAX_USAGE)

        if order.order_promotions.filter(promotion=promotion).exists():
            return Err(CODE_ALREADY_APPLIED)

        eligibility = promotion.eligibility_errors_for(order)
        if not eligibility.eligible:
            PromotionCodeService._log_rejection(order, code.value, ','.join(eligibility.error_codes), request_ip)
            return Err(eligibility.first_message or CODE_NOT_ELIGIBLE)

        try:
            with transaction.atomic():
                link = OrderPromotion.objects.create(order=order, promotion=promotion, promotion_code=code)
                order.recalculate()

                discounted = order.adjustments.filter(eligible=True, source__promotion=promotion).exists()
                if not discounted:
                    # Eligible but nothing discounted, e.g. only non-promotionable items
                    link.delete()
                    order.recalculate()
        except Exception as e:
            logger.exception(f"🔥 [Promotions] Failed to apply code {code.value} to order {order.number}: {e}")
            return Err(CODE_NOT_ELIGIBLE)

        if not discounted:
            PromotionCodeService._log_rejection(order, code.value, 'no_discount', request_ip)
            return Err(CODE_NOT_ELIGIBLE)

        log_security_event(
            'promotion_code_applied',
            {
                'order_number': order.number,
                'promotion_id': promotion.pk,
                'code': code.value,
                'promo_total_cents': order.promo_total_cents,
            },
            request_ip,
        )
        logger.info(f"🎟️ [Promotions] Code {code.value} applied to order {order.number}")
        return Ok(link)

    @staticmethod
    @transaction.atomic
    def remove(order: Order, code_value: PromotionCodeValue) -> Result[Order, str]:
        """Unlink a previously applied code and recalculate the order."""
        code = PromotionCodeService.find_code(code_value)
        if code is None:
            return Err(CODE_NOT_FOUND)

        deleted, _ = order.order_promotions.filter(promotion_code=code).delete()
        if not deleted:
            return Err(CODE_NOT_APPLIED)

        order.recalculate()
        logger.info(f"🎟️ [Promotions] Code {code.value} removed from order {order.number}")
        return Ok(order)

    @staticmethod
    def _log_rejection(order: Order, code_value: str, reason: str, request_ip: str | None) -> None:
        log_security_event(
            'promotion_code_rejected',
            {'order_number': order.number, 'code': code_value, 'reason': reason},
            request_ip,
        )
