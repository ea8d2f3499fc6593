"""
Promotion API Views
DRF views for advertised promotions, coupon listings and coupon code application.
"""

import logging
from uuid import UUID

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import UserRateThrottle

from apps.orders.models import Order
from apps.promotions.models import Promotion
from apps.promotions.services import PromotionCodeService

from .serializers import (
    CouponCodeInputSerializer,
    CouponPromotionSerializer,
    OrderPromotionSummarySerializer,
    PromotionListSerializer,
)

logger = logging.getLogger(__name__)


class PromotionListThrottle(UserRateThrottle):
    """Throttling for promotion listing endpoints"""
    scope = 'promotion_list'


class PromotionCodeThrottle(UserRateThrottle):
    """Throttling for coupon code entry, guards against code guessing"""
    scope = 'promotion_code'


def _client_ip(request: Request) -> str | None:
    return request.META.get('REMOTE_ADDR')


@api_view(['GET'])
@permission_classes([AllowAny])
@throttle_classes([PromotionListThrottle])
def advertised_promotions(request: Request) -> Response:
    """
    Public listing of promotions currently advertised to customers.
    """
    queryset = (
        Promotion.objects.advertised()
        .active()
        .select_related('category')
        .in_lane_order()
    )
    serializer = PromotionListSerializer(queryset, many=True)
    return Response({
        'results': serializer.data,
        'count': len(serializer.data)
    })


@api_view(['GET'])
@permission_classes([IsAdminUser])
@throttle_classes([PromotionListThrottle])
def coupon_promotions(request: Request) -> Response:
    """
    Staff listing of active promotions that have coupon codes.
    """
    queryset = (
        Promotion.objects.coupons()
        .active()
        .select_related('category')
        .prefetch_related('codes')
        .order_by('created_at', 'id')
    )
    serializer = CouponPromotionSerializer(queryset, many=True)
    return Response({
        'results': serializer.data,
        'count': len(serializer.data)
    })


@api_view(['POST', 'DELETE'])
@permission_classes([IsAuthenticated])
@throttle_classes([PromotionCodeThrottle])
def order_coupon(request: Request, order_id: UUID) -> Response:
    """
    Apply (POST) or remove (DELETE) a coupon code on one of the user's orders.
    """
    try:
        order = Order.objects.get(id=order_id, user=request.user)
    except Order.DoesNotExist:
        return Response({
            'error': 'Order not found'
        }, status=status.HTTP_404_NOT_FOUND)

    input_serializer = CouponCodeInputSerializer(data=request.data)
    if not input_serializer.is_valid():
        return Response({
            'error': 'Invalid input',
            'details': input_serializer.errors
        }, status=status.HTTP_400_BAD_REQUEST)

    code = input_serializer.validated_data['code']
    if request.method == 'DELETE':
        result = PromotionCodeService.remove(order, code)
    else:
        if order.is_complete:
            return Response({
                'error': 'Coupon codes cannot be applied to completed orders'
            }, status=status.HTTP_400_BAD_REQUEST)
        result = PromotionCodeService.apply(order, code, request_ip=_client_ip(request))

    if result.is_err():
        logger.info(f"🎟️ [Promotions API] Coupon {request.method} rejected for order {order.number}: {result.error}")
        return Response({
            'error': result.error
        }, status=status.HTTP_422_UNPROCESSABLE_ENTITY)

    order.refresh_from_db()
    return Response(OrderPromotionSummarySerializer(order).data)
