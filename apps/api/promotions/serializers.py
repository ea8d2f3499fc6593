"""
Promotion API Serializers
Read-only promotion listings and coupon code input/output.
"""

from rest_framework import serializers

from apps.orders.models import Adjustment, Order
from apps.promotions.models import Promotion


class PromotionListSerializer(serializers.ModelSerializer):
    """Customer-facing promotion info"""

    category = serializers.CharField(source='category.name', read_only=True, default=None)

    class Meta:
        model = Promotion
        fields = [
            'id', 'name', 'description', 'customer_label', 'category',
            'lane', 'starts_at', 'expires_at', 'path'
        ]


class CouponPromotionSerializer(PromotionListSerializer):
    """Promotion with its codes and usage, for staff"""

    codes = serializers.SlugRelatedField(many=True, read_only=True, slug_field='value')
    usage_count = serializers.SerializerMethodField()

    class Meta(PromotionListSerializer.Meta):
        fields = [
            *PromotionListSerializer.Meta.fields,
            'codes', 'usage_limit', 'per_code_usage_limit', 'usage_count'
        ]

    def get_usage_count(self, obj: Promotion) -> int:
        return obj.usage_count()


class CouponCodeInputSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=255, trim_whitespace=True)


class AdjustmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Adjustment
        fields = ['id', 'label', 'amount_cents', 'eligible', 'line_item', 'shipment']


class OrderPromotionSummarySerializer(serializers.ModelSerializer):
    """Order totals after promotions were (re)applied"""

    adjustments = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'number', 'state', 'currency',
            'item_total_cents', 'shipment_total_cents', 'promo_total_cents', 'total_cents',
            'adjustments'
        ]

    def get_adjustments(self, obj: Order) -> list[dict]:
        queryset = obj.adjustments.filter(adjustment_type='promotion', eligible=True).order_by('created_at')
        return AdjustmentSerializer(queryset, many=True).data
