"""
Promotion API URLs
Promotion listings and coupon code endpoints.
"""

from django.urls import path

from . import views

app_name = 'promotions'

urlpatterns = [
    # Storefront listing (public)
    path('advertised/', views.advertised_promotions, name='advertised'),

    # Coupon promotions (staff only)
    path('coupons/', views.coupon_promotions, name='coupons'),

    # Coupon code entry on an order (authenticated owner)
    path('orders/<uuid:order_id>/coupon/', views.order_coupon, name='order_coupon'),
]
