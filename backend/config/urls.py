from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from accounts.api import LoginView, MeView, RegisterView
from bookings.api import (
    BookingCancelView,
    BookingDetailView,
    BookingListView,
    CheckoutInitializeView,
    PaymentVerifyView,
)
from payments.api import PaystackWebhookView

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/register/", RegisterView.as_view(), name="auth-register"),
    path("api/auth/login/", LoginView.as_view(), name="auth-login"),
    path("api/auth/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path("api/auth/me/", MeView.as_view(), name="auth-me"),
    path(
        "api/payments/initialize/",
        CheckoutInitializeView.as_view(),
        name="payment-initialize",
    ),
    path("api/payments/verify/", PaymentVerifyView.as_view(), name="payment-verify"),
    path("api/webhooks/paystack/", PaystackWebhookView.as_view(), name="paystack-webhook"),
    path("api/bookings/", BookingListView.as_view(), name="booking-list"),
    path(
        "api/bookings/<str:booking_id>/",
        BookingDetailView.as_view(),
        name="booking-detail",
    ),
    path(
        "api/bookings/<str:booking_id>/cancel/",
        BookingCancelView.as_view(),
        name="booking-cancel",
    ),
]
