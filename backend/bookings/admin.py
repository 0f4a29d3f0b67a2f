from django.contrib import admin

from payments.models import PaymentRecord

from .models import Booking


class PaymentRecordInline(admin.TabularInline):
    model = PaymentRecord
    extra = 0
    can_delete = False
    fields = ("transaction_reference", "amount", "currency", "status", "channel", "paid_at")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "transaction_reference",
        "owner",
        "hotel_name",
        "check_in",
        "check_out",
        "total_amount",
        "payment_status",
        "booking_status",
    )
    list_filter = ("payment_status", "booking_status")
    search_fields = ("transaction_reference", "owner__email", "hotel_id", "hotel_name")
    readonly_fields = ("transaction_reference", "total_amount", "quoted_total", "created_at", "updated_at")
    inlines = [PaymentRecordInline]
