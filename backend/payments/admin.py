from django.contrib import admin

from .models import PaymentRecord


@admin.register(PaymentRecord)
class PaymentRecordAdmin(admin.ModelAdmin):
    list_display = ("transaction_reference", "booking", "owner", "amount", "currency", "status", "paid_at")
    list_filter = ("status", "currency", "channel")
    search_fields = ("transaction_reference", "owner__email")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
