"""
Django admin configuration for billing models.

Provides admin interfaces for:
- Plan: View/edit pricing and daily entitlement limits
- Subscription: Inspect subscription history per user
- Payment: Inspect checkouts and gateway outcomes (read-only)
- UsageRecord: View daily usage counters
"""

from django.contrib import admin

from coursepass.billing.models import Payment
from coursepass.billing.models import Plan
from coursepass.billing.models import Subscription
from coursepass.billing.models import UsageRecord


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    """Admin for pricing plans."""

    list_display = [
        "code",
        "name",
        "monthly_price",
        "yearly_price",
        "display_order",
    ]
    list_editable = ["display_order"]
    ordering = ["display_order"]
    search_fields = ["code", "name"]

    fieldsets = [
        (None, {"fields": ["code", "name", "description"]}),
        ("Pricing", {"fields": ["monthly_price", "yearly_price"]}),
        (
            "Limits",
            {
                "fields": ["limits"],
                "description": "Daily limits keyed by usage type. -1 = unlimited.",
            },
        ),
        ("Display", {"fields": ["display_order"]}),
    ]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """
    Admin for subscription periods.

    Status shown here is the stored one; an "active" row past its end date
    is expired for every other purpose.
    """

    list_display = [
        "user",
        "plan",
        "status",
        "billing_cycle",
        "start_date",
        "end_date",
        "source",
    ]
    list_filter = ["status", "plan", "source", "billing_cycle"]
    search_fields = ["user__username", "user__email"]
    raw_id_fields = ["user", "payment"]
    readonly_fields = ["created", "modified", "cancelled_at"]
    date_hierarchy = "start_date"


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Payments are written by checkout and reconciliation only."""

    list_display = [
        "merchant_reference",
        "user",
        "plan",
        "amount",
        "currency",
        "status",
        "created",
    ]
    list_filter = ["status", "plan", "billing_cycle"]
    search_fields = [
        "merchant_reference",
        "gateway_tracking_id",
        "confirmation_code",
        "user__username",
        "user__email",
    ]
    raw_id_fields = ["user", "discount_code"]
    readonly_fields = [
        "id",
        "status",
        "gateway_tracking_id",
        "gateway_status_code",
        "gateway_status_description",
        "payment_method",
        "payment_account",
        "confirmation_code",
        "completed_at",
        "created",
        "modified",
    ]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(UsageRecord)
class UsageRecordAdmin(admin.ModelAdmin):
    """Admin for daily usage counters."""

    list_display = ["user", "usage_type", "usage_date", "usage_count"]
    list_filter = ["usage_type", "usage_date"]
    search_fields = ["user__username"]
    raw_id_fields = ["user"]
    readonly_fields = ["created", "modified"]
