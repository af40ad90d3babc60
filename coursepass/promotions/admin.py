"""
Django admin configuration for promotions.

Provides admin interfaces for:
- DiscountCode: Create campaigns, toggle codes on and off
- DiscountRedemption: Audit who used which code (read-only)
- ReferralProgram: Configure reward terms, toggle programs
- Referral: Inspect referral state (read-only status)
- PointsLedgerEntry: View points credits
"""

from django.contrib import admin

from coursepass.promotions.discounts import generate_code
from coursepass.promotions.discounts import set_code_active
from coursepass.promotions.models import DiscountCode
from coursepass.promotions.models import DiscountRedemption
from coursepass.promotions.models import PointsLedgerEntry
from coursepass.promotions.models import Referral
from coursepass.promotions.models import ReferralProgram


@admin.register(DiscountCode)
class DiscountCodeAdmin(admin.ModelAdmin):
    """Admin for discount codes."""

    list_display = [
        "code",
        "name",
        "discount_type",
        "discount_value",
        "current_usage",
        "usage_limit",
        "valid_until",
        "is_active",
    ]
    list_filter = ["is_active", "discount_type", "campaign_name"]
    search_fields = ["code", "name", "campaign_name"]
    readonly_fields = ["current_usage", "created", "modified"]
    actions = ["activate_codes", "deactivate_codes"]

    fieldsets = [
        (None, {"fields": ["code", "name", "description", "campaign_name"]}),
        (
            "Discount",
            {
                "fields": [
                    "discount_type",
                    "discount_value",
                    "maximum_discount",
                    "minimum_amount",
                    "applicable_plans",
                ],
            },
        ),
        (
            "Limits",
            {"fields": ["usage_limit", "usage_limit_per_user", "current_usage"]},
        ),
        ("Validity", {"fields": ["valid_from", "valid_until", "is_active"]}),
    ]

    def get_changeform_initial_data(self, request):
        initial = super().get_changeform_initial_data(request)
        initial.setdefault("code", generate_code())
        return initial

    def activate_codes(self, request, queryset):
        """Activate selected discount codes."""
        for code in queryset.values_list("code", flat=True):
            set_code_active(code, is_active=True)
    activate_codes.short_description = "Activate selected discount codes"

    def deactivate_codes(self, request, queryset):
        """Deactivate selected discount codes."""
        for code in queryset.values_list("code", flat=True):
            set_code_active(code, is_active=False)
    deactivate_codes.short_description = "Deactivate selected discount codes"


@admin.register(DiscountRedemption)
class DiscountRedemptionAdmin(admin.ModelAdmin):
    list_display = ["code", "user", "payment", "discount_amount", "applied_at"]
    list_filter = ["code"]
    search_fields = ["code__code", "user__username"]
    raw_id_fields = ["code", "user", "payment"]

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(ReferralProgram)
class ReferralProgramAdmin(admin.ModelAdmin):
    """Admin for referral programs."""

    list_display = [
        "name",
        "referrer_reward_type",
        "referrer_reward_value",
        "referee_reward_type",
        "referee_reward_value",
        "reward_cap",
        "is_active",
    ]
    list_filter = ["is_active"]
    search_fields = ["name"]
    actions = ["activate_programs", "deactivate_programs"]

    def activate_programs(self, request, queryset):
        """Activate selected referral programs."""
        queryset.update(is_active=True)
    activate_programs.short_description = "Activate selected referral programs"

    def deactivate_programs(self, request, queryset):
        """Deactivate selected referral programs. Existing referrals still pay."""
        queryset.update(is_active=False)
    deactivate_programs.short_description = "Deactivate selected referral programs"


@admin.register(Referral)
class ReferralAdmin(admin.ModelAdmin):
    """Referral status is moved by the reward engine only."""

    list_display = [
        "referrer",
        "referee",
        "program",
        "status",
        "referrer_reward_amount",
        "referee_reward_amount",
        "referred_at",
    ]
    list_filter = ["status", "program"]
    search_fields = ["referrer__username", "referee__username", "referral_code"]
    raw_id_fields = ["referrer", "referee", "qualifying_payment"]
    readonly_fields = [
        "status",
        "referrer_reward_amount",
        "referee_reward_amount",
        "completed_at",
        "rewarded_at",
    ]


@admin.register(PointsLedgerEntry)
class PointsLedgerEntryAdmin(admin.ModelAdmin):
    list_display = ["user", "points", "reason", "created"]
    search_fields = ["user__username", "reason"]
    raw_id_fields = ["user", "referral"]
