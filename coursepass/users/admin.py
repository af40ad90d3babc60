from django.contrib import admin
from django.contrib.auth import admin as auth_admin
from django.utils.translation import gettext_lazy as _

from coursepass.users.models import User


@admin.register(User)
class UserAdmin(auth_admin.UserAdmin):
    fieldsets = (
        (None, {"fields": ("username", "password")}),
        (_("Personal info"), {"fields": ("name", "email")}),
        (
            _("Subscription (read-only profile cache)"),
            {
                "fields": (
                    "subscription_tier",
                    "subscription_status",
                    "subscription_end_date",
                    "referral_code",
                ),
            },
        ),
        (
            _("Permissions"),
            {
                "fields": (
                    "is_active",
                    "is_staff",
                    "is_superuser",
                    "groups",
                    "user_permissions",
                ),
            },
        ),
        (_("Important dates"), {"fields": ("last_login", "date_joined")}),
    )
    readonly_fields = [
        "subscription_tier",
        "subscription_status",
        "subscription_end_date",
    ]
    list_display = ["username", "name", "subscription_tier", "is_superuser"]
    list_filter = ["subscription_tier", "is_staff", "is_superuser"]
    search_fields = ["username", "name", "email", "referral_code"]
    ordering = ["username"]
