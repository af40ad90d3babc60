from __future__ import annotations

import secrets
import string

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import CharField
from django.utils.translation import gettext_lazy as _

from coursepass.billing.constants import PlanCode
from coursepass.billing.constants import SubscriptionStatus

REFERRAL_CODE_LENGTH = 8
REFERRAL_CODE_CHARS = string.ascii_uppercase + string.digits


def generate_referral_code() -> str:
    return "".join(
        secrets.choice(REFERRAL_CODE_CHARS) for _ in range(REFERRAL_CODE_LENGTH)
    )


class User(AbstractUser):
    """
    Default custom user model for CoursePass.

    Identity is owned by the surrounding application. The billing engine only
    reads the primary key and maintains the ``subscription_*`` profile fields,
    which are a denormalized fast path for the rest of the app. They are
    written exclusively by ``coursepass.billing.lifecycle.sync_profile``; the
    authoritative state is always ``resolve_effective_subscription``.

    Users migrated from the old profile-only billing have these fields set but
    no Subscription rows; the lifecycle manager reads them as a legacy source.
    """

    # First and last name do not cover name patterns around the globe
    name = CharField(_("Name of User"), blank=True, max_length=255)

    first_name = None  # type: ignore[assignment]

    last_name = None  # type: ignore[assignment]

    subscription_tier = models.CharField(
        max_length=20,
        choices=PlanCode.choices,
        default=PlanCode.FREE,
        help_text=_("Resolved plan tier, for fast reads elsewhere in the app."),
    )
    subscription_status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        blank=True,
        default="",
        help_text=_("Resolved subscription status at the last transition."),
    )
    subscription_end_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("End of the resolved subscription period."),
    )

    referral_code = models.CharField(
        max_length=16,
        unique=True,
        blank=True,
        help_text=_("Personal code other users enter at signup."),
    )

    def __str__(self) -> str:
        return self.username

    def save(self, *args, **kwargs):
        if not self.referral_code:
            code = generate_referral_code()
            while User.objects.filter(referral_code=code).exists():
                code = generate_referral_code()
            self.referral_code = code
        super().save(*args, **kwargs)
