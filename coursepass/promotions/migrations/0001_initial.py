from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
import model_utils.fields
from django.conf import settings
from django.db import migrations, models


REWARD_TYPE_CHOICES = [
    ("percentage", "Percentage of payment"),
    ("fixed_amount", "Fixed amount"),
    ("free_months", "Free months"),
    ("points", "Points"),
]


def created_field():
    return model_utils.fields.AutoCreatedField(
        default=django.utils.timezone.now, editable=False, verbose_name="created"
    )


def modified_field():
    return model_utils.fields.AutoLastModifiedField(
        default=django.utils.timezone.now, editable=False, verbose_name="modified"
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("billing", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="DiscountCode",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", created_field()),
                ("modified", modified_field()),
                (
                    "code",
                    models.CharField(
                        help_text="Code customers type at checkout. Stored upper-case.",
                        max_length=32,
                        unique=True,
                    ),
                ),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True)),
                (
                    "discount_type",
                    models.CharField(
                        choices=[
                            ("percentage", "Percentage off"),
                            ("fixed_amount", "Fixed amount off"),
                            ("free_trial", "Free first period"),
                        ],
                        default="percentage",
                        max_length=20,
                    ),
                ),
                (
                    "discount_value",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Percent (0-100) or amount, depending on discount type.",
                        max_digits=12,
                    ),
                ),
                (
                    "applicable_plans",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Plan codes this code applies to. Empty = all plans.",
                    ),
                ),
                (
                    "minimum_amount",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
                ),
                (
                    "maximum_discount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Cap on the discount for percentage codes.",
                        max_digits=12,
                        null=True,
                    ),
                ),
                (
                    "usage_limit",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Total redemptions allowed. Empty = unlimited.",
                        null=True,
                    ),
                ),
                ("usage_limit_per_user", models.PositiveIntegerField(default=1)),
                ("current_usage", models.PositiveIntegerField(default=0)),
                ("valid_from", models.DateTimeField(default=django.utils.timezone.now)),
                ("valid_until", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("campaign_name", models.CharField(blank=True, max_length=100)),
            ],
            options={
                "ordering": ["-created"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("usage_limit__isnull", True),
                            ("current_usage__lte", models.F("usage_limit")),
                            _connector="OR",
                        ),
                        name="discount_code_usage_within_limit",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ReferralProgram",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", created_field()),
                ("modified", modified_field()),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True)),
                (
                    "referrer_reward_type",
                    models.CharField(choices=REWARD_TYPE_CHOICES, default="percentage", max_length=20),
                ),
                (
                    "referrer_reward_value",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
                ),
                (
                    "referee_reward_type",
                    models.CharField(choices=REWARD_TYPE_CHOICES, default="percentage", max_length=20),
                ),
                (
                    "referee_reward_value",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
                ),
                (
                    "minimum_referee_payment",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Smallest first payment that earns a reward.",
                        max_digits=12,
                    ),
                ),
                (
                    "reward_cap",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Maximum reward per side. Empty = uncapped.",
                        max_digits=12,
                        null=True,
                    ),
                ),
                ("valid_from", models.DateTimeField(default=django.utils.timezone.now)),
                ("valid_until", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["-created"],
            },
        ),
        migrations.CreateModel(
            name="DiscountRedemption",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("discount_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("applied_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "code",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="redemptions",
                        to="promotions.discountcode",
                    ),
                ),
                (
                    "payment",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_redemption",
                        to="billing.payment",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discount_redemptions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["code", "user"], name="redemption_code_user_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Referral",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", created_field()),
                ("modified", modified_field()),
                ("referral_code", models.CharField(max_length=16)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("completed", "Completed"), ("rewarded", "Rewarded")],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "referrer_reward_amount",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
                ),
                (
                    "referee_reward_amount",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
                ),
                ("referred_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("rewarded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "program",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="referrals",
                        to="promotions.referralprogram",
                    ),
                ),
                (
                    "qualifying_payment",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="qualified_referral",
                        to="billing.payment",
                    ),
                ),
                (
                    "referee",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="referral",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "referrer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="referrals_made",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["referrer", "status"], name="referral_referrer_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("referrer", models.F("referee")), _negated=True),
                        name="referral_not_self",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PointsLedgerEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", created_field()),
                ("modified", modified_field()),
                ("points", models.IntegerField()),
                ("reason", models.CharField(max_length=100)),
                (
                    "referral",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="points_entries",
                        to="promotions.referral",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="points_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created"],
                "verbose_name_plural": "points ledger entries",
            },
        ),
    ]
