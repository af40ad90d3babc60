from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
import model_utils.fields
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Plan",
            fields=[
                (
                    "code",
                    models.CharField(
                        choices=[("FREE", "Free"), ("PREMIUM", "Premium"), ("PRO", "Pro")],
                        help_text="Unique plan identifier, also used as PK.",
                        max_length=20,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(help_text="Display name for the plan.", max_length=50)),
                (
                    "description",
                    models.TextField(blank=True, help_text="Marketing description shown on the upgrade page."),
                ),
                (
                    "monthly_price",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Price charged per month on the monthly cycle.",
                        max_digits=12,
                    ),
                ),
                (
                    "yearly_price",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Price charged per year on the yearly cycle.",
                        max_digits=12,
                    ),
                ),
                (
                    "limits",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Daily limits keyed by usage type. -1 = unlimited.",
                    ),
                ),
                (
                    "display_order",
                    models.IntegerField(default=0, help_text="Order in which plans appear on the upgrade page."),
                ),
            ],
            options={
                "ordering": ["display_order"],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "created",
                    model_utils.fields.AutoCreatedField(
                        default=django.utils.timezone.now, editable=False, verbose_name="created"
                    ),
                ),
                (
                    "modified",
                    model_utils.fields.AutoLastModifiedField(
                        default=django.utils.timezone.now, editable=False, verbose_name="modified"
                    ),
                ),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "billing_cycle",
                    models.CharField(
                        choices=[("monthly", "Monthly"), ("yearly", "Yearly")], default="monthly", max_length=10
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(decimal_places=2, help_text="Amount charged after discounts.", max_digits=12),
                ),
                (
                    "original_amount",
                    models.DecimalField(decimal_places=2, help_text="Plan price before discounts.", max_digits=12),
                ),
                ("currency", models.CharField(default="ZMW", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "merchant_reference",
                    models.CharField(
                        help_text="Our order id, sent to the gateway as the merchant reference.",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "gateway_tracking_id",
                    models.CharField(
                        blank=True,
                        help_text="Gateway OrderTrackingId. Reconciliation key.",
                        max_length=100,
                        null=True,
                        unique=True,
                    ),
                ),
                ("gateway_status_code", models.IntegerField(blank=True, null=True)),
                ("gateway_status_description", models.CharField(blank=True, max_length=255)),
                ("payment_method", models.CharField(blank=True, max_length=255)),
                ("payment_account", models.CharField(blank=True, max_length=255)),
                ("confirmation_code", models.CharField(blank=True, max_length=255)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "plan",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="billing.plan",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created"],
                "indexes": [
                    models.Index(fields=["user", "status"], name="payment_user_status_idx"),
                    models.Index(fields=["status", "created"], name="payment_status_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "created",
                    model_utils.fields.AutoCreatedField(
                        default=django.utils.timezone.now, editable=False, verbose_name="created"
                    ),
                ),
                (
                    "modified",
                    model_utils.fields.AutoLastModifiedField(
                        default=django.utils.timezone.now, editable=False, verbose_name="modified"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("cancelled", "Cancelled"), ("expired", "Expired")],
                        default="active",
                        max_length=20,
                    ),
                ),
                (
                    "billing_cycle",
                    models.CharField(
                        choices=[("monthly", "Monthly"), ("yearly", "Yearly")], default="monthly", max_length=10
                    ),
                ),
                ("start_date", models.DateTimeField()),
                ("end_date", models.DateTimeField()),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("gateway", "Payment gateway"),
                            ("legacy_profile", "Legacy profile"),
                            ("referral_reward", "Referral reward"),
                        ],
                        default="gateway",
                        max_length=20,
                    ),
                ),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True)),
                (
                    "payment",
                    models.OneToOneField(
                        blank=True,
                        help_text="The completed payment that activated this period.",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscription",
                        to="billing.payment",
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="billing.plan",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="subscriptions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["user", "status", "created"], name="subscription_user_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("status__in", ["active", "cancelled"])),
                        name="subscription_status_never_stored_expired",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="UsageRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "created",
                    model_utils.fields.AutoCreatedField(
                        default=django.utils.timezone.now, editable=False, verbose_name="created"
                    ),
                ),
                (
                    "modified",
                    model_utils.fields.AutoLastModifiedField(
                        default=django.utils.timezone.now, editable=False, verbose_name="modified"
                    ),
                ),
                (
                    "usage_type",
                    models.CharField(
                        choices=[
                            ("quiz_taken", "Quiz taken"),
                            ("course_enrolled", "Course enrolled"),
                            ("video_watched", "Video watched"),
                            ("course_created", "Course created"),
                            ("lesson_created", "Lesson created"),
                            ("quiz_created", "Quiz created"),
                        ],
                        max_length=32,
                    ),
                ),
                ("usage_date", models.DateField()),
                ("usage_count", models.PositiveIntegerField(default=0)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="usage_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "usage_type", "usage_date"),
                        name="usage_record_unique_per_day",
                    ),
                ],
            },
        ),
    ]
