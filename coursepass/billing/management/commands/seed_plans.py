"""
Management command to seed the billing plan catalogue.

Creates the three plans (Free, Premium, Pro) with their prices and daily
entitlement limits.

Usage:
    python manage.py seed_plans          # Create missing plans
    python manage.py seed_plans --force  # Also overwrite existing prices/limits
"""

from django.core.management.base import BaseCommand

from coursepass.billing.constants import UNLIMITED
from coursepass.billing.models import Plan
from coursepass.billing.plans import seed_default_plans


class Command(BaseCommand):
    help = "Seed billing plans with prices and daily limits"

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Update existing plans with latest configuration",
        )

    def handle(self, *args, **options):
        self.stdout.write("\n" + "=" * 60)
        self.stdout.write("Seeding Plans")
        self.stdout.write("=" * 60)

        for plan, action in seed_default_plans(force_update=options["force"]):
            if action == "exists":
                self.stdout.write(
                    f"  Exists: {plan.name} (use --force to update limits)",
                )
            else:
                self.stdout.write(
                    self.style.SUCCESS(f"  {action.title()}: {plan.name}"),
                )

        self._show_summary()

    def _show_summary(self):
        """Show final summary of all plans."""
        self.stdout.write("\n" + "=" * 60)
        self.stdout.write("Summary")
        self.stdout.write("=" * 60)

        for plan in Plan.objects.all().order_by("display_order"):
            price = (
                f"K{plan.monthly_price}/mo, K{plan.yearly_price}/yr"
                if not plan.is_free
                else "Free"
            )
            limits = ", ".join(
                f"{usage_type}={'∞' if limit == UNLIMITED else limit}"
                for usage_type, limit in sorted(plan.limits.items())
            )
            self.stdout.write(f"  {plan.name}: {price}; {limits}")

        self.stdout.write(self.style.SUCCESS("\nDone!"))
