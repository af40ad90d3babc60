"""
Management command to re-drive pending payments against Pesapal.

IPNs can be lost and users can close the browser before the callback. Run
this on a schedule (cron, Cloud Scheduler) to reconcile payments that have
been pending for a while. Reconciliation is idempotent, so overlapping runs
are harmless.

Usage:
    python manage.py reconcile_payments                     # pending > 10 minutes
    python manage.py reconcile_payments --older-than 60     # pending > 1 hour
    python manage.py reconcile_payments --tracking-id abc   # one payment
"""

import logging
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.core.management.base import CommandError
from django.utils import timezone

from coursepass.billing.constants import PaymentStatus
from coursepass.billing.exceptions import GatewayUnavailableError
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.gateway import get_gateway_client
from coursepass.billing.models import Payment
from coursepass.billing.reconciliation import reconcile

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Reconcile stale pending payments with the payment gateway"

    def add_arguments(self, parser):
        parser.add_argument(
            "--older-than",
            type=int,
            default=10,
            help="Only payments pending for at least this many minutes",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=200,
            help="Maximum number of payments to reconcile",
        )
        parser.add_argument(
            "--tracking-id",
            help="Reconcile a single payment by gateway tracking id",
        )

    def handle(self, *args, **options):
        if options["tracking_id"]:
            tracking_ids = [options["tracking_id"]]
        else:
            cutoff = timezone.now() - timedelta(minutes=options["older_than"])
            tracking_ids = list(
                Payment.objects.filter(
                    status=PaymentStatus.PENDING,
                    gateway_tracking_id__isnull=False,
                    created__lte=cutoff,
                )
                .order_by("created")
                .values_list("gateway_tracking_id", flat=True)[: options["limit"]],
            )

        self.stdout.write(f"Reconciling {len(tracking_ids)} payment(s)")

        counts = {"applied": 0, "unchanged": 0, "unavailable": 0}
        with get_gateway_client() as client:
            for tracking_id in tracking_ids:
                try:
                    result = reconcile(tracking_id, client=client)
                except GatewayUnavailableError:
                    counts["unavailable"] += 1
                    logger.warning("Gateway unavailable for tracking=%s", tracking_id)
                    continue
                except NotFoundError as exc:
                    raise CommandError(exc.detail) from exc

                if result.applied:
                    counts["applied"] += 1
                    self.stdout.write(
                        self.style.SUCCESS(
                            f"  {result.payment.merchant_reference}: {result.status}",
                        ),
                    )
                else:
                    counts["unchanged"] += 1

        summary = (
            f"Done: {counts['applied']} applied, {counts['unchanged']} unchanged, "
            f"{counts['unavailable']} gateway unavailable"
        )
        if counts["unavailable"]:
            self.stdout.write(self.style.WARNING(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))
