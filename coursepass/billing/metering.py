"""
Usage metering and enforcement.

The meter checks a user's daily quota for a metered action and consumes one
unit when allowed. It is called at enforcement points (before starting a
quiz, enrolling in a course, creating a lesson...) so free users stay within
their plan's limits.

Usage:
    # Check and consume, branching on the result
    result = UsageMeter().check_and_consume(user, UsageType.QUIZ_TAKEN)
    if not result.allowed:
        ...

    # Raise UsageLimitError instead (API views)
    UsageMeter().enforce(user, UsageType.VIDEO_WATCHED)

    # Dashboard summary
    UsageMeter().get_usage(user)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from coursepass.billing.constants import UNLIMITED
from coursepass.billing.constants import UsageType
from coursepass.billing.exceptions import UsageLimitError
from coursepass.billing.exceptions import ValidationError
from coursepass.billing.lifecycle import get_effective_plan
from coursepass.billing.models import UsageRecord

if TYPE_CHECKING:
    from datetime import date
    from datetime import datetime

    from coursepass.users.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageCheckResult:
    allowed: bool
    current_usage: int
    limit: int

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def remaining(self) -> int | None:
        if self.unlimited:
            return None
        return max(self.limit - self.current_usage, 0)


def limit_message(usage_type: str, limit: int) -> str:
    label = UsageType(usage_type).label.lower()
    if limit == 0:
        return f"Your plan does not include {label}. Upgrade to unlock it."
    return f"You've reached your daily limit of {limit} ({label}). Upgrade for more."


class UsageMeter:
    """
    Daily per-user counters checked against plan entitlement limits.

    The day is the server's local date. Each (user, usage_type, day) has one
    UsageRecord row; consuming a unit is a single conditional UPDATE guarded
    by ``usage_count < limit``, so two requests racing for the last slot
    cannot both win.
    """

    def _validate_usage_type(self, usage_type: str) -> None:
        if usage_type not in UsageType.values:
            raise ValidationError(
                f"Unknown usage type '{usage_type}'.",
                code="invalid_usage_type",
            )

    def _resolve_limit(
        self,
        user: User,
        usage_type: str,
        plan_limits: dict | None,
        now: datetime,
    ) -> int:
        if plan_limits is not None:
            return int(plan_limits.get(usage_type, 0))
        return get_effective_plan(user, now).get_limit(usage_type)

    def _current_count(self, user: User, usage_type: str, day: date) -> int:
        record = UsageRecord.objects.filter(
            user=user,
            usage_type=usage_type,
            usage_date=day,
        ).first()
        return record.usage_count if record else 0

    def check_and_consume(
        self,
        user: User,
        usage_type: str,
        plan_limits: dict | None = None,
        now: datetime | None = None,
    ) -> UsageCheckResult:
        """
        Check the daily limit and consume one unit if allowed.

        Args:
            user: The acting user
            usage_type: A UsageType value
            plan_limits: Explicit limits map; defaults to the effective plan's
            now: Clock override for tests

        Returns:
            UsageCheckResult; a denied result never mutates the counter.
        """
        self._validate_usage_type(usage_type)
        now = now or timezone.now()
        today = timezone.localdate(now)
        limit = self._resolve_limit(user, usage_type, plan_limits, now)

        if limit == 0:
            return UsageCheckResult(
                allowed=False,
                current_usage=self._current_count(user, usage_type, today),
                limit=limit,
            )

        with transaction.atomic():
            record, _created = UsageRecord.objects.get_or_create(
                user=user,
                usage_type=usage_type,
                usage_date=today,
            )
            guarded = UsageRecord.objects.filter(pk=record.pk)
            if limit != UNLIMITED:
                guarded = guarded.filter(usage_count__lt=limit)
            updated = guarded.update(usage_count=F("usage_count") + 1, modified=now)
            record.refresh_from_db(fields=["usage_count"])

        if not updated:
            logger.info(
                "Usage denied for user=%s type=%s: %d/%d used",
                user.pk,
                usage_type,
                record.usage_count,
                limit,
            )
            return UsageCheckResult(
                allowed=False,
                current_usage=record.usage_count,
                limit=limit,
            )

        if limit != UNLIMITED and record.usage_count > limit:
            logger.warning(
                "Soft quota violation for user=%s type=%s: %d > limit %d",
                user.pk,
                usage_type,
                record.usage_count,
                limit,
            )

        logger.debug(
            "Usage consumed for user=%s type=%s: %d/%s",
            user.pk,
            usage_type,
            record.usage_count,
            "unlimited" if limit == UNLIMITED else limit,
        )
        return UsageCheckResult(
            allowed=True,
            current_usage=record.usage_count,
            limit=limit,
        )

    def enforce(
        self,
        user: User,
        usage_type: str,
        now: datetime | None = None,
    ) -> UsageCheckResult:
        """
        Consume one unit or raise.

        Raises:
            UsageLimitError: If the daily limit is reached
        """
        result = self.check_and_consume(user, usage_type, now=now)
        if not result.allowed:
            raise UsageLimitError(
                detail=limit_message(usage_type, result.limit),
                usage_type=usage_type,
                limit=result.limit,
            )
        return result

    def get_usage(self, user: User, now: datetime | None = None) -> dict[str, dict]:
        """Today's usage for every metered action, keyed by usage type."""
        now = now or timezone.now()
        plan = get_effective_plan(user, now)
        counts = dict(
            UsageRecord.objects.filter(
                user=user,
                usage_date=timezone.localdate(now),
            ).values_list("usage_type", "usage_count"),
        )

        summary = {}
        for usage_type in UsageType.values:
            limit = plan.get_limit(usage_type)
            used = counts.get(usage_type, 0)
            unlimited = limit == UNLIMITED
            summary[usage_type] = {
                "used": used,
                "limit": limit,
                "remaining": None if unlimited else max(limit - used, 0),
                "unlimited": unlimited,
            }
        return summary
